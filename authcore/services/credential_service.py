"""Credential service: bcrypt hashing with explicit legacy-digest handling.

Stored digests are parsed once into a tagged ``Digest``; verification and
migration dispatch on ``Digest.algorithm``. Legacy argon2 digests are never
verified: they force a reset or an explicit migration after the caller has
re-authenticated the user some other way.
"""

import asyncio
import logging
import secrets
import string
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import bcrypt

from authcore.core.config import settings
from authcore.core.exceptions import (
    DigestFormatError,
    HashingError,
    VerificationFailedError,
)

logger = logging.getLogger(__name__)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
_ARGON2_PREFIX = "$argon2"
_COMMON_PASSWORDS = {
    "password", "123456", "password123", "admin", "qwerty",
    "letmein", "welcome", "monkey", "1234567890", "abc123",
}


class HashAlgorithm(str, Enum):
    BCRYPT = "bcrypt"
    ARGON2 = "argon2"  # legacy


MODERN_ALGORITHM = HashAlgorithm.BCRYPT
LEGACY_ALGORITHMS = frozenset({HashAlgorithm.ARGON2})


@dataclass(frozen=True)
class Digest:
    algorithm: HashAlgorithm
    payload: str

    def __str__(self) -> str:
        return self.payload


def parse_digest(stored: str) -> Digest:
    """Tag a stored digest string with the algorithm that produced it.

    Raises:
        DigestFormatError: If the string is not a recognised digest.
    """
    if not isinstance(stored, str) or not stored:
        raise DigestFormatError("Digest is empty")
    if stored.startswith(_BCRYPT_PREFIXES):
        return Digest(HashAlgorithm.BCRYPT, stored)
    if stored.startswith(_ARGON2_PREFIX):
        return Digest(HashAlgorithm.ARGON2, stored)
    raise DigestFormatError("Unrecognised digest format")


DigestLike = Union[Digest, str]


class CredentialService:
    """Hashes and verifies user secrets."""

    def __init__(
        self,
        rounds: Optional[int] = None,
        min_length: Optional[int] = None,
        workers: Optional[int] = None,
    ):
        self.rounds = rounds or settings.BCRYPT_ROUNDS
        self.min_length = min_length or settings.MIN_SECRET_LENGTH
        self._workers = workers or settings.HASH_WORKERS
        self._executor: Optional[ThreadPoolExecutor] = None

    # ---- digest helpers ----

    @staticmethod
    def _as_digest(digest: DigestLike) -> Digest:
        return digest if isinstance(digest, Digest) else parse_digest(digest)

    def get_hash_type(self, digest: DigestLike) -> str:
        """Return the algorithm name for a digest, or ``"unknown"``."""
        try:
            return self._as_digest(digest).algorithm.value
        except DigestFormatError:
            return "unknown"

    # ---- core operations ----

    def hash(self, secret: str) -> str:
        """Hash a secret with bcrypt at the configured cost factor.

        Raises:
            HashingError: If the secret is not a string or is too short.
        """
        if not isinstance(secret, str) or not secret:
            raise HashingError("Secret must be a non-empty string")
        if len(secret) < self.min_length:
            raise HashingError(f"Secret must be at least {self.min_length} characters long")

        try:
            hashed = bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds))
        except ValueError as exc:
            logger.error("Credential hashing failed: %s", exc)
            raise HashingError("Hashing failed") from exc
        return hashed.decode("utf-8")

    def verify(self, secret: str, digest: DigestLike) -> bool:
        """Verify a secret against a stored digest.

        Legacy and unrecognised digests never verify.
        """
        if not isinstance(secret, str) or not secret or not digest:
            return False
        try:
            parsed = self._as_digest(digest)
        except DigestFormatError:
            logger.warning("Credential verification refused: unrecognised digest format")
            return False

        if parsed.algorithm in LEGACY_ALGORITHMS:
            logger.warning(
                "Credential verification refused: legacy %s digest requires reset",
                parsed.algorithm.value,
            )
            return False

        try:
            return bcrypt.checkpw(secret.encode("utf-8"), parsed.payload.encode("utf-8"))
        except ValueError as exc:
            logger.warning("Credential verification failed on malformed bcrypt digest: %s", exc)
            return False

    def authenticate(self, secret: str, digest: DigestLike) -> None:
        """Verify or raise, with one message for every failure reason.

        Raises:
            VerificationFailedError: Wrong secret, legacy digest or unknown format.
        """
        if self.verify(secret, digest):
            return
        logger.info(
            "Credential check failed (digest type=%s, needs_reset=%s)",
            self.get_hash_type(digest) if digest else "missing",
            self.needs_reset(digest) if digest else True,
        )
        raise VerificationFailedError("Invalid credentials")

    def needs_upgrade(self, digest: DigestLike) -> bool:
        """True only for digests produced by a legacy algorithm."""
        try:
            return self._as_digest(digest).algorithm in LEGACY_ALGORITHMS
        except DigestFormatError:
            return False

    def needs_reset(self, digest: DigestLike) -> bool:
        """True when the stored digest can no longer be verified."""
        try:
            return self._as_digest(digest).algorithm in LEGACY_ALGORITHMS
        except DigestFormatError:
            return True

    def migrate(self, secret: str, old_digest: DigestLike) -> Optional[str]:
        """Re-hash a secret under the modern algorithm.

        Legacy digests are re-hashed unconditionally: the caller must have
        re-authenticated the user (e.g. through a reset flow). Modern digests
        are verified first. Returns None when verification fails or the
        digest format is unrecognised.
        """
        try:
            parsed = self._as_digest(old_digest)
        except DigestFormatError:
            logger.warning("Digest migration skipped: unrecognised digest format")
            return None

        if parsed.algorithm in LEGACY_ALGORITHMS:
            new_digest = self.hash(secret)
            logger.info(
                "Migrated %s digest to %s", parsed.algorithm.value, MODERN_ALGORITHM.value
            )
            return new_digest

        if not self.verify(secret, parsed):
            logger.warning("Digest migration failed: verification failed")
            return None
        return self.hash(secret)

    # ---- off-loop variants ----

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="credential-hash"
            )
        return self._executor

    async def hash_async(self, secret: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), self.hash, secret)

    async def verify_async(self, secret: str, digest: DigestLike) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), self.verify, secret, digest)

    async def migrate_async(self, secret: str, old_digest: DigestLike) -> Optional[str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), self.migrate, secret, old_digest)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ---- password helpers ----

    @staticmethod
    def generate_secure_password(length: int = 16) -> str:
        alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
        return "".join(secrets.choice(alphabet) for _ in range(length))

    def validate_password_strength(self, password: str) -> dict:
        """Score a password from 0 to 5 and list what it is missing."""
        if not password:
            return {"is_valid": False, "score": 0, "feedback": ["Password is required"],
                    "strength": "Very Weak"}

        feedback = []
        score = 0

        if len(password) < self.min_length:
            feedback.append(f"Password must be at least {self.min_length} characters long")
        elif len(password) >= 8:
            score += 1

        checks = [
            (any(c.islower() for c in password), "Password should contain lowercase letters"),
            (any(c.isupper() for c in password), "Password should contain uppercase letters"),
            (any(c.isdigit() for c in password), "Password should contain numbers"),
            (any(c in string.punctuation for c in password),
             "Password should contain special characters"),
        ]
        for passed, message in checks:
            if passed:
                score += 1
            else:
                feedback.append(message)

        if password.lower() in _COMMON_PASSWORDS:
            feedback.append("Password is too common")
            score = max(0, score - 2)

        return {
            "is_valid": len(password) >= self.min_length and not feedback,
            "score": score,
            "feedback": feedback,
            "strength": _strength_label(score),
        }


def _strength_label(score: int) -> str:
    if score <= 1:
        return "Very Weak"
    if score <= 2:
        return "Weak"
    if score <= 3:
        return "Fair"
    if score <= 4:
        return "Good"
    return "Strong"


credential_service = CredentialService()
