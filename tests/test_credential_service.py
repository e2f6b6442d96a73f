"""Tests for the credential service (bcrypt + legacy digest handling)."""

import pytest

from authcore.core.exceptions import (
    DigestFormatError,
    HashingError,
    VerificationFailedError,
)
from authcore.services.credential_service import (
    Digest,
    HashAlgorithm,
    parse_digest,
)

LEGACY_DIGEST = "$argon2id$v=19$m=65536,t=3,p=4$c29tZXNhbHQ$RdescudvJCsgt3ub+b+dWRWJTmaaJObG"


@pytest.mark.unit
class TestDigestParsing:
    def test_bcrypt_digest(self, credentials):
        digest = parse_digest(credentials.hash("secret123"))
        assert digest.algorithm is HashAlgorithm.BCRYPT

    def test_legacy_digest(self):
        assert parse_digest(LEGACY_DIGEST) == Digest(HashAlgorithm.ARGON2, LEGACY_DIGEST)

    @pytest.mark.parametrize("stored", ["", "plaintext", "$1$md5crypt", None])
    def test_unrecognised_digest(self, stored):
        with pytest.raises(DigestFormatError):
            parse_digest(stored)

    def test_get_hash_type(self, credentials):
        assert credentials.get_hash_type(credentials.hash("secret123")) == "bcrypt"
        assert credentials.get_hash_type(LEGACY_DIGEST) == "argon2"
        assert credentials.get_hash_type("garbage") == "unknown"


@pytest.mark.unit
class TestHashAndVerify:
    def test_hash_then_verify(self, credentials):
        digest = credentials.hash("correct horse")
        assert digest.startswith("$2b$04$")
        assert credentials.verify("correct horse", digest) is True
        assert credentials.verify("wrong horse", digest) is False

    def test_hashes_are_salted(self, credentials):
        assert credentials.hash("secret123") != credentials.hash("secret123")

    @pytest.mark.parametrize("secret", ["", "short", None, 123456])
    def test_hash_rejects_bad_secrets(self, credentials, secret):
        with pytest.raises(HashingError):
            credentials.hash(secret)

    def test_verify_accepts_parsed_digest(self, credentials):
        digest = parse_digest(credentials.hash("secret123"))
        assert credentials.verify("secret123", digest) is True

    def test_legacy_digest_never_verifies(self, credentials):
        assert credentials.verify("anything", LEGACY_DIGEST) is False

    def test_unknown_digest_never_verifies(self, credentials):
        assert credentials.verify("secret123", "not-a-digest") is False

    def test_authenticate_uses_one_message(self, credentials):
        digest = credentials.hash("secret123")
        credentials.authenticate("secret123", digest)

        messages = set()
        for secret, stored in [("nope12", digest), ("secret123", LEGACY_DIGEST), ("secret123", "x")]:
            with pytest.raises(VerificationFailedError) as exc_info:
                credentials.authenticate(secret, stored)
            messages.add(exc_info.value.message)
        assert messages == {"Invalid credentials"}


@pytest.mark.unit
class TestUpgradeAndMigration:
    def test_needs_upgrade_only_for_legacy(self, credentials):
        assert credentials.needs_upgrade(LEGACY_DIGEST) is True
        assert credentials.needs_upgrade(credentials.hash("secret123")) is False
        assert credentials.needs_upgrade("garbage") is False

    def test_needs_reset(self, credentials):
        assert credentials.needs_reset(LEGACY_DIGEST) is True
        assert credentials.needs_reset("garbage") is True
        assert credentials.needs_reset(credentials.hash("secret123")) is False

    def test_migrate_legacy_rehashes_unconditionally(self, credentials):
        new_digest = credentials.migrate("brand-new-secret", LEGACY_DIGEST)
        assert new_digest is not None
        assert credentials.get_hash_type(new_digest) == "bcrypt"
        assert credentials.verify("brand-new-secret", new_digest)

    def test_migrate_modern_requires_correct_secret(self, credentials):
        digest = credentials.hash("secret123")
        assert credentials.migrate("wrong-secret", digest) is None

        migrated = credentials.migrate("secret123", digest)
        assert migrated is not None and migrated != digest
        assert credentials.verify("secret123", migrated)

    def test_migrate_unknown_format(self, credentials):
        assert credentials.migrate("secret123", "garbage") is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestAsyncHashing:
    """Hashing runs on the service's worker pool."""

    async def test_hash_and_verify_async(self, credentials):
        digest = await credentials.hash_async("secret123")
        assert await credentials.verify_async("secret123", digest) is True
        assert await credentials.verify_async("other-secret", digest) is False

    async def test_hash_async_propagates_errors(self, credentials):
        with pytest.raises(HashingError):
            await credentials.hash_async("abc")

    async def test_migrate_async(self, credentials):
        assert await credentials.migrate_async("secret123", LEGACY_DIGEST) is not None


@pytest.mark.unit
class TestPasswordHelpers:
    def test_generate_secure_password(self, credentials):
        password = credentials.generate_secure_password(20)
        assert len(password) == 20
        assert password != credentials.generate_secure_password(20)

    def test_strong_password(self, credentials):
        result = credentials.validate_password_strength("Tr1cky!Passw0rd")
        assert result["is_valid"] is True
        assert result["score"] == 5
        assert result["strength"] == "Strong"

    def test_weak_password(self, credentials):
        result = credentials.validate_password_strength("abc")
        assert result["is_valid"] is False
        assert any("at least 6" in f for f in result["feedback"])

    def test_common_password_penalised(self, credentials):
        result = credentials.validate_password_strength("password")
        assert "Password is too common" in result["feedback"]
        assert result["is_valid"] is False
