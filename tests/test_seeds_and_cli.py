"""Tests for bootstrap seeds and the authcorectl CLI."""

import pytest
from sqlalchemy.orm import sessionmaker
from typer.testing import CliRunner

from authcore.cli import app as cli_app
from authcore.core.config import settings
from authcore.core.default_roles import DEFAULT_ROLES
from authcore.core.permissions import load_permission_list
from authcore.db.seeds.seed_roles import seed_roles
from authcore.db.seeds.seed_super_admin import seed_super_admin
from authcore.models.role import Role

runner = CliRunner()


@pytest.mark.integration
class TestSeeds:
    def test_seed_roles_is_idempotent(self, db_session):
        assert seed_roles(db_session) == len(DEFAULT_ROLES)
        assert seed_roles(db_session) == 0

        roles = db_session.query(Role).all()
        assert all(r.is_system_role for r in roles)
        by_name = {r.name: r for r in roles}
        assert load_permission_list(by_name["super_admin"].permissions_json) == ["*"]

    def test_seed_super_admin(self, db_session, credentials, workflow, evaluator):
        assert seed_super_admin(db_session, credentials, workflow) is None  # roles missing

        seed_roles(db_session)
        admin = seed_super_admin(db_session, credentials, workflow)

        assert admin.email == settings.SUPER_ADMIN_EMAIL
        assert admin.role == "super_admin"
        assert credentials.verify(settings.SUPER_ADMIN_PASSWORD, admin.hashed_password)
        assert evaluator.check(db_session, admin.id, "audit.purge") is True

        again = seed_super_admin(db_session, credentials, workflow)
        assert again.id == admin.id


@pytest.mark.unit
class TestCli:
    def test_credentials_inspect_legacy(self):
        result = runner.invoke(cli_app, ["credentials", "inspect", "$argon2id$v=19$m=65536,t=3,p=4$abc$def"])
        assert result.exit_code == 0
        assert "type:          argon2" in result.output
        assert "needs_upgrade: True" in result.output
        assert "needs_reset:   True" in result.output

    def test_credentials_inspect_unknown(self):
        result = runner.invoke(cli_app, ["credentials", "inspect", "plaintext"])
        assert result.exit_code == 0
        assert "type:          unknown" in result.output
        assert "needs_upgrade: False" in result.output

    def test_audit_purge_requires_confirmation(self):
        result = runner.invoke(cli_app, ["audit", "purge", "--days", "30"], input="n\n")
        assert result.exit_code != 0


@pytest.mark.integration
class TestDbSeedCommand:
    def test_seed_on_fresh_database(self, engine, monkeypatch):
        monkeypatch.setattr("authcore.db.session.SessionLocal", sessionmaker(bind=engine))

        first = runner.invoke(cli_app, ["db", "seed"])
        assert first.exit_code == 0, first.output
        assert (
            f"Seeded {len(DEFAULT_ROLES)} role(s); super admin: {settings.SUPER_ADMIN_EMAIL}"
            in first.output
        )

        second = runner.invoke(cli_app, ["db", "seed"])
        assert second.exit_code == 0, second.output
        assert f"Seeded 0 role(s); super admin: {settings.SUPER_ADMIN_EMAIL}" in second.output
