"""Access core CLI tool (authcorectl)."""

import typer

app = typer.Typer(name="authcorectl", help="Storefront access core CLI")
db_app = typer.Typer(help="Database management commands")
roles_app = typer.Typer(help="Role inspection commands")
audit_app = typer.Typer(help="Audit retention commands")
credentials_app = typer.Typer(help="Credential digest tools")
app.add_typer(db_app, name="db")
app.add_typer(roles_app, name="roles")
app.add_typer(audit_app, name="audit")
app.add_typer(credentials_app, name="credentials")


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from sqlalchemy.engine import make_url
    from authcore.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host or "localhost",
        port=url.port or 3306,
        user=url.username,
        password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    import authcore.models  # noqa: F401
    from authcore.db.base import Base
    from authcore.db.session import engine

    Base.metadata.create_all(bind=engine)
    typer.echo(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


@db_app.command("seed")
def db_seed():
    """Seed built-in roles and the super-admin."""
    from authcore.db.session import SessionLocal
    from authcore.db.seeds.seed_roles import seed_roles
    from authcore.db.seeds.seed_super_admin import seed_super_admin

    db = SessionLocal()
    try:
        added = seed_roles(db)
        admin = seed_super_admin(db)
        admin_email = admin.email if admin else "skipped"
    finally:
        db.close()
    typer.echo(f"Seeded {added} role(s); super admin: {admin_email}")


@roles_app.command("list")
def roles_list(
    active_only: bool = typer.Option(False, "--active-only", help="Hide inactive roles"),
):
    """List roles with their user counts."""
    from authcore.db.session import SessionLocal
    from authcore.services.role_service import role_store

    db = SessionLocal()
    try:
        roles = role_store.list_roles(db, is_active=True if active_only else None)
    finally:
        db.close()
    for role in roles:
        flags = "system" if role.is_system_role else "custom"
        if not role.is_active:
            flags += ", inactive"
        typer.echo(
            f"  [{role.priority:>3}] {role.name} ({flags}) "
            f"users={role.user_count} permissions={len(role.permissions)}"
        )


@audit_app.command("sweep")
def audit_sweep():
    """Delete audit entries past their retention date."""
    from authcore.db.session import SessionLocal
    from authcore.services.audit_service import audit_trail

    db = SessionLocal()
    try:
        deleted = audit_trail.sweep_expired(db)
    finally:
        db.close()
    typer.echo(f"Removed {deleted} expired audit entries")


@audit_app.command("purge")
def audit_purge(
    days: int = typer.Option(..., "--days", min=1, help="Delete entries older than this"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
):
    """Delete audit entries older than N days, regardless of retention."""
    if not yes and not typer.confirm(f"Delete all audit entries older than {days} days?"):
        raise typer.Abort()

    from authcore.core.audit_policy import AuditAction
    from authcore.db.session import SessionLocal
    from authcore.services.audit_service import audit_trail

    db = SessionLocal()
    try:
        deleted = audit_trail.purge_older_than(db, days)
        audit_trail.record(
            db,
            AuditAction.AUDIT_PURGE,
            resource_type="audit_log",
            details={"days": days, "deleted": deleted, "source": "cli"},
        )
    finally:
        db.close()
    typer.echo(f"Purged {deleted} audit entries")


@credentials_app.command("inspect")
def credentials_inspect(digest: str = typer.Argument(..., help="Stored digest")):
    """Show how a stored digest would be treated."""
    from authcore.services.credential_service import credential_service

    typer.echo(f"type:          {credential_service.get_hash_type(digest)}")
    typer.echo(f"needs_upgrade: {credential_service.needs_upgrade(digest)}")
    typer.echo(f"needs_reset:   {credential_service.needs_reset(digest)}")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(True, help="Auto-reload"),
):
    """Start the FastAPI development server."""
    import uvicorn
    uvicorn.run("authcore.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
