"""CLI tools for support triage administration."""

import sys

import click

from support_triage.core.errors import SupportTriageError
from support_triage.core.permissions import Capability, can
from support_triage.core.security import create_session_token
from support_triage.db.base import Base
from support_triage.db.enums import Role
from support_triage.db.models import User
from support_triage.db.session import SessionLocal, engine
from support_triage.schemas.auth import UserSession
from support_triage.services import thread_export_service, thread_query_service


@click.group()
def cli():
    """Support triage CLI tools."""
    pass


@cli.command("init-db")
def init_db():
    """
    Create all tables on the configured database.

    Development convenience; production schemas are managed by alembic.
    """
    Base.metadata.create_all(bind=engine)
    click.echo(f"✓ Schema created on {engine.url.render_as_string(hide_password=True)}")


@cli.command("create-user")
@click.option("--email", required=True, help="User email address")
@click.option("--name", default=None, help="Display name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.SUPPORT.value,
    show_default=True,
    help="Marketplace role",
)
@click.option("--print-token", is_flag=True, help="Also print a session token for API calls")
def create_user(email: str, name: str | None, role: str, print_token: bool):
    """
    Create a user (typically a support or admin staff member).

    Example:
        support-triage create-user --email ops@example.com --role admin --print-token
    """
    db = SessionLocal()
    try:
        email = email.strip().lower()
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            click.echo(f"❌ User {email} already exists")
            sys.exit(1)

        user = User(email=email, name=name, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)

        click.echo(f"✓ Created user: {email}")
        click.echo(f"  ID: {user.id}")
        click.echo(f"  Role: {role}")
        if print_token:
            token = create_session_token(user.id, user.role, user.token_version)
            click.echo(f"  Session token: {token}")
    finally:
        db.close()


@cli.command("revoke-sessions")
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """Invalidate every issued session token for a user."""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            click.echo(f"❌ User {email} not found")
            sys.exit(1)

        user.token_version += 1
        db.commit()
        click.echo(f"✓ Revoked sessions for {email} (token_version={user.token_version})")
    finally:
        db.close()


@cli.command("export-threads")
@click.option("--admin-email", required=True, help="Admin the export is audited as")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Output file (default: support-threads-YYYY-MM-DD.csv)")
@click.option("--status", default=None, help="Comma-separated statuses")
@click.option("--source", default=None, help="Comma-separated sources")
@click.option("--priority", default=None, help="Comma-separated priorities")
@click.option("--tags", default=None, help="Comma-separated tags")
@click.option("--search", default=None, help="Subject / preview substring")
@click.option("--from", "date_from", default=None, help="Created on or after (YYYY-MM-DD)")
@click.option("--to", "date_to", default=None, help="Created on or before (YYYY-MM-DD)")
@click.option("--sla-breach", type=click.Choice(["true", "false"]), default=None)
def export_threads(
    admin_email: str,
    output: str | None,
    status: str | None,
    source: str | None,
    priority: str | None,
    tags: str | None,
    search: str | None,
    date_from: str | None,
    date_to: str | None,
    sla_breach: str | None,
):
    """Write the thread CSV export to a file, audited like the HTTP export."""
    db = SessionLocal()
    try:
        admin = db.query(User).filter(User.email == admin_email.strip().lower()).first()
        if not admin or not admin.is_active:
            click.echo(f"❌ Active user {admin_email} not found")
            sys.exit(1)

        session = UserSession(
            user_id=admin.id, role=Role(admin.role), email=admin.email, name=admin.name
        )
        if not can(session, Capability.THREADS_EXPORT):
            click.echo(f"❌ {admin_email} is not allowed to export threads")
            sys.exit(1)

        params = {
            key: value
            for key, value in {
                "status": status,
                "source": source,
                "priority": priority,
                "tags": tags,
                "search": search,
                "from": date_from,
                "to": date_to,
                "slaBreach": sla_breach,
            }.items()
            if value is not None
        }
        try:
            filters = thread_query_service.parse_filters(params, caller_id=admin.id)
            export = thread_export_service.export_threads(
                db,
                actor=session,
                filters=filters,
                ordering=thread_query_service.select_ordering(filters),
            )
        except SupportTriageError as e:
            click.echo(f"❌ Error: {e.message}")
            sys.exit(1)

        path = output or export.filename
        with open(path, "w", encoding="utf-8", newline="") as handle:
            handle.write(export.content)
        click.echo(f"✓ Exported {export.count} threads to {path}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
