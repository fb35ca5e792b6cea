"""Role assignment CLI commands."""

import click

from resourcegate.auth import RoleAssignment, RoleAssignmentStore
from resourcegate.cli.config import load_config


def _store(database_url: str | None) -> RoleAssignmentStore:
    return RoleAssignmentStore(database_url or load_config().database_url)


database_option = click.option(
    "--database-url",
    default=None,
    help="SQLAlchemy URL (defaults to DATABASE_URL / RESOURCEGATE_DB_PATH).",
)


@click.group()
def roles():
    """Role assignment commands."""
    pass


@roles.command()
@click.argument("user_id")
@click.option("--tenant", "tenant_id", default=None, help="Tenant id (omit for a tenant-less assignment).")
@click.option("--role", default=None, help="Role slug, used to pick validation field sets.")
@click.option(
    "--permission",
    "-p",
    "permissions",
    multiple=True,
    required=True,
    help="Permission string: '*', '{slug}.*' or '{slug}.{action}'. Repeatable.",
)
@database_option
def grant(user_id: str, tenant_id: str | None, role: str | None, permissions: tuple[str, ...], database_url: str | None):
    """Grant USER_ID a role in a tenant, replacing any previous assignment."""
    store = _store(database_url)
    try:
        store.grant(RoleAssignment(user_id, tenant_id, frozenset(permissions), role))
    finally:
        store.dispose()
    where = f"tenant {tenant_id}" if tenant_id else "no tenant"
    click.echo(f"Granted {', '.join(sorted(permissions))} to {user_id} in {where}")


@roles.command()
@click.argument("user_id")
@click.option("--tenant", "tenant_id", default=None)
@database_option
def revoke(user_id: str, tenant_id: str | None, database_url: str | None):
    """Remove USER_ID's assignment in a tenant."""
    store = _store(database_url)
    try:
        removed = store.revoke(user_id, tenant_id)
    finally:
        store.dispose()
    if not removed:
        click.echo(f"No assignment for {user_id}", err=True)
        raise SystemExit(1)
    click.echo(f"Revoked assignment for {user_id}")


@roles.command("list")
@click.option("--tenant", "tenant_id", default=None, help="Only assignments in this tenant.")
@database_option
def list_cmd(tenant_id: str | None, database_url: str | None):
    """List role assignments."""
    store = _store(database_url)
    try:
        assignments = store.list_all(tenant_id)
    finally:
        store.dispose()

    if not assignments:
        click.echo("No role assignments.")
        return
    for a in assignments:
        tenant = a.tenant_id or "-"
        role = a.role or "-"
        click.echo(f"{a.user_id}\t{tenant}\t{role}\t{','.join(sorted(a.permissions))}")
