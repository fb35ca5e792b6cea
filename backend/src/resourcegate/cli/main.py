"""resourcegate CLI entry point."""

import click


@click.group()
def cli():
    """resourcegate: multi-tenant resource access layer CLI."""
    pass


# Register subcommand groups
from resourcegate.cli.registry_cmd import registry  # noqa: E402
from resourcegate.cli.roles_cmd import roles  # noqa: E402

cli.add_command(registry)
cli.add_command(roles)
