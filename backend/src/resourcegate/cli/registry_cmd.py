"""Registry CLI commands: validate and show."""

from pathlib import Path

import click

from resourcegate.cli.config import load_config
from resourcegate.metadata import MetadataLoader, ResourceRegistry
from resourcegate.metadata.loader import OWNERSHIP_GLOBAL
from resourcegate.tenancy import TenantScopeResolver


def _load(metadata_path: Path | None):
    config = load_config()
    path = metadata_path or config.metadata_path
    if not path.exists():
        click.echo(f"Error: Metadata directory not found at {path}", err=True)
        raise SystemExit(1)

    try:
        loader = MetadataLoader(path)
        loader.load_all()
        registry = ResourceRegistry.from_loader(loader)
    except Exception as e:
        click.echo(click.style(f"Metadata failed to load: {e}", fg="red"), err=True)
        raise SystemExit(1)
    return registry, TenantScopeResolver(registry, config.tenancy)


@click.group()
def registry():
    """Resource registry commands."""
    pass


@registry.command()
@click.option("--strict", is_flag=True, default=False, help="Treat warnings as errors.")
@click.option(
    "--metadata",
    "metadata_path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Metadata directory (defaults to RESOURCEGATE_METADATA_PATH or ./metadata).",
)
def validate(strict: bool, metadata_path: Path | None):
    """Load metadata and report each resource's tenant scope."""
    reg, scopes = _load(metadata_path)

    warnings = []
    click.echo(f"Loaded {len(reg.slugs())} resources:")
    for descriptor in sorted(reg.descriptors(), key=lambda d: d.slug):
        resolution = scopes.resolution(descriptor.entity)
        click.echo(f"  ✓ {descriptor.slug} ({descriptor.entity}, {len(descriptor.fields)} fields, scope: {resolution.describe()})")
        declared = descriptor.ownership
        if scopes.enabled and declared and declared != OWNERSHIP_GLOBAL and not resolution.scoped:
            warnings.append(f"{descriptor.slug}: ownership '{declared}' did not resolve; resource is global")

    for warning in warnings:
        click.echo(click.style(f"  ! {warning}", fg="yellow"))

    if warnings and strict:
        click.echo(click.style(f"\n{len(warnings)} warning(s) treated as errors", fg="red", bold=True))
        raise SystemExit(1)

    click.echo(click.style("\nAll metadata is valid.", fg="green", bold=True))


@registry.command()
@click.argument("slug")
@click.option(
    "--metadata",
    "metadata_path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def show(slug: str, metadata_path: Path | None):
    """Show one resource: fields, relationships, query options and scope."""
    reg, scopes = _load(metadata_path)
    if not reg.has(slug):
        click.echo(f"Error: Unknown resource '{slug}'", err=True)
        raise SystemExit(1)

    descriptor = reg.resolve(slug)
    click.echo(f"{descriptor.slug} ({descriptor.entity})")
    click.echo(f"  scope: {scopes.resolution(descriptor.entity).describe()}")
    click.echo(f"  soft deletes: {'yes' if descriptor.soft_deletes else 'no'}")

    click.echo("  fields:")
    for field in descriptor.fields:
        flags = [f for f, on in (("pk", field.primary_key), ("unique", field.unique), ("read-only", field.read_only)) if on]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"    {field.name}: {field.type}{suffix}")

    if descriptor.relationships:
        click.echo("  relationships:")
        for edge in descriptor.relationships:
            click.echo(f"    {edge.name} -> {edge.target} ({edge.cardinality.value}, key {edge.foreign_key})")

    query = descriptor.query
    for label, values in (
        ("filters", query.filters),
        ("sorts", query.sorts),
        ("includes", query.includes),
        ("search", query.search),
    ):
        if values:
            click.echo(f"  {label}: {', '.join(sorted(values))}")
