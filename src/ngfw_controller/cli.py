"""Cloud NGFW controller CLI (ngfwctl).

One-shot operations against the same engine the controller loop runs.

Usage:
    ngfwctl validate ./specs                     # Validate spec files
    ngfwctl apply ./specs --dry-run              # Plan a sync pass
    ngfwctl apply ./specs --prune                # Sync and delete undeclared objects
    ngfwctl id encode firewall 111 us-east-1 fw1 # Build a composite id
    ngfwctl id decode certificate stack1:cert1   # Split a composite id
    ngfwctl read certificate -f rulestack=stack1 -f name=cert1 --config-type running
    ngfwctl import rulestack stack1              # Adopt an existing object
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import click
import yaml

from .client import ClientFactoryError, NotFoundError, build_clients
from .config import Config, ConfigurationError
from .identifiers import IdentifierFormatError, decode_id, encode_id
from .kinds import KINDS, get_kind
from .phase import ConfigPhase
from .reconciler import Reconciler
from .spec_loader import SpecLoadError, declared_key, load_specs
from .state import DeclaredState
from .state_store import StateStore, StateStoreError
from .sync import Syncer, SyncResult

DEFAULT_STATE_FILE = "./ngfw-state.yaml"

KIND_CHOICE = click.Choice(sorted(KINDS))
CONFIG_TYPE_CHOICE = click.Choice([p.value for p in ConfigPhase if p.value])


def _make_config(ctx: click.Context, specs_dir: Path, **overrides: Any) -> Config:
    """Build a validated Config from the global options.

    Raises:
        click.ClickException: If validation fails.
    """
    opts = ctx.obj
    try:
        return Config(
            region=opts["region"] or "",
            client_factory=opts["client_factory"] or "",
            specs_dir=specs_dir,
            state_file=opts["state_file"],
            **overrides,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _make_clients(config: Config) -> dict[str, Any]:
    try:
        return build_clients(config)
    except ClientFactoryError as e:
        raise click.ClickException(str(e)) from e


def _make_reconciler(config: Config, kind: str) -> Reconciler:
    client = _make_clients(config).get(kind)
    if client is None:
        raise click.ClickException(f"Client factory provides no client for {kind}")
    return Reconciler(get_kind(kind), client, region=config.region)


def _load_store(path: Path) -> StateStore:
    store = StateStore(path)
    try:
        store.load()
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e
    return store


def _echo_result(result: SyncResult) -> None:
    prefix = "[dry-run] " if result.dry_run else ""
    for obj in result.objects:
        if obj.error is not None:
            click.echo(f"{prefix}error   {obj.key}: {obj.error}", err=True)
            continue
        detail = f" ({', '.join(obj.drift)})" if obj.drift else ""
        click.echo(f"{prefix}{obj.action.value:<7} {obj.key}{detail}")

    summary = ", ".join(f"{k}={v}" for k, v in result.counts.items())
    click.echo(f"{prefix}Summary: {summary}")


# =============================================================================
# CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="ngfwctl")
@click.option("--region", envvar="NGFW_REGION", help="Region the API client is bound to")
@click.option(
    "--client-factory",
    envvar="NGFW_CLIENT_FACTORY",
    help="Client factory as 'package.module:callable'",
)
@click.option(
    "--state-file",
    envvar="STATE_FILE",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="Tracked-object state file",
)
@click.option("--log-level", envvar="LOG_LEVEL", default="WARNING", help="Log level")
@click.pass_context
def cli(
    ctx: click.Context,
    region: str | None,
    client_factory: str | None,
    state_file: Path,
    log_level: str,
) -> None:
    """Cloud NGFW controller CLI (ngfwctl).

    \b
    Quick Start:
        ngfwctl validate ./specs         # Check spec files
        ngfwctl apply ./specs --dry-run  # Show what a sync pass would do
    """
    logging.basicConfig(level=log_level.upper())
    ctx.ensure_object(dict)
    ctx.obj.update(region=region, client_factory=client_factory, state_file=state_file)


# =============================================================================
# Spec Commands
# =============================================================================


@cli.command()
@click.argument("specs_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
def validate(specs_dir: Path) -> None:
    """Validate all spec files in SPECS_DIR."""
    try:
        objects = load_specs(specs_dir)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    for obj in objects:
        click.echo(f"ok      {obj.key}  ({obj.source})")
    click.echo(f"{len(objects)} object(s) valid")


@cli.command()
@click.argument("specs_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Plan only, without mutating calls")
@click.option("--prune", is_flag=True, help="Delete tracked objects no longer declared")
@click.pass_context
def apply(ctx: click.Context, specs_dir: Path, dry_run: bool, prune: bool) -> None:
    """Run one sync pass for the objects declared in SPECS_DIR."""
    config = _make_config(ctx, specs_dir, dry_run=dry_run, prune=prune)

    try:
        objects = load_specs(specs_dir)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    store = _load_store(config.state_file)
    syncer = Syncer(
        _make_clients(config), store, region=config.region, dry_run=dry_run, prune=prune
    )

    try:
        result = asyncio.run(syncer.sync(objects))
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e

    _echo_result(result)
    if not result.success:
        ctx.exit(1)


# =============================================================================
# Identifier Commands
# =============================================================================


@cli.group("id")
def id_group() -> None:
    """Encode and decode composite ids."""
    pass


@id_group.command("encode")
@click.argument("kind", type=KIND_CHOICE)
@click.argument("parts", nargs=-1)
def id_encode(kind: str, parts: tuple[str, ...]) -> None:
    """Join PARTS into the composite id of KIND."""
    resource_kind = get_kind(kind)
    if len(parts) != resource_kind.arity:
        raise click.UsageError(
            f"{kind} ids have {resource_kind.arity} component(s): "
            f"{', '.join(resource_kind.id_fields)}"
        )
    click.echo(encode_id(*parts))


@id_group.command("decode")
@click.argument("kind", type=KIND_CHOICE)
@click.argument("object_id")
def id_decode(kind: str, object_id: str) -> None:
    """Split OBJECT_ID into the named components of KIND."""
    resource_kind = get_kind(kind)
    try:
        parts = decode_id(object_id, resource_kind.arity)
    except IdentifierFormatError as e:
        raise click.ClickException(str(e)) from e

    for name, value in zip(resource_kind.id_fields, parts, strict=True):
        click.echo(f"{name}={value}")


# =============================================================================
# Remote Commands
# =============================================================================


def _parse_fields(values: tuple[str, ...]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--field")
        fields[key] = value
    return fields


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.option("--field", "-f", "field_values", multiple=True, help="Identity field as key=value")
@click.option(
    "--config-type",
    type=CONFIG_TYPE_CHOICE,
    default=None,
    help="Configuration copy to read (default: candidate)",
)
@click.pass_context
def read(
    ctx: click.Context, kind: str, field_values: tuple[str, ...], config_type: str | None
) -> None:
    """Look up an existing object of KIND by its identity fields."""
    config = _make_config(ctx, Path.cwd())
    reconciler = _make_reconciler(config, kind)

    state = DeclaredState(_parse_fields(field_values))
    phase = ConfigPhase.parse(config_type)
    asyncio.run(reconciler.read_data_source(state, phase))

    if not state.id:
        raise click.ClickException(f"{kind} not found")

    click.echo(yaml.safe_dump({"id": state.id, **state.fields}, sort_keys=True), nl=False)


@cli.command("import")
@click.argument("kind", type=KIND_CHOICE)
@click.argument("object_id")
@click.pass_context
def import_object(ctx: click.Context, kind: str, object_id: str) -> None:
    """Adopt the existing object OBJECT_ID of KIND into the state file."""
    config = _make_config(ctx, Path.cwd())
    reconciler = _make_reconciler(config, kind)
    store = _load_store(config.state_file)

    state = DeclaredState()
    try:
        asyncio.run(reconciler.import_state(state, object_id))
    except (IdentifierFormatError, NotFoundError) as e:
        raise click.ClickException(str(e)) from e

    key = declared_key(kind, state.fields)
    store.put(key, state.id, state.fields)
    try:
        store.save()
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Imported {key} (id {state.id})")


if __name__ == "__main__":
    cli()
