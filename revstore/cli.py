from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from revstore.errors import RevstoreError
from revstore.models import Document

T = TypeVar("T")


def _parse_pairs(values: tuple[str, ...], option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for value in values:
        key, sep, rest = value.partition("=")
        if not sep or not key:
            msg = f"{option} expects KEY=VALUE, got {value!r}"
            raise click.BadParameter(msg)
        pairs[key] = rest
    return pairs


def _predicate(where: tuple[str, ...]) -> Callable[[Document], bool]:
    """String-equality predicate from repeated ``--where FIELD=VALUE``; none matches all."""
    conditions = _parse_pairs(where, "--where")

    def predicate(doc: Document) -> bool:
        return all(field in doc and str(doc[field]) == value for field, value in conditions.items())

    return predicate


def _run(ctx: click.Context, operation: Callable[[Any], Awaitable[T]]) -> T:
    """Build the facade from settings, run ``operation`` on it, translate errors."""
    from revstore.db import RevisionDB

    async def _main() -> T:
        async with RevisionDB.from_settings(ctx.obj["settings"]) as db:
            return await operation(db)

    try:
        return asyncio.run(_main())
    except RevstoreError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("--backend", type=click.Choice(["memory", "local", "s3", "github"]), default=None, help="Override REVSTORE_BACKEND.")
@click.option("--data-root", default=None, help="Override REVSTORE_DATA_ROOT (local backend).")
@click.option("--log-level", default=None, help="Override REVSTORE_LOG_LEVEL.")
@click.option("--log-json", is_flag=True, default=None, help="Log JSON records (REVSTORE_LOG_JSON).")
@click.pass_context
def main(
    ctx: click.Context, backend: str | None, data_root: str | None, log_level: str | None, log_json: bool | None
) -> None:
    """revstore - document collections on a revision-checked content store."""
    from revstore.log import setup_logging
    from revstore.settings import RevstoreSettings

    options = {"backend": backend, "data_root": data_root, "log_level": log_level, "log_json": log_json}
    settings = RevstoreSettings().model_copy(update={k: v for k, v in options.items() if v})
    setup_logging(settings.log_level, json_logs=settings.log_json)
    ctx.obj = {"settings": settings}


@main.command()
@click.argument("path")
@click.pass_context
def get(ctx: click.Context, path: str) -> None:
    """Print the document stored at PATH."""
    document = _run(ctx, lambda db: db.get(path))
    if document is None:
        raise click.ClickException(f"{path} not found")
    _echo_json(document)


@main.command()
@click.argument("path")
@click.option("--where", multiple=True, help="FIELD=VALUE filter (repeatable).")
@click.pass_context
def collection(ctx: click.Context, path: str, where: tuple[str, ...]) -> None:
    """Print the documents of the collection at PATH."""
    predicate = _predicate(where)
    _echo_json(_run(ctx, lambda db: db.query(path, predicate)))


@main.command()
@click.argument("source")
@click.argument("dest")
@click.option("--where", multiple=True, help="FIELD=VALUE selecting documents to move (repeatable).")
@click.option("--map", "mapping", multiple=True, help="NEW=OLD field rename applied to moved documents.")
@click.option("--timestamp-field", default=None, help="Stamp moved documents with the current time.")
@click.pass_context
def transfer(
    ctx: click.Context,
    source: str,
    dest: str,
    where: tuple[str, ...],
    mapping: tuple[str, ...],
    timestamp_field: str | None,
) -> None:
    """Move matching documents from SOURCE to DEST."""
    from revstore.formats.base import ConversionOptions

    predicate = _predicate(where)
    field_mapping = _parse_pairs(mapping, "--map")
    conversion = None
    if field_mapping or timestamp_field:
        conversion = ConversionOptions(field_mapping=field_mapping, timestamp_field=timestamp_field)

    result = _run(ctx, lambda db: db.transfer(source, dest, predicate, conversion=conversion))
    _echo_json(result.model_dump(mode="json"))


@main.command()
@click.argument("source")
@click.argument("dest")
@click.option("--map", "mapping", multiple=True, help="NEW=OLD field rename.")
@click.option("--timestamp-field", default=None, help="Stamp documents with the current time.")
@click.pass_context
def convert(ctx: click.Context, source: str, dest: str, mapping: tuple[str, ...], timestamp_field: str | None) -> None:
    """Convert SOURCE into a new container DEST (format taken from the suffixes)."""
    from revstore.formats.base import ConversionOptions

    options = ConversionOptions(field_mapping=_parse_pairs(mapping, "--map"), timestamp_field=timestamp_field)
    _run(ctx, lambda db: db.convert_format(source, dest, options))
    click.echo(f"Converted {source} -> {dest}.")


@main.command()
@click.argument("source")
@click.argument("dest")
@click.option("--where", multiple=True, help="FIELD=VALUE predicate of the transfer to verify.")
@click.pass_context
def verify(ctx: click.Context, source: str, dest: str, where: tuple[str, ...]) -> None:
    """Exit non-zero if SOURCE still holds documents matching the predicate."""
    predicate = _predicate(where)
    consistent = _run(ctx, lambda db: db.verify_consistency(source, dest, predicate))
    click.echo("consistent" if consistent else "inconsistent")
    if not consistent:
        ctx.exit(1)


@main.command()
def formats() -> None:
    """List supported document formats."""
    from revstore.formats.converter import FormatRegistry

    for name in FormatRegistry().supported():
        click.echo(name)


if __name__ == "__main__":
    main()
