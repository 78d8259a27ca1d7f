"""CLI interface for mlmodules."""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import DocumentStoreClient
from .config import config
from .exceptions import (
    ConfigurationError,
    DiscoveryError,
    DocumentStoreError,
    StateStoreError,
)
from .modules import LoadOptions, ModulesLoader, ModuleStateStore, load_options_from_json
from .modules.state import default_state_file
from .output import OutputFormatter

logger = logging.getLogger(__name__)


def parse_tokens(values: tuple[str, ...]) -> dict[str, str]:
    """Parse KEY=VALUE token definitions.

    Raises:
        click.BadParameter: If a value has no "="
    """
    tokens: dict[str, str] = {}
    for value in values:
        key, sep, replacement = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(
                f"Token must be KEY=VALUE, got {value!r}", param_hint="--token"
            )
        tokens[key] = replacement
    return tokens


def _make_client(ctx: Any) -> DocumentStoreClient:
    obj = ctx.obj
    return DocumentStoreClient(
        host=obj["host"],
        port=obj["port"],
        username=obj["username"],
        password=obj["password"],
        database=obj["database"],
    )


@click.group()
@click.option("--host", envvar="MLMODULES_HOST", help="Document store host")
@click.option("--port", envvar="MLMODULES_PORT", type=int, help="REST API server port")
@click.option("--username", "-u", envvar="MLMODULES_USERNAME", help="User name")
@click.option("--password", "-p", envvar="MLMODULES_PASSWORD", help="Password")
@click.option(
    "--database",
    "-d",
    envvar="MLMODULES_DATABASE",
    help="Modules database (defaults to the server's database)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="mlmodules")
@click.pass_context
def main(
    ctx: Any,
    host: Optional[str],
    port: Optional[int],
    username: Optional[str],
    password: Optional[str],
    database: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """mlmodules - Load modules incrementally into a document store."""
    ctx.ensure_object(dict)
    ctx.obj["host"] = host
    ctx.obj["port"] = port
    ctx.obj["username"] = username
    ctx.obj["password"] = password
    ctx.obj["database"] = database
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("mlmodules").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument(
    "root_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--options-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with load options (command line values take precedence)",
)
@click.option("--include", "-i", help="Regex the file path must fully match")
@click.option(
    "--exclude", "-e", multiple=True, help="File name to skip (repeatable)"
)
@click.option(
    "--token", "-t", multiple=True, help="Token replacement KEY=VALUE (repeatable)"
)
@click.option(
    "--batch-size",
    "-b",
    type=int,
    default=None,
    help="Files per batch; below 1 loads everything in one batch (default: 50)",
)
@click.option("--workers", "-j", type=int, default=None, help="Max concurrent writes")
@click.option(
    "--min-timestamp",
    type=float,
    default=None,
    help="Skip files modified before this Unix timestamp",
)
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="File storing load timestamps (default: ~/.config/mlmodules/state/)",
)
@click.option("--no-state", is_flag=True, help="Ignore saved load timestamps")
@click.option(
    "--reset-state", is_flag=True, help="Forget load timestamps before loading"
)
@click.option("--dry-run", is_flag=True, help="Show what would be loaded")
@click.pass_context
def load(
    ctx: Any,
    root_dir: Path,
    options_file: Optional[Path],
    include: Optional[str],
    exclude: tuple[str, ...],
    token: tuple[str, ...],
    batch_size: Optional[int],
    workers: Optional[int],
    min_timestamp: Optional[float],
    state_file: Optional[Path],
    no_state: bool,
    reset_state: bool,
    dry_run: bool,
) -> None:
    """Load the modules of ROOT_DIR into the modules database.

    Only files that are new or modified since the previous load are
    written.

    Examples:
        mlmodules load src/main/ml-modules
        mlmodules load ./modules -t %%DATABASE%%=my-content -b 20
        mlmodules load ./modules -i '.*/ext/.*' --dry-run
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        options = load_options_from_json(options_file) if options_file else LoadOptions()
        overrides: dict[str, Any] = {}
        if include is not None:
            overrides["include_pattern"] = include
        if exclude:
            overrides["exclude_filenames"] = options.exclude_filenames + exclude
        if token:
            overrides["tokens"] = {**options.tokens, **parse_tokens(token)}
        if batch_size is not None:
            overrides["batch_size"] = batch_size
        if workers is not None:
            overrides["max_workers"] = workers
        if min_timestamp is not None:
            overrides["minimum_timestamp"] = min_timestamp
        options = dataclasses.replace(options, **overrides)
        options.validate()
    except ConfigurationError as e:
        out.error(str(e))
        ctx.exit(1)

    state_store: Optional[ModuleStateStore] = None
    if not no_state:
        state_store = ModuleStateStore(state_file or default_state_file(root_dir))

    client = _make_client(ctx)
    loader = ModulesLoader(client, out)
    try:
        if state_store is not None:
            if reset_state:
                state_store.reset()
            state_store.open()
        report = loader.run(root_dir, options, state_store, dry_run=dry_run)
    except (ConfigurationError, DiscoveryError, StateStoreError) as e:
        out.error(str(e))
        ctx.exit(1)
    except KeyboardInterrupt:
        out.warning("\nLoad cancelled by user")
        ctx.exit(130)
    finally:
        if state_store is not None:
            state_store.close()
        client.close()

    if out.json_output:
        out.output_json(
            {
                "dry_run": dry_run,
                "loaded": [f.uri for f in report.uploaded],
                "skipped": len(report.skipped),
                "batches": report.batches,
                "errors": [
                    {"file": e.file.relative_path, "uri": e.file.uri, "error": str(e.cause)}
                    for e in report.failures
                ],
            }
        )

    if report.failures:
        ctx.exit(1)


@main.command(name="reset-state")
@click.argument("root_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="File storing load timestamps",
)
@click.pass_context
def reset_state(ctx: Any, root_dir: Path, state_file: Optional[Path]) -> None:
    """Forget load timestamps so the next load writes every file."""
    out: OutputFormatter = ctx.obj["out"]
    store = ModuleStateStore(state_file or default_state_file(root_dir))
    try:
        store.reset()
    except StateStoreError as e:
        out.error(str(e))
        ctx.exit(1)
    out.success(f"Cleared module state at {store.state_file}")


@main.command(name="eval")
@click.argument("xquery")
@click.pass_context
def eval_command(ctx: Any, xquery: str) -> None:
    """Evaluate an XQuery expression and print the result."""
    out: OutputFormatter = ctx.obj["out"]
    client = _make_client(ctx)
    try:
        result = client.eval_query(xquery)
    except DocumentStoreError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        client.close()

    if out.json_output:
        out.output_json({"result": result})
    else:
        click.echo(result)


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show the connection settings in use."""
    out: OutputFormatter = ctx.obj["out"]
    obj = ctx.obj
    items = [
        ("Host", obj["host"] or config.host),
        ("Port", str(obj["port"] or config.port)),
        ("User", obj["username"] or config.username or "(none)"),
        ("Database", obj["database"] or config.database or "(server default)"),
        ("State directory", str(config.state_dir)),
    ]
    if out.json_output:
        out.output_json(dict(items))
    else:
        out.print_summary("mlmodules", items)


if __name__ == "__main__":
    main()
