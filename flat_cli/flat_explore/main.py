"""flat-explore CLI entrypoint."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from flat_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors, pass_cli_context
from flat_cli.shared.database import connect
from flat_cli.shared.logging import Logger
from flat_cli.shared.state import StateStore

from . import pagination, render
from .clipboard import ClipboardSink, MemoryClipboard, SystemClipboard
from .dispatcher import Dispatcher
from .messages import BackendMessage, QueryCommand, QueryResult
from .session import ExplorerSession
from .types import QueryRequest, SessionConfig
from .view import ViewManager, build_create_statement, detect_source
from .watcher import DEFAULT_POLL_INTERVAL

OUTPUT_FORMAT_CHOICES = ("table", "tsv", "csv", "json")
SCHEMA_FORMAT_CHOICES = ("table", "json")

SHELL_HELP = """\
Type SQL and press Enter to run it (auto-query) or stage it (auto-query off).
  <empty line>, :more   load the next page
  :run                  run the current query text
  :copy                 copy the view statement plus the current query
  :auto on|off          toggle running queries as soon as they are entered
  :help                 show this help
  :quit                 leave the shell"""

source_path_argument = click.argument(
    "path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)


@click.group(help="Query CSV and Parquet files with SQL.")
@common_cli_options
@handle_cli_errors
def cli(cli_ctx: CLIContext) -> None:
    """Primary Click group for flat-explore commands."""
    cli_ctx.logger.debug(f"flat-explore using config {cli_ctx.config.source_path}.")


@cli.command("query")
@source_path_argument
@click.argument("sql", required=False)
@click.option("--limit", type=int, help="Rows per page (defaults to the configured chunk size).")
@click.option("--offset", type=int, default=0, show_default=True, help="Rows to skip.")
@click.option(
    "--format",
    "output_format",
    default="table",
    show_default=True,
    type=click.Choice(OUTPUT_FORMAT_CHOICES),
)
@pass_cli_context
@handle_cli_errors
def run_query(
    cli_ctx: CLIContext,
    path: Path,
    sql: str | None,
    limit: int | None,
    offset: int,
    output_format: str,
) -> None:
    """Run one page of SQL against PATH (defaults to the configured query)."""
    session_config = _session_config(cli_ctx)
    page_size = session_config.chunk_size if limit is None else limit
    if page_size <= 0:
        raise click.ClickException("--limit must be a positive integer.")
    if offset < 0:
        raise click.ClickException("--offset must not be negative.")

    with _open_dispatcher(cli_ctx, path, session_config) as dispatcher:
        query = sql if sql is not None else session_config.default_query_for(dispatcher.view.source)
        if not query.strip():
            raise click.ClickException("Query text must not be empty.")

        if offset == 0:
            first = dispatcher.run_query(QueryCommand(sql=query, limit=page_size))
            _raise_on_failure(first)
            columns, rows = list(first.describe or []), list(first.results or [])
        else:
            engine = dispatcher.view.engine
            described = pagination.describe(engine, query)
            window = pagination.fetch_page(
                engine, QueryRequest(sql=query, limit=page_size, offset=offset)
            )
            columns = pagination.label_columns(described, window.columns)
            rows = list(window.rows)

    render.render_page(
        columns,
        rows,
        output_format=output_format,
        logger=cli_ctx.logger,
        offset=offset,
        more_available=pagination.more_available(len(rows), page_size),
    )


@cli.command("schema")
@source_path_argument
@click.argument("sql", required=False)
@click.option(
    "--format",
    "output_format",
    default="table",
    show_default=True,
    type=click.Choice(SCHEMA_FORMAT_CHOICES),
)
@pass_cli_context
@handle_cli_errors
def show_schema(cli_ctx: CLIContext, path: Path, sql: str | None, output_format: str) -> None:
    """Show the columns a query over PATH returns."""
    session_config = _session_config(cli_ctx)
    with _open_dispatcher(cli_ctx, path, session_config) as dispatcher:
        query = sql if sql is not None else session_config.default_query_for(dispatcher.view.source)
        columns = pagination.describe(dispatcher.view.engine, query)
    render.render_columns(columns, output_format=output_format)


@cli.command("copy")
@source_path_argument
@click.argument("sql")
@click.option(
    "--clipboard/--stdout",
    "to_clipboard",
    default=False,
    show_default=True,
    help="Send the script to the system clipboard instead of printing it.",
)
@pass_cli_context
@handle_cli_errors
def copy_query(cli_ctx: CLIContext, path: Path, sql: str, to_clipboard: bool) -> None:
    """Print (or copy) a runnable script: the view statement followed by SQL."""
    sink: ClipboardSink = SystemClipboard() if to_clipboard else MemoryClipboard()
    with _open_dispatcher(cli_ctx, path, _session_config(cli_ctx), clipboard=sink) as dispatcher:
        text = dispatcher.copy_full_query(sql)
    if not to_clipboard:
        click.echo(text, nl=False)


@cli.command("view-sql")
@source_path_argument
@pass_cli_context
@handle_cli_errors
def view_sql(cli_ctx: CLIContext, path: Path) -> None:
    """Print the statement that creates the view over PATH."""
    session_config = _session_config(cli_ctx)
    source = detect_source(path)
    click.echo(build_create_statement(source, session_config.table_name_for(source)))


@cli.command("shell")
@source_path_argument
@click.option("--chunk-size", type=int, help="Rows fetched per page.")
@click.option(
    "--auto-query/--no-auto-query",
    default=None,
    help="Run queries as soon as they are entered (defaults to config).",
)
@click.option(
    "--poll-interval",
    type=float,
    default=DEFAULT_POLL_INTERVAL,
    show_default=True,
    help="Seconds between checks of PATH for changes.",
)
@pass_cli_context
@handle_cli_errors
def shell(
    cli_ctx: CLIContext,
    path: Path,
    chunk_size: int | None,
    auto_query: bool | None,
    poll_interval: float,
) -> None:
    """Browse PATH interactively, one page at a time."""
    session_config = _session_config(cli_ctx, chunk_size=chunk_size, auto_query=auto_query)
    grid = render.ConsoleGridView(cli_ctx.logger.console)
    with ExplorerSession(
        path,
        session_config,
        grid=grid,
        clipboard=SystemClipboard(),
        store=StateStore(),
        logger=cli_ctx.logger,
        poll_interval=poll_interval,
    ) as session:
        cli_ctx.logger.info(SHELL_HELP)
        session.open()
        while True:
            session.pump()
            try:
                line = click.prompt("sql", default="", show_default=False, prompt_suffix="> ")
            except click.Abort:
                break
            if not _handle_shell_line(session, line.strip(), cli_ctx.logger):
                break
            session.pump()


def _handle_shell_line(session: ExplorerSession, line: str, logger: Logger) -> bool:
    """Apply one line of shell input; returns False when the user quits."""
    renderer = session.renderer
    if line in {":q", ":quit", ":exit"}:
        return False
    if line in {"", ":more"}:
        if not renderer.scrolled_to_bottom():
            logger.info("No more rows to load.")
    elif line == ":run":
        if not renderer.execute():
            logger.info("Query unchanged; not re-running.")
    elif line == ":copy":
        renderer.copy()
    elif line.startswith(":auto"):
        setting = line[len(":auto"):].strip().lower()
        if setting not in {"on", "off"}:
            logger.warning("Usage: :auto on|off")
        else:
            renderer.set_auto_query(setting == "on")
            logger.info(f"Auto-query {setting}.")
    elif line == ":help":
        logger.info(SHELL_HELP)
    elif line.startswith(":"):
        logger.warning(f"Unknown command '{line}'. Type :help for commands.")
    else:
        submitted = renderer.change(line)
        if not submitted and not renderer.state.auto_query:
            logger.info("Auto-query is off; type :run to execute.")
    return True


def _session_config(
    cli_ctx: CLIContext,
    *,
    chunk_size: int | None = None,
    auto_query: bool | None = None,
) -> SessionConfig:
    config = cli_ctx.config.with_overrides(chunk_size=chunk_size, auto_query=auto_query)
    return SessionConfig.from_app_config(config)


@contextmanager
def _open_dispatcher(
    cli_ctx: CLIContext,
    path: Path,
    session_config: SessionConfig,
    *,
    clipboard: ClipboardSink | None = None,
) -> Iterator[Dispatcher]:
    """Yield a dispatcher over a freshly built view; replies are returned, not posted."""
    source = detect_source(path)
    logger = cli_ctx.logger.for_session(source.path.name)
    with connect() as engine:
        view = ViewManager(engine, source, session_config)
        view.create_view()
        logger.debug(view.create_statement)
        yield Dispatcher(
            view,
            session_config,
            post=_discard,
            clipboard=clipboard or MemoryClipboard(),
            logger=logger,
        )


def _discard(message: BackendMessage) -> None:
    """One-shot commands read dispatcher return values; posted copies are dropped."""


def _raise_on_failure(envelope: QueryResult) -> None:
    if not envelope.success:
        raise click.ClickException(envelope.message or "Query failed.")


def main() -> None:
    """Entry point for console_scripts."""
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
