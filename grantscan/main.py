"""grantscan CLI - Least-privilege database grants from static Sequelize usage."""
import json
from pathlib import Path
from typing import List, Optional, Tuple

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from grantscan.analyzer.diagnostics import DiagnosticLog
from grantscan.analyzer.model_loader import extract_registry, extract_registry_from_paths, load_registry
from grantscan.analyzer.project import ProjectConfig, load_source_files
from grantscan.analyzer.registry import EntityRegistry
from grantscan.analyzer.usage import UsageStore
from grantscan.analyzer.visitor import UsageAnalyzer
from grantscan.config import __version__, get_config
from grantscan.errors import GrantscanError
from grantscan.grants.executor import apply_grants
from grantscan.grants.sql_generator import generate_grant_statements, record_privileges
from grantscan.grants.store_io import merge_stores, read_store, save_store
from grantscan.utils.logger import configure_logging

app = typer.Typer(
    name="grantscan",
    help="Find which Sequelize models a codebase reads and writes, and grant exactly that",
    add_completion=False
)
console = Console()
logger = structlog.get_logger(__name__)


def _fail(message: str):
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(1)


def analyze_project(project_path: Path, models: Optional[Path], model_sources: Optional[List[Path]],
                    tsconfig: Optional[str], only_from: Optional[str]) -> Tuple[UsageStore, DiagnosticLog]:
    """Shared analysis logic for the scan and grant commands.

    The registry comes from, in order of preference:
    1. a JSON registry document (--models)
    2. decorated model classes in the given files or directories (--model-sources)
    3. decorated model classes among the project's own sources

    Raises:
        GrantscanError: If the project config or the registry cannot be loaded
    """
    config = ProjectConfig.load(project_path, tsconfig or get_config().tsconfig_name)
    sources = load_source_files(config)

    if models is not None:
        registry = load_registry(models)
    elif model_sources:
        registry = extract_registry_from_paths(model_sources)
    else:
        registry = extract_registry(sources)

    if not len(registry):
        logger.warning("registry_empty", project=str(project_path))

    analyzer = UsageAnalyzer(registry, sources, only_from_module=only_from)
    return analyzer.run(), analyzer.diagnostics


def _print_usage_table(store: UsageStore, title: str):
    table = Table(title=title)
    table.add_column("Model", style="cyan")
    table.add_column("Table", style="magenta")
    for privilege in ("SELECT", "INSERT", "UPDATE", "DELETE"):
        table.add_column(privilege, justify="center")

    for record in store.records():
        granted = set(record_privileges(record))
        table.add_row(
            record.entity,
            record.table,
            *("[green]yes[/green]" if p in granted else "[dim]-[/dim]"
              for p in ("SELECT", "INSERT", "UPDATE", "DELETE")),
        )
    console.print(table)


def _print_diagnostics(diagnostics: DiagnosticLog, show: bool):
    if not len(diagnostics):
        return
    if not show:
        console.print(f"[dim]{len(diagnostics)} call(s) could not be analysed "
                      f"(use --show-diagnostics for details)[/dim]")
        return

    table = Table(title="Diagnostics")
    table.add_column("Kind", style="yellow")
    table.add_column("Location", style="magenta", no_wrap=False)
    table.add_column("Message", no_wrap=False)
    for diagnostic in diagnostics:
        table.add_row(diagnostic.kind.value, str(diagnostic.location or ''), escape(diagnostic.message))
    console.print(table)


@app.command()
def scan(
    project_path: str = typer.Argument(".", help="Project root path (searched upwards for the tsconfig)"),
    models: Optional[Path] = typer.Option(None, "--models", "-m", help="JSON registry document describing the models"),
    model_sources: Optional[List[Path]] = typer.Option(None, "--model-sources", help="Files or directories with decorated model classes"),
    tsconfig: Optional[str] = typer.Option(None, "--tsconfig", help="tsconfig file name (default: env.GRANTSCAN_TSCONFIG or tsconfig.json)"),
    only_from: Optional[str] = typer.Option(None, "--only-from", help="Only count model imports from this module"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the usage records as JSON"),
    as_json: bool = typer.Option(False, "--json", help="Print the usage records as JSON instead of a table"),
    show_diagnostics: bool = typer.Option(False, "--show-diagnostics", help="List calls that could not be analysed"),
):
    """Scan a project and list every model it uses with its CRUD operations."""
    try:
        store, diagnostics = analyze_project(Path(project_path), models, model_sources, tsconfig, only_from)
    except GrantscanError as e:
        _fail(str(e))

    if as_json:
        # Nothing else goes to stdout, so the output can be piped
        console.print_json(json.dumps(store.to_dict()))
    else:
        if len(store):
            _print_usage_table(store, f"Model Usage: {project_path}")
        else:
            console.print("[bold green]No model usage found.[/bold green]")
        _print_diagnostics(diagnostics, show_diagnostics)

    if output is not None:
        save_store(store, output)
        console.print(f"[green]Saved {len(store)} model(s) to {escape(str(output))}[/green]")


@app.command()
def grant(
    project_path: str = typer.Argument(".", help="Project root path (searched upwards for the tsconfig)"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Target database username (default: env.DB_TARGET_USERNAME)"),
    host: Optional[str] = typer.Option(None, "--host", help="Host of the database user (default: env.DB_TARGET_HOST or %)"),
    clear: bool = typer.Option(False, "--clear", help="Start with a REVOKE of all CRUD privileges"),
    no_flush: bool = typer.Option(False, "--no-flush", help="Do not end with FLUSH PRIVILEGES"),
    execute: bool = typer.Option(False, "--execute", help="Run the statements on the database instead of printing them"),
    database_url: Optional[str] = typer.Option(None, "--database-url", help="SQLAlchemy URL used by --execute (default: env.GRANTSCAN_DATABASE_URL)"),
    print_sql: bool = typer.Option(False, "--print-sql", help="Also print the statements when using --execute"),
    models: Optional[Path] = typer.Option(None, "--models", "-m", help="JSON registry document describing the models"),
    model_sources: Optional[List[Path]] = typer.Option(None, "--model-sources", help="Files or directories with decorated model classes"),
    tsconfig: Optional[str] = typer.Option(None, "--tsconfig", help="tsconfig file name (default: env.GRANTSCAN_TSCONFIG or tsconfig.json)"),
    only_from: Optional[str] = typer.Option(None, "--only-from", help="Only count model imports from this module"),
):
    """Scan a project and print (or run) the GRANT statements it needs."""
    config = get_config()
    username = username or config.db_username
    if not username:
        _fail("`env.DB_TARGET_USERNAME` and `--username` not set, need at least one")
    database_url = database_url or config.database_url
    if execute and not database_url:
        _fail("`--execute` needs `--database-url` or `env.GRANTSCAN_DATABASE_URL`")

    try:
        store, _ = analyze_project(Path(project_path), models, model_sources, tsconfig, only_from)
    except GrantscanError as e:
        _fail(str(e))

    query = generate_grant_statements(store, username, clear_all_grants=clear,
                                      flush_privileges=not no_flush, host=host or config.db_host)
    if not execute or print_sql:
        console.print(query, markup=False, highlight=False, soft_wrap=True)
    if execute:
        try:
            applied = apply_grants(query, database_url)
        except GrantscanError as e:
            _fail(str(e))
        console.print(f"[green]Applied {applied} statement(s) for {escape(username)}[/green]")


@app.command()
def sql(
    store_file: Path = typer.Argument(..., help="Usage records saved by `scan --output`"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Target database username (default: env.DB_TARGET_USERNAME)"),
    host: Optional[str] = typer.Option(None, "--host", help="Host of the database user (default: env.DB_TARGET_HOST or %)"),
    clear: bool = typer.Option(False, "--clear", help="Start with a REVOKE of all CRUD privileges"),
    no_flush: bool = typer.Option(False, "--no-flush", help="Do not end with FLUSH PRIVILEGES"),
):
    """Generate GRANT statements from saved usage records."""
    config = get_config()
    username = username or config.db_username
    if not username:
        _fail("`env.DB_TARGET_USERNAME` and `--username` not set, need at least one")

    try:
        store = read_store(store_file)
    except (FileNotFoundError, json.JSONDecodeError, GrantscanError) as e:
        _fail(str(e))

    console.print(
        generate_grant_statements(store, username, clear_all_grants=clear,
                                  flush_privileges=not no_flush, host=host or config.db_host),
        markup=False, highlight=False, soft_wrap=True,
    )


@app.command()
def merge(
    store_files: List[Path] = typer.Argument(..., help="Usage record files to combine"),
    output: Path = typer.Option(..., "--output", "-o", help="Where to save the merged records"),
):
    """Combine usage records of several projects sharing one database user."""
    try:
        store = merge_stores(store_files)
    except (FileNotFoundError, json.JSONDecodeError, GrantscanError) as e:
        _fail(str(e))

    save_store(store, output)
    console.print(f"[green]Merged {len(store_files)} file(s) into {len(store)} model(s): "
                  f"{escape(str(output))}[/green]")


@app.command()
def models(
    sources: List[Path] = typer.Argument(..., help="Files or directories with decorated model classes"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the registry as a JSON document"),
):
    """Extract the model registry from sequelize-typescript classes."""
    registry: EntityRegistry = extract_registry_from_paths(sources)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(registry.to_dict(), indent=2), encoding='utf-8')
        console.print(f"[green]Saved {len(registry)} model(s) to {escape(str(output))}[/green]")
        return

    table = Table(title="Registered Models")
    table.add_column("Model", style="cyan")
    table.add_column("Table", style="magenta")
    table.add_column("Associations", no_wrap=False)
    for name in registry:
        entity = registry[name]
        associations = ", ".join(
            f"{a.name} ({a.kind.value} {a.target})" for a in entity.associations.values()
        )
        table.add_row(entity.name, entity.table, associations or "[dim]-[/dim]")
    console.print(table)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR (default: env.GRANTSCAN_LOG_LEVEL)"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Write logs as JSON lines"),
):
    """grantscan - Least-privilege database grants from static Sequelize usage."""
    configure_logging(level=log_level or get_config().log_level, json_format=json_logs)


@app.command()
def version():
    """Print the grantscan version."""
    console.print(f"grantscan {__version__}")


if __name__ == "__main__":
    app()
