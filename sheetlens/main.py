"""
SheetLens - Main Entry Point

Command-line interface for analyzing local files, browsing stored
analyses, exporting them and serving the web application.
"""

import sys
import logging
from typing import Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sheetlens import __version__
from sheetlens.config import SheetLensConfig, create_default_config
from sheetlens.core.builders import get_builder
from sheetlens.core.errors import SheetLensError
from sheetlens.core.exporter import MIMETYPES
from sheetlens.core.parser import parse_file
from sheetlens.core.records import AnalysisType
from sheetlens.core.service import AnalysisService, build_analysis

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

console = Console()

TYPE_CHOICE = click.Choice(AnalysisType.values())


def load_config(config_path: Optional[str], data_dir: Optional[str]) -> SheetLensConfig:
    """Config from YAML when given, else defaults rooted at data_dir."""
    if config_path:
        return SheetLensConfig.from_yaml(config_path)
    return create_default_config(data_dir=data_dir)


def _fail(error: Exception):
    console.print(f"\n[bold red]✗ Error: {error}[/bold red]")
    sys.exit(1)


def _print_summary(title: str, payload: Optional[dict]):
    """Print the summary metrics of an analysis payload."""
    console.print()
    if payload is None:
        console.print(Panel(
            "[yellow]No data available for analysis[/yellow]\n"
            "[dim]The file has no rows or no numeric columns.[/dim]",
            title=title,
            border_style="yellow"
        ))
        return

    table = Table(title=title, show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for key, value in payload.get("summary", {}).items():
        table.add_row(key, f"{value:,}" if isinstance(value, (int, float)) else str(value))
    console.print(table)

    rows = payload.get("tableData")
    if rows:
        detail = Table(show_header=True)
        for column in rows[0]:
            detail.add_column(column)
        for row in rows:
            detail.add_row(*(str(value) for value in row.values()))
        console.print(detail)


# CLI Commands
@click.group()
@click.version_option(version=__version__, prog_name="SheetLens")
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration file')
@click.option('--data-dir', '-d', type=click.Path(file_okay=False),
              help='Directory holding the database and uploads')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config_path, data_dir, verbose):
    """SheetLens - Spreadsheet analytics from the command line"""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['data_dir'] = data_dir


def _service(ctx) -> AnalysisService:
    return AnalysisService(load_config(ctx.obj.get('config_path'), ctx.obj.get('data_dir')))


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--type', '-t', 'analysis_type', type=TYPE_CHOICE, default='overview',
              help='Analysis view')
@click.option('--user', '-u', default='local@sheetlens', help='Owner identity for stored results')
@click.option('--save/--no-save', default=False, help='Register the file and store the analysis')
@click.pass_context
def analyze(ctx, file, analysis_type, user, save):
    """
    Analyze a local CSV, Excel or JSON file.

    Examples:

        sheetlens analyze sales.csv --type sales

        sheetlens analyze orders.xlsx -t products --save -u me@example.com
    """
    title = f"{analysis_type.title()} Analysis: {Path(file).name}"
    try:
        if not save:
            config = load_config(ctx.obj.get('config_path'), ctx.obj.get('data_dir'))
            rows = parse_file(file)
            kind = AnalysisType(analysis_type)
            payload = build_analysis(rows, kind, get_builder(kind, config.analysis))
            _print_summary(title, payload)
            return

        service = _service(ctx)
        try:
            descriptor, created = service.files.register(user, Path(file).name, Path(file).read_bytes())
            outcome = service.analyze(user, descriptor.id, analysis_type, generate_new=True)
        finally:
            service.close()
        _print_summary(title, outcome.data)

        state = "registered" if created else "already registered"
        console.print(f"\n[bold green]✓ Saved[/bold green] file {descriptor.id} ({state})")
        if outcome.record is not None:
            console.print(f"  Analysis #{outcome.record.id}")

    except SheetLensError as e:
        _fail(e)


@cli.command()
@click.option('--user', '-u', default='local@sheetlens', help='Owner identity')
@click.option('--type', '-t', 'analysis_type', type=TYPE_CHOICE, help='Only this analysis view')
@click.option('--file-id', '-f', help='Only analyses of this file')
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--limit', type=int, default=10, show_default=True)
@click.pass_context
def history(ctx, user, analysis_type, file_id, page, limit):
    """List stored analyses, newest first."""
    service = _service(ctx)
    try:
        result = service.history(user, analysis_type, file_id, page, limit)
    except SheetLensError as e:
        _fail(e)
    finally:
        service.close()

    if not result.items:
        console.print("[dim]No analyses found.[/dim]")
        return

    table = Table(title=f"Analysis History (page {result.page}/{result.total_pages})", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("File")
    table.add_column("File ID", style="dim")
    table.add_column("Data")
    table.add_column("Created")
    for item in result.items:
        table.add_row(
            str(item["id"]),
            item["type"],
            item["fileName"],
            item["fileId"],
            "yes" if item["hasData"] else "no",
            item["createdAt"],
        )
    console.print(table)
    console.print(f"[dim]{result.total} total[/dim]")


@cli.command()
@click.option('--user', '-u', default='local@sheetlens', help='Owner identity')
@click.option('--file-id', '-f', required=True, help='File ID')
@click.option('--type', '-t', 'analysis_type', type=TYPE_CHOICE, required=True, help='Analysis view')
@click.option('--format', '-F', 'fmt', type=click.Choice(list(MIMETYPES)),
              default='csv', show_default=True)
@click.option('--output', '-o', type=click.Path(), default='.', help='Output directory')
@click.pass_context
def export(ctx, user, file_id, analysis_type, fmt, output):
    """Export the latest stored analysis of a file."""
    service = _service(ctx)
    try:
        exported = service.export(user, file_id, analysis_type, fmt)
    except SheetLensError as e:
        _fail(e)
    finally:
        service.close()

    output_dir = Path(output)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / exported.filename
    path.write_bytes(exported.content)

    console.print(Panel(
        f"Export saved to:\n[bold green]{path}[/bold green]",
        title="Output",
        border_style="green"
    ))


@cli.command()
@click.option('--host', '-h', help='Bind address')
@click.option('--port', '-p', type=int, help='Port')
@click.option('--debug', is_flag=True, help='Flask debug mode')
@click.pass_context
def serve(ctx, host, port, debug):
    """Run the web application."""
    from webapp.app import create_app

    config = load_config(ctx.obj.get('config_path'), ctx.obj.get('data_dir'))
    host = host or config.server.host
    port = port or config.server.port

    app = create_app(config)
    console.print(Panel(
        f"[bold blue]SheetLens[/bold blue] v{__version__}\n"
        f"[dim]Serving on http://{host}:{port}[/dim]",
        border_style="blue"
    ))
    app.run(host=host, port=port, debug=debug or config.server.debug)


@cli.command()
def version():
    """Show version information."""
    console.print(Panel(
        f"[bold]SheetLens[/bold] v{__version__}\n\n"
        "Chart-ready statistics from spreadsheets, CSV and JSON.\n\n"
        "Components:\n"
        "  • File Parser\n"
        "  • Aggregator\n"
        "  • View Builders (overview, sales, products)\n"
        "  • Analysis Store\n"
        "  • Export Formatter",
        title="About",
        border_style="blue"
    ))


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
