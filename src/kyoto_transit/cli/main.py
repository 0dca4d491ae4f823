"""CLI main entry point for Kyoto transit search."""

import logging
import sys
from datetime import date
from datetime import datetime as dt_module
from pathlib import Path
from typing import Any, NoReturn

import click
from rich.console import Console

from .. import __version__
from ..budget.limiter import ResponseBudgeter
from ..core.config import Settings
from ..core.exceptions import (
    ConfigurationError,
    NetworkError,
    RouteNotFoundError,
    ScrapingError,
    TransitSearchError,
    ValidationError,
)
from ..core.reference import ReferenceDataStore
from ..geo.coordinates import CoordinateResolver
from ..parsing.reconciler import RoutePageParser
from ..services.container import TransitServices, build_services
from .formatters import (
    format_candidates_table,
    format_json,
    format_routes_detailed,
    format_routes_table,
    format_settings_table,
)

console = Console()
error_console = Console(stderr=True)

DEFAULT_MAX_TOKENS = 4000

language_option = click.option(
    "--lang",
    "-l",
    "language",
    type=click.Choice(["ja", "en"]),
    default="ja",
    help="Response language",
)
max_tokens_option = click.option(
    "--max-tokens",
    "-m",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_TOKENS,
    help="Maximum response size in tokens",
)
datetime_option = click.option(
    "--datetime",
    "-d",
    "datetime_str",
    help="Search datetime (YYYY-MM-DDTHH:MM), defaults to now",
    type=str,
)
datetime_type_option = click.option(
    "--type",
    "-t",
    "datetime_type",
    type=click.Choice(["departure", "arrival", "first", "last"]),
    default="departure",
    help="Meaning of the datetime",
)
route_format_option = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json", "detailed"]),
    default="table",
    help="Output format",
)
verbose_option = click.option("--verbose", "-v", is_flag=True, help="Show leg details")


def _services(ctx: click.Context) -> TransitServices:
    services = ctx.obj.get("services")
    if services is None:
        services = build_services(ctx.obj["settings"])
        ctx.obj["services"] = services
        ctx.call_on_close(services.close)
    return services


def _print_routes(result: dict[str, Any], output_format: str, verbose: bool) -> None:
    if output_format == "json":
        click.echo(format_json(result))
        return
    if output_format == "detailed":
        format_routes_detailed(result["routes"])
    else:
        format_routes_table(result["routes"], verbose=verbose)
    if result.get("truncated"):
        error_console.print("[yellow]Some routes were dropped to fit the token budget[/yellow]")


def _fail(error: Exception, verbose: bool = False) -> NoReturn:
    if isinstance(error, RouteNotFoundError):
        error_console.print(f"[yellow]No route found:[/yellow] {error}")
    elif isinstance(error, ValidationError):
        error_console.print(f"[red]Error:[/red] {error}")
    elif isinstance(error, ConfigurationError):
        error_console.print(f"[red]Configuration error:[/red] {error}")
    elif isinstance(error, (NetworkError, ScrapingError)):
        error_console.print(f"[red]Upstream error:[/red] {error}")
    else:
        error_console.print(f"[red]Unexpected error:[/red] {error}")
        if verbose:
            error_console.print_exception()
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Reference data directory (overrides KYOTO_TRANSIT_DATA_DIR)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (overrides KYOTO_TRANSIT_LOG_LEVEL)",
)
@click.pass_context
def cli(ctx: click.Context, data_dir: Path | None, log_level: str | None) -> None:
    """Kyoto Transit Search - Bus and train routes around Kyoto."""
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        _fail(e)
    updates = {}
    if data_dir is not None:
        updates["data_dir"] = data_dir
    if log_level is not None:
        updates["log_level"] = log_level.upper()
    if updates:
        settings = settings.model_copy(update=updates)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("from_station")
@click.argument("to_station")
@datetime_option
@datetime_type_option
@language_option
@max_tokens_option
@route_format_option
@verbose_option
@click.pass_context
def search(
    ctx: click.Context,
    from_station: str,
    to_station: str,
    datetime_str: str | None,
    datetime_type: str,
    language: str,
    max_tokens: int,
    output_format: str,
    verbose: bool,
) -> None:
    """Search routes between two stops or landmarks.

    Examples:
        kyoto-transit search "京都駅" "銀閣寺"
        kyoto-transit search "四条河原町" "嵐山" --type last --format json
        kyoto-transit search "Kyoto Station" "Ginkaku-ji" --lang en
    """
    search_datetime = datetime_str or dt_module.now().strftime("%Y-%m-%dT%H:%M")
    try:
        with console.status(
            f"[bold green]Searching route from {from_station} to {to_station}..."
        ):
            result = _services(ctx).routes.search_by_name(
                from_station,
                to_station,
                search_datetime,
                datetime_type,
                language,
                max_tokens,
            )
    except TransitSearchError as e:
        _fail(e, verbose)
    _print_routes(result, output_format, verbose)


@cli.command("search-geo")
@click.argument("from_latlng")
@click.argument("to_latlng")
@datetime_option
@datetime_type_option
@language_option
@max_tokens_option
@route_format_option
@verbose_option
@click.pass_context
def search_geo(
    ctx: click.Context,
    from_latlng: str,
    to_latlng: str,
    datetime_str: str | None,
    datetime_type: str,
    language: str,
    max_tokens: int,
    output_format: str,
    verbose: bool,
) -> None:
    """Search routes between two "lat,lng" coordinates.

    Examples:
        kyoto-transit search-geo "34.9858,135.7588" "35.0270,135.7982"
    """
    search_datetime = datetime_str or dt_module.now().strftime("%Y-%m-%dT%H:%M")
    try:
        with console.status("[bold green]Searching route..."):
            result = _services(ctx).routes.search_by_geo(
                from_latlng,
                to_latlng,
                search_datetime,
                datetime_type,
                language,
                max_tokens,
            )
    except TransitSearchError as e:
        _fail(e, verbose)
    _print_routes(result, output_format, verbose)


@cli.command()
@click.argument("query")
@language_option
@max_tokens_option
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def stops(
    ctx: click.Context, query: str, language: str, max_tokens: int, output_format: str
) -> None:
    """Search stops and landmarks by substring.

    Examples:
        kyoto-transit stops 四条
        kyoto-transit stops ぎんかく
        kyoto-transit stops Gion --lang en --format json
    """
    try:
        result = _services(ctx).stops.search(query, language, max_tokens)
    except TransitSearchError as e:
        _fail(e)
    if output_format == "json":
        click.echo(format_json(result))
        return
    format_candidates_table(result["candidates"])
    if result["truncated"]:
        error_console.print("[yellow]Some stops were dropped to fit the token budget[/yellow]")


@cli.command()
@click.argument("html_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@language_option
@click.option(
    "--date",
    "base_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Query date, used when the page does not carry one",
)
@click.option(
    "--max-tokens",
    "-m",
    type=click.IntRange(min=1),
    help="Budget the output to this many tokens",
)
@click.option(
    "--no-coordinates",
    is_flag=True,
    help="Do not resolve stop coordinates (no reference data needed)",
)
@route_format_option
@verbose_option
@click.pass_context
def parse(
    ctx: click.Context,
    html_file: Path,
    language: str,
    base_date: dt_module | None,
    max_tokens: int | None,
    no_coordinates: bool,
    output_format: str,
    verbose: bool,
) -> None:
    """Extract routes from a saved result page.

    Examples:
        kyoto-transit parse result.html
        kyoto-transit parse result.html --no-coordinates --format json
    """
    settings: Settings = ctx.obj["settings"]
    try:
        html = html_file.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        _fail(ValidationError(f"Page is not valid UTF-8: {html_file} ({e.reason})"), verbose)
    coordinates = None
    if not no_coordinates:
        coordinates = CoordinateResolver(ReferenceDataStore(settings.data_dir))

    query_date: date | None = base_date.date() if base_date is not None else None
    try:
        routes = RoutePageParser(coordinates).parse(html, language, query_date)
    except TransitSearchError as e:
        _fail(e, verbose)

    result = {"routes": [route.to_payload() for route in routes], "truncated": False}
    if max_tokens is not None:
        with ResponseBudgeter(settings.token_encoding) as budgeter:
            budgeted = budgeter.limit({"routes": result["routes"]}, max_tokens)
        result = {
            "routes": budgeted.payload.get("routes", []),
            "truncated": budgeted.truncated,
        }
    _print_routes(result, output_format, verbose)


@cli.group()
def config() -> None:
    """Configuration management."""
    pass


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
def show_config(ctx: click.Context, as_json: bool) -> None:
    """Show the effective configuration."""
    settings: Settings = ctx.obj["settings"]
    if as_json:
        click.echo(format_json(settings.describe()))
        return
    format_settings_table(settings.describe())


if __name__ == "__main__":
    cli()
