"""Output formatters for CLI display.

All formatters take the JSON payloads returned by the services, so that
what is printed is exactly what fitted in the token budget.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

MODE_LABELS = {"bus": "バス", "train": "電車", "walk": "徒歩"}


def _clock(timestamp: str | None) -> str:
    """Timestamp for display, ``-`` when unknown."""
    if not timestamp:
        return "-"
    return timestamp.replace("T", " ")


def _leg_label(leg: dict[str, Any]) -> str:
    mode = leg.get("mode", "")
    return leg.get("line") or MODE_LABELS.get(mode, mode)


def format_json(data: Any) -> str:
    """Format a payload as indented JSON."""
    return json.dumps(data, ensure_ascii=False, indent=2)


def format_routes_table(routes: list[dict[str, Any]], verbose: bool = False) -> None:
    """Display routes as rich tables, one summary row per route."""
    if not routes:
        console.print("No routes found.")
        return

    table = Table(title="Routes", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", no_wrap=True)
    table.add_column("Depart", style="cyan", no_wrap=True)
    table.add_column("Arrive", style="cyan", no_wrap=True)
    table.add_column("Duration", style="green")
    table.add_column("Transfers", style="yellow")
    table.add_column("Fare", style="green")
    table.add_column("Via", style="blue")

    for idx, route in enumerate(routes, 1):
        summary = route.get("summary", {})
        via = " → ".join(_leg_label(leg) for leg in route.get("legs", []))
        table.add_row(
            str(idx),
            _clock(summary.get("depart")),
            _clock(summary.get("arrive")),
            f"{summary.get('duration_min', 0)}分",
            str(summary.get("transfers", 0)),
            f"{summary.get('fare_jpy', 0)}円",
            via,
        )
    console.print(table)

    if verbose:
        for idx, route in enumerate(routes, 1):
            console.print(f"\n[bold cyan]Route {idx}:[/bold cyan]")
            console.print(_legs_table(route.get("legs", [])))


def _legs_table(legs: list[dict[str, Any]]) -> Table:
    table = Table(title="Legs", show_header=True, header_style="bold blue")
    table.add_column("Mode", style="yellow")
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Time", style="magenta")
    table.add_column("Duration", style="green")
    table.add_column("Stops", style="blue")
    table.add_column("Fare", style="green")

    for leg in legs:
        time_info = "-"
        if leg.get("depart_time") and leg.get("arrive_time"):
            time_info = f"{_clock(leg['depart_time'])}→{_clock(leg['arrive_time'])}"
        elif leg.get("depart_time"):
            time_info = f"dep: {_clock(leg['depart_time'])}"
        elif leg.get("arrive_time"):
            time_info = f"arr: {_clock(leg['arrive_time'])}"

        table.add_row(
            _leg_label(leg),
            leg.get("from") or "-",
            leg.get("to") or "-",
            time_info,
            f"{leg.get('duration_min', 0)}分",
            str(leg["stops"]) if leg.get("stops") is not None else "-",
            f"{leg['fare_jpy']}円" if leg.get("fare_jpy") is not None else "-",
        )
    return table


def format_routes_detailed(routes: list[dict[str, Any]]) -> None:
    """Display routes with one panel per leg."""
    if not routes:
        console.print("No routes found.")
        return

    for idx, route in enumerate(routes, 1):
        summary = route.get("summary", {})
        summary_text = f"""[bold]Depart:[/bold] {_clock(summary.get("depart"))}
[bold]Arrive:[/bold] {_clock(summary.get("arrive"))}
[bold]Duration:[/bold] {summary.get("duration_min", 0)}分
[bold]Fare:[/bold] {summary.get("fare_jpy", 0)}円
[bold]Transfers:[/bold] {summary.get("transfers", 0)}"""
        console.print(Panel(summary_text, title=f"Route {idx}", border_style="blue"))

        for i, leg in enumerate(route.get("legs", []), 1):
            leg_text = f"""[cyan]{leg.get("from") or "?"}[/cyan] → [cyan]{leg.get("to") or "?"}[/cyan]
[bold]Mode:[/bold] {_leg_label(leg)}
[bold]Duration:[/bold] {leg.get("duration_min", 0)}分"""
            if leg.get("depart_time") or leg.get("arrive_time"):
                leg_text += (
                    f"\n[bold]Time:[/bold] {_clock(leg.get('depart_time'))}"
                    f" → {_clock(leg.get('arrive_time'))}"
                )
            if leg.get("stops") is not None:
                leg_text += f"\n[bold]Stops:[/bold] {leg['stops']}"
            if leg.get("fare_jpy"):
                leg_text += f"\n[bold]Fare:[/bold] {leg['fare_jpy']}円"
            if leg.get("distance_km") is not None:
                leg_text += f"\n[bold]Distance:[/bold] {leg['distance_km']} km"
            console.print(Panel(leg_text, title=f"Leg {i}", border_style="green"))


def format_candidates_table(candidates: list[dict[str, Any]]) -> None:
    """Display stop search candidates."""
    if not candidates:
        console.print("No stops found.")
        return

    table = Table(title="Stops", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Kind", style="green")
    table.add_column("ID", style="dim")
    for candidate in candidates:
        table.add_row(candidate.get("name", ""), candidate.get("kind", ""), candidate.get("id", ""))
    console.print(table)


def format_settings_table(settings: dict[str, str]) -> None:
    """Display effective settings."""
    table = Table(title="Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Variable", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for name, value in settings.items():
        table.add_row(name, value)
    console.print(table)
