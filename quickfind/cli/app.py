"""
Main CLI application using Typer.
"""

import asyncio
import logging
from datetime import time
from pathlib import Path
from typing import Annotated, Dict, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.snapshot_client import SnapshotPracticeClient
from ..config import AppConfig, get_default_config_path
from ..domain.cancellation import CancellationToken
from ..domain.exceptions import QuickFindError
from ..domain.models import CombinationStep, FoundSlot, SearchOutcome, SearchRequest
from ..services.slot_finder import SlotFinderService

app = typer.Typer(
    name="quickfind",
    help="Find empty appointment spots in the practice schedule",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="Practice data file. Overrides data_file from the config.")]
DateOption = Annotated[Optional[str], typer.Option("--date", help="Search only this day (YYYY-MM-DD)")]
DaysOption = Annotated[Optional[int], typer.Option("--days", help="Number of days to search, starting today")]
FromOption = Annotated[Optional[str], typer.Option("--from", help="Window start (HH:mm)")]
UntilOption = Annotated[Optional[str], typer.Option("--until", help="Window end (HH:mm)")]
GranularityOption = Annotated[Optional[int], typer.Option("--granularity", "-g", help="Minutes between candidate starts")]
LimitOption = Annotated[int, typer.Option("--limit", "-n", help="Show at most this many results")]
TimeoutOption = Annotated[Optional[float], typer.Option("--timeout", help="Stop searching after this many seconds")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")]


def configure_logging(verbose: bool) -> None:
    """Route log records through rich; quiet unless --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if config_file is None and not config_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _build_service(config: AppConfig, data_file: Optional[Path]) -> SlotFinderService:
    client = SnapshotPracticeClient(
        data_file=data_file or config.data_file,
        timezone=config.timezone,
        default_duration_minutes=config.defaults.duration_minutes
    )
    return SlotFinderService(
        data_client=client,
        catalog=client,
        timezone=config.timezone,
        max_workers=config.engine.max_workers
    )


def _parse_date(value: Optional[str], tz: str):
    if value is None:
        return None
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def _parse_time(value: Optional[str]) -> Optional[time]:
    if value is None:
        return None
    try:
        return pendulum.from_format(value, "HH:mm").time()
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid time '{value}', expected HH:mm") from exc


def _build_request(
    config: AppConfig,
    *,
    date: Optional[str],
    days: Optional[int],
    window_from: Optional[str],
    window_until: Optional[str],
    granularity: Optional[int],
    **single_step
) -> SearchRequest:
    defaults = config.defaults
    return SearchRequest(
        window=defaults.build_window(_parse_time(window_from), _parse_time(window_until)),
        horizon_days=days if days is not None else defaults.horizon_days,
        fixed_date=_parse_date(date, config.timezone),
        granularity_minutes=granularity or defaults.granularity_minutes,
        **single_step
    )


def _make_token(config: AppConfig, timeout: Optional[float]) -> CancellationToken:
    seconds = timeout if timeout is not None else config.engine.timeout_seconds
    if seconds is None:
        return CancellationToken()
    return CancellationToken.with_timeout(seconds)


def parse_step(value: str) -> tuple:
    """
    Parse a ``PRACTITIONER:TREATMENT[:MINUTES]`` step option.

    Returns (practitioner_id, treatment_type_id, duration_minutes or None).
    """
    parts = value.split(":")
    if len(parts) not in (2, 3) or not all(parts):
        raise typer.BadParameter(
            f"Invalid step '{value}', expected PRACTITIONER:TREATMENT[:MINUTES]"
        )

    duration = None
    if len(parts) == 3:
        if not parts[2].isdigit():
            raise typer.BadParameter(f"Invalid duration in step '{value}'")
        duration = int(parts[2])

    return parts[0], parts[1], duration


def _practitioner_names(service: SlotFinderService) -> Dict[str, str]:
    practitioners = asyncio.run(service.list_practitioners())
    return {p.id: p.display_name() for p in practitioners}


def _print_cancelled_notice(outcome: SearchOutcome) -> None:
    if outcome.cancelled:
        console.print(
            "[yellow]⚠ Search stopped before it finished; the list below is partial.[/yellow]\n"
        )


def _render_slots(slots: List[FoundSlot], names: Dict[str, str], limit: int) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Date", style="bold")
    table.add_column("Time")
    table.add_column("Practitioner", style="bold yellow")
    table.add_column("Treatment")

    for slot in slots[:limit]:
        table.add_row(
            slot.start.format("ddd DD.MM.YYYY"),
            f"{slot.start.format('HH:mm')} - {slot.end.format('HH:mm')}",
            names.get(slot.practitioner_id, slot.practitioner_id),
            f"{slot.treatment_type.name} ({slot.duration_minutes} min)"
        )

    console.print(table)


def _render_chains(chains: List[List[FoundSlot]], names: Dict[str, str], limit: int) -> None:
    table = Table(show_header=True, header_style="bold cyan", show_lines=True)
    table.add_column("Date", style="bold")
    table.add_column("Visit")
    table.add_column("Steps")

    for chain in chains[:limit]:
        steps = "\n".join(
            f"{slot.order}. {slot.start.format('HH:mm')} - {slot.end.format('HH:mm')} "
            f"{slot.treatment_type.name} with {names.get(slot.practitioner_id, slot.practitioner_id)}"
            for slot in chain
        )
        table.add_row(
            chain[0].start.format("ddd DD.MM.YYYY"),
            f"{chain[0].start.format('HH:mm')} - {chain[-1].end.format('HH:mm')}",
            steps
        )

    console.print(table)


@app.command()
def find(
    treatment: Annotated[str, typer.Option("--treatment", "-t", help="Treatment type id")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Override the treatment's default duration (minutes)")] = None,
    practitioner: Annotated[Optional[str], typer.Option("--practitioner", "-p", help="Search only this practitioner")] = None,
    role: Annotated[Optional[str], typer.Option("--role", "-r", help="Search only practitioners with this role")] = None,
    date: DateOption = None,
    days: DaysOption = None,
    window_from: FromOption = None,
    window_until: UntilOption = None,
    granularity: GranularityOption = None,
    limit: LimitOption = 20,
    timeout: TimeoutOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    verbose: VerboseOption = False,
):
    """
    Find open slots for a single treatment.

    Examples:

        quickfind find -t check-up
        quickfind find -t filling -r DENTIST --days 14
        quickfind find -t cleaning -p hyg-bakker --date 2026-10-21 --from 13:00
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        service = _build_service(config, data_file)
        request = _build_request(
            config,
            date=date,
            days=days,
            window_from=window_from,
            window_until=window_until,
            granularity=granularity,
            treatment_type_id=treatment,
            duration_minutes=duration,
            practitioner_id=practitioner,
            role=role
        )

        outcome = asyncio.run(service.find_single_slots(request, cancel=_make_token(config, timeout)))
        names = _practitioner_names(service)

        console.print()
        _print_cancelled_notice(outcome)
        if not outcome.results:
            console.print(
                "[yellow]⚠ No open slots found.[/yellow]\n"
                "Try a longer horizon, a wider window or another practitioner."
            )
        else:
            console.print(f"[bold green]✓ {len(outcome.results)} open slot(s) found:[/bold green]\n")
            _render_slots(outcome.results, names, limit)
        console.print()

    except (QuickFindError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def combi(
    step: Annotated[List[str], typer.Option("--step", "-s", help="PRACTITIONER:TREATMENT[:MINUTES], repeat in visit order")],
    date: DateOption = None,
    days: DaysOption = None,
    window_from: FromOption = None,
    window_until: UntilOption = None,
    granularity: GranularityOption = None,
    limit: LimitOption = 10,
    timeout: TimeoutOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    verbose: VerboseOption = False,
):
    """
    Find back-to-back slots for a combination appointment.

    Examples:

        quickfind combi -s dr-jansen:check-up -s hyg-bakker:cleaning
        quickfind combi -s hyg-bakker:cleaning:45 -s dr-jansen:check-up --days 14
    """
    configure_logging(verbose)
    try:
        config = _load_config(config_file)
        service = _build_service(config, data_file)
        request = _build_request(
            config,
            date=date,
            days=days,
            window_from=window_from,
            window_until=window_until,
            granularity=granularity
        )

        parsed_steps = [parse_step(value) for value in step]

        async def _search():
            steps: List[CombinationStep] = [
                await service.build_step(
                    order=order,
                    practitioner_id=practitioner_id,
                    treatment_type_id=treatment_type_id,
                    duration_minutes=minutes
                )
                for order, (practitioner_id, treatment_type_id, minutes) in enumerate(parsed_steps, 1)
            ]
            return await service.find_combination_slots(
                steps, request, cancel=_make_token(config, timeout)
            )

        outcome = asyncio.run(_search())
        names = _practitioner_names(service)

        console.print()
        _print_cancelled_notice(outcome)
        if not outcome.results:
            console.print(
                "[yellow]⚠ No combination found.[/yellow]\n"
                "Try a longer horizon or a wider window."
            )
        else:
            console.print(f"[bold green]✓ {len(outcome.results)} combination(s) found:[/bold green]\n")
            _render_chains(outcome.results, names, limit)
        console.print()

    except (QuickFindError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def practitioners(
    role: Annotated[Optional[str], typer.Option("--role", "-r", help="Only show this role")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List the practitioners in the practice data.
    """
    try:
        config = _load_config(config_file)
        service = _build_service(config, data_file)
        found = asyncio.run(service.list_practitioners(role=role))

        if not found:
            console.print("[yellow]No practitioners found.[/yellow]")
            return

        table = Table(
            title="Practitioners",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="bold yellow")
        table.add_column("Name")
        table.add_column("Role", style="dim")

        for practitioner in found:
            table.add_row(practitioner.id, practitioner.name, practitioner.role or "")

        console.print()
        console.print(table)
        console.print()

    except (QuickFindError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]quickfind[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
