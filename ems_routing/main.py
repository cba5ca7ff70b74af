import json
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.json import JSON
from rich.table import Table

from ems_routing.config import RoutingSettings, get_config, setup_logging
from ems_routing.core.decision import rank_hospitals
from ems_routing.core.models import EmergencyCase, Hospital
from ems_routing.core.normalizer import normalize_case, normalize_hospitals
from ems_routing.core.workflow.engine import ResponseEngine
from ems_routing.core.workflow.escalation import ESCALATION_THRESHOLDS
from ems_routing.core.workflow.monitor import EscalationMonitor
from ems_routing.explainability.explainer import generate_score_explanation

app = typer.Typer(help="Emergency Hospital Routing CLI Tool")

DEFAULT_HOSPITALS_FILE = Path("data/sample_hospitals.json")


def _load_json(path: Path) -> Any:
    with open(path, "r") as f:
        return json.load(f)


def _load_inputs(hospitals_file: Optional[Path], case_file: Path, settings: RoutingSettings):
    hospitals_file = hospitals_file or settings.hospitals_file or DEFAULT_HOSPITALS_FILE
    try:
        raw_hospitals = _load_json(hospitals_file)
        raw_case = _load_json(case_file)
    except (OSError, json.JSONDecodeError) as e:
        rprint(f"[bold red]:x: Error loading data files: {e}[/bold red]")
        raise typer.Exit(code=1)

    if isinstance(raw_hospitals, dict):
        raw_hospitals = raw_hospitals.get("hospitals", [])
    if isinstance(raw_case, list):
        if not raw_case:
            rprint("[bold red]:x: Case file is empty.[/bold red]")
            raise typer.Exit(code=1)
        # Use the first case in the list
        raw_case = raw_case[0]

    hospitals: List[Hospital] = normalize_hospitals(raw_hospitals)
    case: EmergencyCase = normalize_case(raw_case)
    return hospitals, case


def _configure(verbose: bool) -> RoutingSettings:
    settings = get_config()
    setup_logging("DEBUG" if verbose else settings.log_level)
    return settings


HOSPITALS_OPTION = typer.Option(
    None,
    "--hospitals",
    "-h",
    help="Path to hospital records JSON file. Defaults to the configured hospitals file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
)

CASE_OPTION = typer.Option(
    "data/sample_case.json",
    "--case",
    "-c",
    help="Path to emergency case JSON file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
)


@app.command(name="rank")
def rank(
    hospitals_file: Optional[Path] = HOSPITALS_OPTION,
    case_file: Path = CASE_OPTION,
    top: Optional[int] = typer.Option(
        None, "--top", "-n", min=1, help="Show only the N best qualified hospitals."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """
    Ranks hospitals for an emergency case, qualified first.
    """
    settings = _configure(verbose)
    hospitals, case = _load_inputs(hospitals_file, case_file, settings)
    ranked = rank_hospitals(hospitals, case)

    if top is not None:
        qualified = [r for r in ranked if not r.disqualified][:top]
        ranked = qualified + [r for r in ranked if r.disqualified]

    if as_json:
        typer.echo(json.dumps([r.model_dump(mode="json") for r in ranked], indent=2))
        return

    console = Console()
    rprint(
        f":ambulance: Case [bold]{case.case_id}[/bold]: {case.emergency_type.value}, "
        f"acuity {case.acuity_level}, {len(hospitals)} hospitals"
    )

    table = Table(title="Hospital Ranking", show_header=True, header_style="bold blue")
    table.add_column("#", justify="right")
    table.add_column("Hospital", style="cyan")
    table.add_column("Score", justify="right", style="magenta")
    table.add_column("Distance", justify="right")
    table.add_column("ETA", justify="right")
    table.add_column("Status")
    table.add_column("Reasons")

    position = 0
    for result in ranked:
        if result.disqualified:
            table.add_row(
                "-",
                result.hospital_name,
                "0",
                f"{result.distance_km} km",
                f"{result.eta_minutes} min",
                "disqualified",
                "; ".join(result.disqualify_reasons),
                style="dim",
            )
            continue
        position += 1
        table.add_row(
            str(position),
            result.hospital_name,
            str(result.suitability_score),
            f"{result.distance_km} km",
            f"{result.eta_minutes} min",
            "[green]qualified[/green]",
            "; ".join(result.recommendation_reasons[:4]),
        )

    console.print(table)
    if position == 0:
        console.print("[bold red]:x: No qualified hospital for this case.[/bold red]")


@app.command(name="explain")
def explain(
    hospital_id: str = typer.Argument(..., help="Hospital id to explain."),
    hospitals_file: Optional[Path] = HOSPITALS_OPTION,
    case_file: Path = CASE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """
    Explains one hospital's suitability score for the case.
    """
    settings = _configure(verbose)
    hospitals, case = _load_inputs(hospitals_file, case_file, settings)
    ranked = rank_hospitals(hospitals, case)

    match = next((r for r in ranked if r.hospital_id == hospital_id), None)
    if match is None:
        rprint(f"[bold red]:x: Hospital {hospital_id} not found.[/bold red]")
        raise typer.Exit(code=1)

    Console().print(JSON(json.dumps(generate_score_explanation(match), indent=2)))


@app.command(name="scan")
def scan(
    database: Optional[Path] = typer.Option(
        None,
        "--database",
        "-d",
        help="Case database. Defaults to the configured database path.",
        dir_okay=False,
        resolve_path=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """
    Runs one timeout escalation scan over the case database.
    """
    settings = _configure(verbose)
    if database is not None:
        settings = settings.model_copy(update={"database_path": database})
    if settings.database_path is None:
        rprint("[bold red]:x: No case database configured.[/bold red]")
        raise typer.Exit(code=1)

    engine = ResponseEngine.from_settings(settings)
    escalated = EscalationMonitor(engine).run_once()

    if not escalated:
        rprint(":white_check_mark: No cases needed escalation.")
        return
    rprint(f":rotating_light: Escalated {len(escalated)} case(s):")
    for case_id in escalated:
        typer.echo(case_id)


@app.command(name="thresholds")
def thresholds():
    """
    Prints the acuity escalation thresholds.
    """
    table = Table(title="Escalation Thresholds", show_header=True, header_style="bold blue")
    table.add_column("Acuity", justify="right", style="cyan")
    table.add_column("Max rejections", justify="right")
    table.add_column("Timeout (s)", justify="right")
    for acuity, threshold in sorted(ESCALATION_THRESHOLDS.items()):
        table.add_row(
            str(acuity), str(threshold.max_rejections), str(threshold.timeout_seconds)
        )
    Console().print(table)


if __name__ == "__main__":
    app()
