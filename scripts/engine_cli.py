# ABOUTME: Provides a diagnostics CLI over the learning engine for caller-supplied data files.
# ABOUTME: Renders learning queues, bottleneck reports, review schedules, and ability estimates.

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.bottleneck import analyze_bottleneck, build_remediation_plan, summarize_bottleneck
from src.common import (
    ComponentCode,
    ItemFeatureVector,
    ItemParameter,
    MasteryState,
    ThetaState,
    load_engine_config,
)
from src.fsrs import schedule as schedule_review
from src.irt import estimate_ability
from src.priority import QueueCandidate, analyze_queue, build_learning_queue, select_session_items

console = Console()
app = typer.Typer(help="Inspect priorities, bottlenecks, and review schedules for one learner.")

FEATURE_COLUMNS = [
    "frequency",
    "relational_density",
    "morphological_score",
    "phonological_difficulty",
    "syntactic_complexity",
    "pragmatic_score",
]


def _read_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def _to_utc(value) -> datetime:
    stamp = pd.Timestamp(value)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return stamp.tz_convert("UTC").to_pydatetime()


def _parse_now(now: Optional[str]) -> datetime:
    if not now:
        return datetime.now(timezone.utc)
    try:
        return _to_utc(now)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid timestamp: {now}") from exc


def _optional(row: pd.Series, column: str, default: Optional[float] = None) -> Optional[float]:
    if column not in row.index or pd.isna(row[column]):
        return default
    return float(row[column])


def _mastery_by_item(mastery_df: Optional[pd.DataFrame]) -> Dict[str, MasteryState]:
    states: Dict[str, MasteryState] = {}
    if mastery_df is None:
        return states
    for _, row in mastery_df.iterrows():
        next_review = row.get("next_review")
        states[str(row["item_id"])] = MasteryState(
            stage=int(row.get("stage", 0)),
            cue_free_accuracy=float(row.get("cue_free_accuracy", 0.0)),
            cue_assisted_accuracy=float(row.get("cue_assisted_accuracy", 0.0)),
            exposure_count=int(row.get("exposure_count", 0)),
            fsrs_difficulty=float(row.get("fsrs_difficulty", 5.0)),
            fsrs_stability=float(row.get("fsrs_stability", 0.1)),
            next_review=None if pd.isna(next_review) else _to_utc(next_review),
        ).normalized()
    return states


def _candidates(items_df: pd.DataFrame, mastery: Dict[str, MasteryState]) -> List[QueueCandidate]:
    candidates = []
    for _, row in items_df.iterrows():
        item_id = str(row["item_id"])
        parameter = None
        if "b" in row.index and not pd.isna(row["b"]):
            parameter = ItemParameter(
                id=item_id,
                a=_optional(row, "a", 1.0),
                b=float(row["b"]),
                c=_optional(row, "c", 0.0),
            )
        features = ItemFeatureVector(
            item_id=item_id,
            component=ComponentCode.from_code(row.get("component", "LEX")),
            **{column: _optional(row, column) for column in FEATURE_COLUMNS},
        )
        candidates.append(
            QueueCandidate(
                features=features,
                mastery=mastery.get(item_id, MasteryState()),
                item_parameter=parameter,
                coverage_gap=_optional(row, "coverage_gap", 0.0),
            )
        )
    return candidates


@app.command()
def queue(
    items_path: Path = typer.Option(..., "--items", help="Item features (csv or parquet) with item_id and component."),
    mastery_path: Optional[Path] = typer.Option(None, "--mastery", help="Per-item mastery records for the learner."),
    history_path: Optional[Path] = typer.Option(None, "--history", help="Response history used for bottleneck boosts."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine YAML config; defaults when omitted."),
    now: Optional[str] = typer.Option(None, "--now", help="Evaluation time (ISO8601); defaults to the current time."),
    limit: int = typer.Option(20, "--limit", help="Number of queue rows to show."),
    session_size: int = typer.Option(0, "--session-size", help="Also pick a mixed session of this size."),
) -> None:
    """Rank candidate items by priority, then urgency."""

    config = load_engine_config(config_path)
    when = _parse_now(now)
    mastery = _mastery_by_item(_read_table(mastery_path) if mastery_path else None)
    bottlenecks = None
    if history_path is not None:
        bottlenecks = analyze_bottleneck(_read_table(history_path), config.bottleneck, when).results

    entries = build_learning_queue(
        _candidates(_read_table(items_path), mastery),
        theta=ThetaState(),
        bottlenecks=bottlenecks,
        now=when,
        config=config,
    )

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Item ID", "Component", "Priority", "Urgency", "Stage", "Bottleneck"):
        table.add_column(column)
    for entry in entries[:limit]:
        table.add_row(
            entry.item_id,
            entry.component.value,
            f"{entry.priority:.3f}",
            f"{entry.urgency:.2f}",
            str(entry.stage),
            "yes" if entry.is_bottleneck else "",
        )
    console.rule("[bold blue]Learning Queue[/bold blue]")
    console.print(table)

    summary = analyze_queue(entries, when)
    console.print(
        f"[bold]Total:[/] {summary.total_items}  [bold]Due:[/] {summary.due_items}  "
        f"[bold]New:[/] {summary.new_items}  [bold]Avg priority:[/] {summary.average_priority:.3f}"
    )
    if session_size > 0:
        session = select_session_items(entries, session_size, now=when)
        console.print(f"[bold]Session:[/] {', '.join(e.item_id for e in session)}")


@app.command()
def bottlenecks(
    history_path: Path = typer.Option(..., "--history", help="Response history (csv or parquet)."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine YAML config; defaults when omitted."),
    now: Optional[str] = typer.Option(None, "--now", help="End of the analysis window (ISO8601)."),
) -> None:
    """Report per-component error rates, the primary bottleneck, and a remediation plan."""

    config = load_engine_config(config_path)
    analysis = analyze_bottleneck(_read_table(history_path), config.bottleneck, _parse_now(now))

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Component", "Responses", "Error Rate", "Trend", "Flagged"):
        table.add_column(column)
    for result in analysis.results:
        table.add_row(
            result.component.value,
            str(result.total_responses),
            f"{result.error_rate:.0%}",
            f"{result.trend:+.2f}",
            "[red]yes[/red]" if result.is_bottleneck else "",
        )
    console.rule("[bold blue]Bottleneck Analysis[/bold blue]")
    console.print(table)
    console.print(f"[bold]Primary:[/] {summarize_bottleneck(analysis)} (confidence {analysis.confidence:.2f})")
    console.print(analysis.recommendation)
    for item in build_remediation_plan(analysis.results):
        console.print(escape(f"- [{item.priority}] {item.component.value}: {', '.join(item.task_types)}"))


@app.command()
def schedule(
    correct: bool = typer.Option(..., "--correct/--incorrect", help="Outcome of the encounter."),
    response_time_ms: Optional[int] = typer.Option(None, "--response-time-ms", help="Response latency in milliseconds."),
    difficulty: float = typer.Option(5.0, "--difficulty", help="Current memory difficulty (1-10)."),
    stability: float = typer.Option(0.1, "--stability", help="Current memory stability in days."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine YAML config; defaults when omitted."),
    now: Optional[str] = typer.Option(None, "--now", help="Time of the encounter (ISO8601)."),
) -> None:
    """Show the next review produced by one encounter."""

    config = load_engine_config(config_path)
    result = schedule_review(correct, response_time_ms, difficulty, stability, now=_parse_now(now), config=config.fsrs)
    console.print(f"[bold]Rating:[/] {result.rating.name}")
    console.print(f"[bold]Difficulty:[/] {result.difficulty:.2f}")
    console.print(f"[bold]Stability:[/] {result.stability:.2f} days")
    console.print(f"[bold]Interval:[/] {result.interval_days:.2f} days")
    console.print(f"[bold]Next review:[/] {result.next_review.isoformat()}")


@app.command()
def theta(
    responses_path: Path = typer.Option(..., "--responses", help="Scored responses with item_id, correct and a/b/c."),
    method: Optional[str] = typer.Option(None, "--method", help="eap or mle; the config default when omitted."),
    prior: Optional[float] = typer.Option(None, "--prior", help="Prior ability; the configured prior mean when omitted."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine YAML config; defaults when omitted."),
) -> None:
    """Estimate ability from a set of scored responses."""

    config = load_engine_config(config_path)
    df = _read_table(responses_path)
    responses = [
        (
            ItemParameter(
                id=str(row["item_id"]),
                a=_optional(row, "a", 1.0),
                b=_optional(row, "b", 0.0),
                c=_optional(row, "c", 0.0),
            ),
            bool(row["correct"]),
        )
        for _, row in df.iterrows()
    ]
    try:
        result = estimate_ability(responses, prior_theta=prior, method=method, config=config.irt)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    console.print(
        f"[bold]Theta:[/] {result.theta:+.3f}  [bold]SE:[/] {result.se:.3f}  "
        f"[bold]Method:[/] {result.method}  [bold]Converged:[/] {result.converged}"
    )


if __name__ == "__main__":
    app()
