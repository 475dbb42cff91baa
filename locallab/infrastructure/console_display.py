import asyncio
from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from ..domain.contracts.broadcast import Envelope, MessageType
from ..domain.contracts.experiment import (
    Experiment,
    ExperimentRun,
    ExperimentStatus,
    RunStatus,
)

console = Console()

TERMINAL_MESSAGES = {
    MessageType.EXPERIMENT_COMPLETED,
    MessageType.EXPERIMENT_PAUSED,
    MessageType.ERROR,
}


@contextmanager
def progress_bar(
    description: str, total: int, completed: int = 0
) -> Generator[tuple[Progress, TaskID], None, None]:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("({task.completed}/{task.total})"),
        console=console,
    )
    with progress:
        task_id = progress.add_task(description, total=total, completed=completed)
        yield progress, task_id


async def follow_progress(
    queue: "asyncio.Queue[Envelope]", progress: Progress, task_id: TaskID
) -> Envelope:
    """Advance the bar from broadcast envelopes until the experiment stops."""
    while True:
        envelope = await queue.get()

        if envelope.type is MessageType.RUN_STARTED:
            payload = envelope.payload
            label = payload["modelName"]
            if payload.get("embeddingModel"):
                label += f" + {payload['embeddingModel']}"
            progress.update(
                task_id, description=f"{label} (iteration {payload['iteration']})"
            )
        elif envelope.type is MessageType.PROGRESS:
            progress.update(task_id, completed=envelope.payload["completedRuns"])
        elif envelope.type is MessageType.RUN_COMPLETED:
            if envelope.payload["status"] == RunStatus.FAILED.value:
                progress.console.print(
                    f"[red]Run {envelope.payload['runId']} failed:[/red] "
                    f"{envelope.payload.get('errorMessage')}"
                )

        if envelope.type in TERMINAL_MESSAGES:
            return envelope


def display_outcome(envelope: Envelope) -> None:
    payload = envelope.payload
    if envelope.type is MessageType.EXPERIMENT_COMPLETED:
        console.print(
            f"\n[bold green]Complete![/bold green] "
            f"{payload['successfulRuns']}/{payload['totalRuns']} runs succeeded"
        )
    elif envelope.type is MessageType.EXPERIMENT_PAUSED:
        console.print(
            f"\n[bold yellow]Paused[/bold yellow] after {payload['completedRuns']} runs, "
            f"{payload['remainingRuns']} remaining. "
            f"Continue with: locallab resume {envelope.experiment_id}"
        )
    elif envelope.type is MessageType.ERROR:
        console.print(f"\n[bold red]Failed:[/bold red] {payload['message']}")


def display_experiments_table(experiments: list[Experiment]) -> None:
    if not experiments:
        console.print("[dim]No experiments yet.[/dim]")
        return

    table = Table(title="Experiments", show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Status", justify="center")
    table.add_column("Models")
    table.add_column("Context", justify="center")
    table.add_column("Iterations", justify="right")
    table.add_column("Created", style="dim")

    for experiment in experiments:
        config = experiment.config
        table.add_row(
            str(experiment.id),
            experiment.name,
            Text(experiment.status.value, style=_status_style(experiment.status)),
            ", ".join(config.models),
            config.context_mode.value,
            str(config.iterations),
            experiment.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def display_runs_table(experiment: Experiment, runs: list[ExperimentRun]) -> None:
    console.print()
    table = Table(
        title=f"Results: {experiment.name} ({experiment.status.value})",
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("Run", justify="right", style="dim")
    table.add_column("Model")
    table.add_column("Embedding", style="dim")
    table.add_column("Iter", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Duration", justify="right")
    table.add_column("TTFT", justify="right")
    table.add_column("Tok/s", justify="right")

    for run in runs:
        table.add_row(
            str(run.id),
            run.model_name,
            run.embedding_model or "-",
            str(run.iteration),
            Text(run.status.value, style="green" if run.succeeded else "bold red"),
            f"{run.duration_ms}ms" if run.duration_ms is not None else "-",
            f"{run.time_to_first_token_ms}ms"
            if run.time_to_first_token_ms is not None
            else "-",
            f"{run.tokens_per_second:.1f}" if run.tokens_per_second else "-",
        )

    console.print(table)
    console.print()

    succeeded = [r for r in runs if r.succeeded]
    if succeeded:
        durations = [r.duration_ms for r in succeeded if r.duration_ms is not None]
        avg_duration = sum(durations) / len(durations) if durations else 0
        console.print(
            f"[dim]Runs: {len(runs)} | "
            f"Succeeded: {len(succeeded)} | "
            f"Avg Duration: {avg_duration:.0f}ms[/dim]"
        )
    else:
        console.print(f"[dim]Runs: {len(runs)} | Succeeded: 0[/dim]")


def display_run(run: ExperimentRun) -> None:
    title = f"Run {run.id}: {run.model_name} (iteration {run.iteration})"
    if run.embedding_model:
        title += f" [dim]with {run.embedding_model}[/dim]"
    console.print()
    console.print(f"[bold]{title}[/bold]")

    if run.system_prompt:
        console.print(Panel(run.system_prompt, title="System Prompt", border_style="dim"))

    if run.retrieved_chunks:
        console.print(f"[dim]Retrieved {len(run.retrieved_chunks)} chunks[/dim]")

    if run.succeeded:
        console.print(Panel(run.output or "", title="Output", border_style="blue"))
    else:
        console.print(
            Panel(run.error_message or "", title="Error", border_style="red")
        )


def _status_style(status: ExperimentStatus) -> str:
    if status is ExperimentStatus.COMPLETED:
        return "bold green"
    elif status is ExperimentStatus.RUNNING:
        return "blue"
    elif status is ExperimentStatus.PAUSED:
        return "yellow"
    elif status is ExperimentStatus.FAILED:
        return "bold red"
    else:
        return "dim"
