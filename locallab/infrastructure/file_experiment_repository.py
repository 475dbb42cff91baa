import json
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

import frontmatter

from ..domain.contracts.config import ExperimentConfig
from ..domain.contracts.experiment import (
    Experiment,
    ExperimentRepositoryContract,
    ExperimentRun,
    ExperimentStatus,
    RunStatus,
    TaskTemplate,
)
from ..domain.errors import NotFoundError

EXPERIMENT_FILE = "experiment.md"
RUNS_DIR = "runs"


class FileRepositoryError(NotFoundError):
    pass


def numeric_ids(path: Path) -> list[int]:
    if not path.exists():
        return []
    return sorted(int(p.stem) for p in path.iterdir() if p.stem.isdigit())


def _run_to_dict(run: ExperimentRun) -> dict[str, Any]:
    data = asdict(run)
    data["status"] = run.status.value
    data["created_at"] = run.created_at.isoformat()
    return data


def _run_from_dict(data: dict[str, Any]) -> ExperimentRun:
    data = dict(data)
    data["status"] = RunStatus(data["status"])
    data["created_at"] = datetime.fromisoformat(data["created_at"])
    return ExperimentRun(**data)


class FileExperimentRepository(ExperimentRepositoryContract):
    """One directory per experiment.

    ``experiment.md`` holds the status and config in its frontmatter and the
    task template as its body; every run is a JSON file under ``runs/``.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    def _experiment_dir(self, experiment_id: int) -> Path:
        return self._root / str(experiment_id)

    def _experiment_file(self, experiment_id: int) -> Path:
        return self._experiment_dir(experiment_id) / EXPERIMENT_FILE

    def _runs_dir(self, experiment_id: int) -> Path:
        return self._experiment_dir(experiment_id) / RUNS_DIR

    def create_experiment(
        self,
        name: str,
        config: ExperimentConfig,
        task_template: TaskTemplate | None = None,
    ) -> Experiment:
        existing = numeric_ids(self._root)
        experiment_id = existing[-1] + 1 if existing else 1

        experiment = Experiment(
            id=experiment_id,
            name=name,
            status=ExperimentStatus.DRAFT,
            config=config,
            task_template=task_template,
        )

        self._runs_dir(experiment_id).mkdir(parents=True, exist_ok=True)
        self._write(experiment)
        return experiment

    def load_experiment(self, experiment_id: int) -> Experiment:
        experiment_file = self._experiment_file(experiment_id)
        if not experiment_file.exists():
            raise FileRepositoryError(f"Experiment not found: {experiment_id}")

        post = frontmatter.load(experiment_file)
        metadata = dict(post.metadata)

        task_template = None
        template_name = metadata.get("task_template")
        if template_name or post.content.strip():
            task_template = TaskTemplate(
                name=template_name or metadata.get("name", ""),
                prompt_template=post.content,
            )

        updated_at = metadata.get("updated_at")
        return Experiment(
            id=experiment_id,
            name=metadata.get("name", str(experiment_id)),
            status=ExperimentStatus(metadata.get("status", "DRAFT")),
            config=ExperimentConfig.from_dict(metadata.get("config") or {}),
            task_template=task_template,
            created_at=datetime.fromisoformat(str(metadata["created_at"])),
            updated_at=datetime.fromisoformat(str(updated_at)) if updated_at else None,
        )

    def list_experiments(self) -> list[Experiment]:
        return [
            self.load_experiment(experiment_id)
            for experiment_id in numeric_ids(self._root)
            if self._experiment_file(experiment_id).exists()
        ]

    def save_status(self, experiment_id: int, status: ExperimentStatus) -> None:
        experiment = self.load_experiment(experiment_id)
        experiment.status = status
        experiment.updated_at = datetime.now()
        self._write(experiment)

    def save_run(self, run: ExperimentRun) -> ExperimentRun:
        runs_dir = self._runs_dir(run.experiment_id)
        if not self._experiment_file(run.experiment_id).exists():
            raise FileRepositoryError(f"Experiment not found: {run.experiment_id}")
        runs_dir.mkdir(parents=True, exist_ok=True)

        if run.id is None:
            existing = numeric_ids(runs_dir)
            run.id = existing[-1] + 1 if existing else 1

        with open(runs_dir / f"{run.id:04d}.json", "w") as f:
            json.dump(_run_to_dict(run), f, indent=2)

        return run

    def load_runs(self, experiment_id: int) -> list[ExperimentRun]:
        runs_dir = self._runs_dir(experiment_id)
        if not runs_dir.exists():
            return []

        runs = []
        for run_file in sorted(runs_dir.glob("*.json")):
            with open(run_file) as f:
                runs.append(_run_from_dict(json.load(f)))

        return sorted(runs, key=lambda r: (r.iteration, r.id or 0))

    def count_runs(self, experiment_id: int) -> int:
        runs_dir = self._runs_dir(experiment_id)
        if not runs_dir.exists():
            return 0
        return sum(1 for _ in runs_dir.glob("*.json"))

    def _write(self, experiment: Experiment) -> None:
        metadata: dict[str, Any] = {
            "name": experiment.name,
            "status": experiment.status.value,
            "created_at": experiment.created_at.isoformat(),
            "config": experiment.config.to_dict(),
        }
        if experiment.updated_at is not None:
            metadata["updated_at"] = experiment.updated_at.isoformat()

        body = ""
        if experiment.task_template is not None:
            metadata["task_template"] = experiment.task_template.name
            body = experiment.task_template.prompt_template

        post = frontmatter.Post(body, **metadata)
        experiment_file = self._experiment_file(experiment.id)
        experiment_file.parent.mkdir(parents=True, exist_ok=True)
        with open(experiment_file, "w") as f:
            f.write(frontmatter.dumps(post))
