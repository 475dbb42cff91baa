from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .config import ExperimentConfig


class ExperimentStatus(str, Enum):
    DRAFT = "DRAFT"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class TaskTemplate:
    name: str
    prompt_template: str


@dataclass
class SystemPrompt:
    id: int
    alias: str
    content: str


@dataclass
class Experiment:
    id: int
    name: str
    status: ExperimentStatus
    config: ExperimentConfig
    task_template: TaskTemplate | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime | None = None


@dataclass
class ExperimentRun:
    experiment_id: int
    model_name: str
    iteration: int
    embedding_model: str | None = None
    status: RunStatus = RunStatus.PENDING
    output: str | None = None
    duration_ms: int | None = None
    tokens_per_second: float | None = None
    time_to_first_token_ms: int | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    error_message: str | None = None
    system_prompt: str | None = None
    retrieved_chunks: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    id: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCESS


class ExperimentRepositoryContract(ABC):
    @abstractmethod
    def create_experiment(
        self,
        name: str,
        config: ExperimentConfig,
        task_template: TaskTemplate | None = None,
    ) -> Experiment:
        pass

    @abstractmethod
    def load_experiment(self, experiment_id: int) -> Experiment:
        pass

    @abstractmethod
    def list_experiments(self) -> list[Experiment]:
        pass

    @abstractmethod
    def save_status(self, experiment_id: int, status: ExperimentStatus) -> None:
        pass

    @abstractmethod
    def save_run(self, run: ExperimentRun) -> ExperimentRun:
        pass

    @abstractmethod
    def load_runs(self, experiment_id: int) -> list[ExperimentRun]:
        pass

    @abstractmethod
    def count_runs(self, experiment_id: int) -> int:
        pass


class SystemPromptRepositoryContract(ABC):
    @abstractmethod
    def get(self, system_prompt_id: int) -> SystemPrompt | None:
        pass
