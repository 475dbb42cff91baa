from dataclasses import dataclass

from .contracts.config import ExperimentConfig


@dataclass(frozen=True)
class RunSpec:
    model: str
    embedding_model: str | None
    iteration: int


def generate_run_matrix(config: ExperimentConfig) -> list[RunSpec]:
    embeddings: list[str | None] = list(config.embedding_models or []) or [None]

    return [
        RunSpec(model=model, embedding_model=embedding, iteration=iteration)
        for model in config.models
        for embedding in embeddings
        for iteration in range(1, config.iterations + 1)
    ]


def count_runs(config: ExperimentConfig) -> int:
    return (
        len(config.models)
        * max(len(config.embedding_models or []), 1)
        * config.iterations
    )
