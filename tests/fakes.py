import asyncio
import math
from typing import Any, Callable

from locallab.domain.contracts.broadcast import BroadcastTransportContract, Envelope
from locallab.domain.contracts.config import ExperimentConfig
from locallab.domain.contracts.documents import Document, DocumentRepositoryContract
from locallab.domain.contracts.embedding import (
    EmbeddingGatewayContract,
    EmbeddingModel,
    EmbeddingModelRegistryContract,
)
from locallab.domain.contracts.experiment import (
    Experiment,
    ExperimentRepositoryContract,
    ExperimentRun,
    ExperimentStatus,
    SystemPrompt,
    SystemPromptRepositoryContract,
    TaskTemplate,
)
from locallab.domain.contracts.generation import (
    GenerationBackendContract,
    GenerationRequest,
    GenerationResponse,
)
from locallab.domain.contracts.vector_store import (
    VectorDocument,
    VectorQueryResult,
    VectorStoreContract,
)
from locallab.domain.errors import NotFoundError


class InMemoryExperimentRepository(ExperimentRepositoryContract):
    def __init__(self) -> None:
        self.experiments: dict[int, Experiment] = {}
        self.runs: dict[int, ExperimentRun] = {}
        self.status_history: list[tuple[int, ExperimentStatus]] = []

    def create_experiment(
        self,
        name: str,
        config: ExperimentConfig,
        task_template: TaskTemplate | None = None,
    ) -> Experiment:
        experiment = Experiment(
            id=len(self.experiments) + 1,
            name=name,
            status=ExperimentStatus.DRAFT,
            config=config,
            task_template=task_template,
        )
        self.experiments[experiment.id] = experiment
        return experiment

    def load_experiment(self, experiment_id: int) -> Experiment:
        if experiment_id not in self.experiments:
            raise NotFoundError(f"Experiment not found: {experiment_id}")
        return self.experiments[experiment_id]

    def list_experiments(self) -> list[Experiment]:
        return list(self.experiments.values())

    def save_status(self, experiment_id: int, status: ExperimentStatus) -> None:
        self.load_experiment(experiment_id).status = status
        self.status_history.append((experiment_id, status))

    def save_run(self, run: ExperimentRun) -> ExperimentRun:
        if run.id is None:
            run.id = len(self.runs) + 1
        self.runs[run.id] = run
        return run

    def load_runs(self, experiment_id: int) -> list[ExperimentRun]:
        runs = [r for r in self.runs.values() if r.experiment_id == experiment_id]
        return sorted(runs, key=lambda r: (r.iteration, r.id))

    def count_runs(self, experiment_id: int) -> int:
        return len(self.load_runs(experiment_id))


class InMemorySystemPromptRepository(SystemPromptRepositoryContract):
    def __init__(self, prompts: list[SystemPrompt] | None = None) -> None:
        self._prompts = {p.id: p for p in prompts or []}

    def get(self, system_prompt_id: int) -> SystemPrompt | None:
        return self._prompts.get(system_prompt_id)


class InMemoryDocumentRepository(DocumentRepositoryContract):
    def __init__(self) -> None:
        self.documents: dict[int, Document] = {}

    def add(self, filename: str, content: str) -> Document:
        document = Document(
            id=len(self.documents) + 1, filename=filename, content=content
        )
        self.documents[document.id] = document
        return document

    def get(self, document_id: int) -> Document | None:
        return self.documents.get(document_id)

    def update_chunk_count(self, document_id: int, chunk_count: int) -> None:
        self.documents[document_id].chunk_count = chunk_count


class StaticEmbeddingRegistry(EmbeddingModelRegistryContract):
    def __init__(self, models: list[EmbeddingModel] | None = None) -> None:
        self._models = models or []

    def find_by_model_name(self, model_name: str) -> EmbeddingModel | None:
        for model in self._models:
            if model.model_name == model_name:
                return model
        return None

    def list_models(self) -> list[EmbeddingModel]:
        return list(self._models)


class LetterCountEmbeddingGateway(EmbeddingGatewayContract):
    """Embeds text as counts of the letters a, b and c."""

    DIMENSIONS = 3

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def embed(self, model: str, text: str) -> list[float]:
        self.calls.append((model, text))
        return [float(text.count(letter)) for letter in "abc"]


class InMemoryVectorStore(VectorStoreContract):
    def __init__(self) -> None:
        self.collections: dict[str, int] = {}
        self.documents: dict[str, list[VectorDocument]] = {}

    async def collection_exists(self, name: str) -> bool:
        return name in self.collections

    async def create_collection(self, name: str, dimensions: int) -> None:
        self.collections[name] = dimensions
        self.documents[name] = []

    async def delete_collection(self, name: str) -> None:
        self.collections.pop(name, None)
        self.documents.pop(name, None)

    async def add_documents(
        self, collection: str, documents: list[VectorDocument]
    ) -> None:
        self.documents[collection].extend(documents)

    async def query(
        self, collection: str, embedding: list[float], top_k: int
    ) -> list[VectorQueryResult]:
        results = [
            VectorQueryResult(
                content=d.content,
                distance=math.dist(d.embedding, embedding),
                metadata=dict(d.metadata),
            )
            for d in self.documents.get(collection, [])
        ]
        return sorted(results, key=lambda r: r.distance)[:top_k]


class FakeGenerationBackend(GenerationBackendContract):
    """Echoes the prompt back.

    ``fail_models`` raise on generate; ``on_generate`` is called with the
    request before responding and may be async; ``gate`` holds every call
    until it is set.
    """

    def __init__(
        self,
        fail_models: set[str] | None = None,
        on_generate: Callable[[GenerationRequest], Any] | None = None,
        gate: asyncio.Event | None = None,
        duration_ms: int = 10,
    ) -> None:
        self.fail_models = fail_models or set()
        self.on_generate = on_generate
        self.gate = gate
        self.duration_ms = duration_ms
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if self.on_generate is not None:
            result = self.on_generate(request)
            if asyncio.iscoroutine(result):
                await result
        if self.gate is not None:
            await self.gate.wait()
        if request.model in self.fail_models:
            raise RuntimeError(f"model {request.model} exploded")

        return GenerationResponse(
            text=f"echo: {request.prompt}",
            model=request.model,
            duration_ms=self.duration_ms,
            tokens_per_second=42.0,
            time_to_first_token_ms=3,
            prompt_tokens=len(request.prompt),
            completion_tokens=4,
        )


class RecordingTransport(BroadcastTransportContract):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, Envelope]] = []

    def publish(self, topic: str, envelope: Envelope) -> None:
        if self.fail:
            raise ConnectionError("transport down")
        self.published.append((topic, envelope))

    @property
    def envelopes(self) -> list[Envelope]:
        return [envelope for _, envelope in self.published]

    def types(self) -> list[str]:
        return [envelope.type.value for envelope in self.envelopes]
