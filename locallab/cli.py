import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, AsyncIterator

import typer
from dotenv import load_dotenv

from locallab.application import (
    CreateExperiment,
    ExecutionController,
    ProgressBroadcaster,
    RagPipeline,
    RunExecutor,
)
from locallab.application.progress_broadcaster import topic_for
from locallab.application.rag_pipeline import collection_name
from locallab.domain.contracts.broadcast import Envelope
from locallab.domain.errors import LocalLabError, NotFoundError
from locallab.domain.matrix import count_runs
from locallab.infrastructure import (
    FileDocumentRepository,
    FileExperimentRepository,
    FileSystemPromptRepository,
    InProcessTransport,
    QdrantVectorStore,
    Settings,
    YamlEmbeddingModelRegistry,
    create_qdrant_client,
    setup_logging,
)
from locallab.infrastructure.console_display import (
    console,
    display_experiments_table,
    display_outcome,
    display_run,
    display_runs_table,
    follow_progress,
    progress_bar,
)
from locallab.infrastructure.providers import (
    OllamaEmbeddingGateway,
    OllamaGenerationBackend,
    create_client,
)

load_dotenv()

app = typer.Typer(
    name="locallab",
    help="Run prompt experiments against local Ollama models, with optional RAG context",
    no_args_is_help=True,
)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 50


def _settings() -> Settings:
    try:
        settings = Settings.from_env()
    except LocalLabError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    setup_logging(settings.log_level, settings.log_file)
    return settings


def _experiment_repository(settings: Settings) -> FileExperimentRepository:
    return FileExperimentRepository(settings.experiments_dir)


def _document_repository(settings: Settings) -> FileDocumentRepository:
    return FileDocumentRepository(settings.documents_dir)


@dataclass
class Runtime:
    experiment_repository: FileExperimentRepository
    rag_pipeline: RagPipeline
    transport: InProcessTransport
    controller: ExecutionController


@asynccontextmanager
async def _open_runtime(settings: Settings) -> AsyncIterator[Runtime]:
    client = create_client(settings)
    vector_store = QdrantVectorStore(create_qdrant_client(settings))
    experiment_repository = _experiment_repository(settings)

    rag_pipeline = RagPipeline(
        document_repository=_document_repository(settings),
        embedding_registry=YamlEmbeddingModelRegistry(settings.embedding_models_file),
        embedding_gateway=OllamaEmbeddingGateway(client),
        vector_store=vector_store,
    )
    transport = InProcessTransport()
    controller = ExecutionController(
        experiment_repository=experiment_repository,
        run_executor=RunExecutor(
            experiment_repository=experiment_repository,
            generation_backend=OllamaGenerationBackend(client),
            rag_pipeline=rag_pipeline,
        ),
        broadcaster=ProgressBroadcaster(transport),
        system_prompt_repository=FileSystemPromptRepository(
            settings.system_prompts_dir
        ),
        max_concurrent_experiments=settings.max_concurrent_experiments,
    )

    try:
        yield Runtime(experiment_repository, rag_pipeline, transport, controller)
    finally:
        await controller.shutdown()
        await vector_store.close()
        await client.close()


def _request_pause(controller: ExecutionController, experiment_id: int) -> None:
    console.print("\n[yellow]Pause requested, finishing current run...[/yellow]")
    controller.pause(experiment_id)


async def _execute_with_progress(
    settings: Settings, experiment_id: int, resume: bool
) -> Envelope:
    async with _open_runtime(settings) as runtime:
        experiment = runtime.experiment_repository.load_experiment(experiment_id)
        total = count_runs(experiment.config)
        completed = (
            min(runtime.experiment_repository.count_runs(experiment_id), total)
            if resume
            else 0
        )

        topic = topic_for(experiment_id)
        queue = runtime.transport.subscribe(topic)
        loop = asyncio.get_running_loop()
        try:
            if resume:
                handle = await runtime.controller.resume(experiment_id)
            else:
                handle = await runtime.controller.start(experiment_id)

            loop.add_signal_handler(
                signal.SIGINT, _request_pause, runtime.controller, experiment_id
            )
            with progress_bar(
                f"Running {experiment.name}", total, completed
            ) as (progress, task_id):
                outcome = await follow_progress(queue, progress, task_id)
            await handle.wait()
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            runtime.transport.unsubscribe(topic, queue)

        return outcome


def _run_experiment(experiment_id: int, resume: bool) -> None:
    settings = _settings()
    try:
        outcome = asyncio.run(_execute_with_progress(settings, experiment_id, resume))
        display_outcome(outcome)

        repository = _experiment_repository(settings)
        display_runs_table(
            repository.load_experiment(experiment_id),
            repository.load_runs(experiment_id),
        )
    except LocalLabError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command(help="Create a DRAFT experiment from a YAML config.")
def new(
    config: Annotated[
        Path, typer.Option("--config", "-c", help="Path to experiment YAML")
    ],
) -> None:
    settings = _settings()
    try:
        experiment = CreateExperiment(
            _experiment_repository(settings), _document_repository(settings)
        ).from_config(config.resolve())
    except LocalLabError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    total = count_runs(experiment.config)
    typer.echo(f"Created experiment {experiment.id}: {experiment.name} ({total} runs)")
    typer.echo(f"Start it with: locallab run {experiment.id}")


@app.command(help="Run a DRAFT experiment. Ctrl-C pauses after the current run.")
def run(
    experiment_id: Annotated[int, typer.Argument(help="Experiment ID")],
) -> None:
    _run_experiment(experiment_id, resume=False)


@app.command(help="Resume a PAUSED experiment.")
def resume(
    experiment_id: Annotated[int, typer.Argument(help="Experiment ID")],
) -> None:
    _run_experiment(experiment_id, resume=True)


@app.command("add-document", help="Store a plain-text document for RAG experiments.")
def add_document(
    path: Annotated[Path, typer.Argument(help="Path to a text file")],
) -> None:
    settings = _settings()
    path = path.resolve()

    if not path.is_file():
        typer.echo(f"Error: File not found: {path}", err=True)
        raise typer.Exit(1)

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        typer.echo(f"Error: {path.name} is not a UTF-8 text file", err=True)
        raise typer.Exit(1)

    document = _document_repository(settings).add(path.name, content)
    typer.echo(f"Added document {document.id}: {document.filename}")


async def _ingest(
    settings: Settings,
    document_id: int,
    embedding_model: str,
    chunk_size: int,
    overlap: int,
    replace: bool,
) -> int:
    async with _open_runtime(settings) as runtime:
        if replace:
            await runtime.rag_pipeline.delete_embeddings(document_id, embedding_model)
        return await runtime.rag_pipeline.embed_and_store(
            document_id, embedding_model, chunk_size, overlap
        )


@app.command(help="Chunk and embed a document into the vector store.")
def ingest(
    document_id: Annotated[int, typer.Argument(help="Document ID")],
    model: Annotated[
        str, typer.Option("--model", "-m", help="Registered embedding model")
    ],
    chunk_size: Annotated[
        int, typer.Option("--chunk-size", help="Chunk size in characters")
    ] = DEFAULT_CHUNK_SIZE,
    overlap: Annotated[
        int, typer.Option("--overlap", help="Characters shared by adjacent chunks")
    ] = DEFAULT_CHUNK_OVERLAP,
    replace: Annotated[
        bool, typer.Option("--replace", help="Drop existing embeddings first")
    ] = False,
) -> None:
    settings = _settings()
    try:
        stored = asyncio.run(
            _ingest(settings, document_id, model, chunk_size, overlap, replace)
        )
    except (LocalLabError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(
        f"Stored {stored} chunks in {collection_name(document_id, model)}"
    )


@app.command(help="Show the runs of an experiment.")
def results(
    experiment_id: Annotated[int, typer.Argument(help="Experiment ID")],
    run_id: Annotated[
        int | None, typer.Option("--run", "-r", help="Show one run in full")
    ] = None,
) -> None:
    repository = _experiment_repository(_settings())
    try:
        experiment = repository.load_experiment(experiment_id)
        runs = repository.load_runs(experiment_id)
        if run_id is None:
            display_runs_table(experiment, runs)
            return

        matching = [r for r in runs if r.id == run_id]
        if not matching:
            raise NotFoundError(
                f"Run {run_id} not found in experiment {experiment_id}"
            )
        display_run(matching[0])
    except LocalLabError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("list", help="List experiments and their status.")
def list_experiments() -> None:
    repository = _experiment_repository(_settings())
    try:
        display_experiments_table(repository.list_experiments())
    except LocalLabError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
