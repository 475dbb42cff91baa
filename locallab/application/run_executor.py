import logging
from dataclasses import asdict, dataclass

from ..domain.contracts.config import ExperimentConfig
from ..domain.contracts.experiment import (
    Experiment,
    ExperimentRepositoryContract,
    ExperimentRun,
    RunStatus,
    SystemPrompt,
)
from ..domain.contracts.generation import (
    GenerationBackendContract,
    GenerationRequest,
    GenerationResponse,
)
from ..domain.errors import ConfigurationError
from ..domain.matrix import RunSpec
from .prompts import render_prompt
from .rag_pipeline import DEFAULT_TOP_K, RagPipeline, build_context, collection_name

logger = logging.getLogger(__name__)


@dataclass
class ExperimentContext:
    experiment: Experiment
    system_prompt: SystemPrompt | None = None

    @property
    def config(self) -> ExperimentConfig:
        return self.experiment.config


class RunExecutor:
    def __init__(
        self,
        experiment_repository: ExperimentRepositoryContract,
        generation_backend: GenerationBackendContract,
        rag_pipeline: RagPipeline | None = None,
    ) -> None:
        self._experiment_repository = experiment_repository
        self._generation_backend = generation_backend
        self._rag_pipeline = rag_pipeline

    async def execute_single_run(
        self, run_spec: RunSpec, context: ExperimentContext
    ) -> ExperimentRun:
        """Execute one run and persist its outcome.

        Never raises for a failed generation: the error is recorded on the
        returned run with status FAILED so the caller's loop keeps going.
        """
        experiment = context.experiment
        logger.debug(
            "Executing run for experiment %s: model=%s, embedding=%s, iteration=%d",
            experiment.id,
            run_spec.model,
            run_spec.embedding_model,
            run_spec.iteration,
        )

        run = self._experiment_repository.save_run(
            ExperimentRun(
                experiment_id=experiment.id,
                model_name=run_spec.model,
                embedding_model=run_spec.embedding_model,
                iteration=run_spec.iteration,
                status=RunStatus.RUNNING,
            )
        )

        try:
            response = await self._generate(run, run_spec, context)
        except Exception as e:
            logger.error(
                "Run failed for experiment %s, model %s: %s",
                experiment.id,
                run_spec.model,
                e,
                exc_info=True,
            )
            run.status = RunStatus.FAILED
            run.error_message = str(e) or type(e).__name__
        else:
            run.status = RunStatus.SUCCESS
            run.output = response.text
            run.duration_ms = response.duration_ms
            run.tokens_per_second = response.tokens_per_second
            run.time_to_first_token_ms = response.time_to_first_token_ms
            run.prompt_tokens = response.prompt_tokens
            run.completion_tokens = response.completion_tokens
            logger.debug(
                "Run succeeded for experiment %s, model %s in %dms",
                experiment.id,
                run_spec.model,
                response.duration_ms,
            )

        return self._experiment_repository.save_run(run)

    async def build_prompt(
        self, run: ExperimentRun, run_spec: RunSpec, context: ExperimentContext
    ) -> str:
        config = context.config
        template = (
            context.experiment.task_template.prompt_template
            if context.experiment.task_template
            else None
        )
        prompt = render_prompt(template, config.variable_values)

        if (
            config.uses_rag
            and config.document_id is not None
            and run_spec.embedding_model is not None
        ):
            if self._rag_pipeline is None:
                raise ConfigurationError(
                    "RAG context mode requires a configured retrieval pipeline"
                )

            chunks = await self._rag_pipeline.query(
                collection_name(config.document_id, run_spec.embedding_model),
                prompt,
                run_spec.embedding_model,
                DEFAULT_TOP_K,
            )
            run.retrieved_chunks = [asdict(chunk) for chunk in chunks]
            prompt = build_context(chunks) + "\n\n" + prompt

        return prompt

    async def _generate(
        self, run: ExperimentRun, run_spec: RunSpec, context: ExperimentContext
    ) -> GenerationResponse:
        prompt = await self.build_prompt(run, run_spec, context)
        hyperparameters = context.config.hyperparameters

        request = GenerationRequest(model=run_spec.model, prompt=prompt)
        if hyperparameters is not None:
            request.temperature = hyperparameters.temperature
            request.top_p = hyperparameters.top_p
            request.top_k = hyperparameters.top_k
            request.context_window = hyperparameters.context_window
            request.max_tokens = hyperparameters.max_tokens

        if context.system_prompt is not None:
            request.system_prompt = context.system_prompt.content
            run.system_prompt = context.system_prompt.content

        return await self._generation_backend.generate(request)
