import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

from ..domain.contracts.experiment import (
    Experiment,
    ExperimentRepositoryContract,
    ExperimentStatus,
    SystemPromptRepositoryContract,
)
from ..domain.errors import InvalidStateError
from ..domain.matrix import RunSpec, generate_run_matrix
from .progress_broadcaster import ProgressBroadcaster, percent_complete
from .run_executor import ExperimentContext, RunExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_EXPERIMENTS = 4
CANCELLED_MESSAGE = "Cancelled by user"


class ControlMessage(str, Enum):
    PAUSE = "PAUSE"
    CANCEL = "CANCEL"


@dataclass
class ExecutionState:
    experiment_id: int
    total_runs: int
    completed_runs: int = 0
    failed_runs: int = 0
    paused: bool = False
    cancelled: bool = False


@dataclass(frozen=True)
class ExperimentProgress:
    experiment_id: int
    completed_runs: int
    total_runs: int
    percent_complete: float


class ExecutionHandle:
    """Handle on a spawned execution.

    ``started`` only becomes true once the execution holds a slot in the
    worker pool; until then it is queued behind other experiments.
    """

    def __init__(
        self,
        experiment_id: int,
        future: "asyncio.Future[ExperimentStatus]",
        started: asyncio.Event,
    ) -> None:
        self.experiment_id = experiment_id
        self._future = future
        self._started = started

    @classmethod
    def finished(cls, experiment_id: int, status: ExperimentStatus) -> "ExecutionHandle":
        future: asyncio.Future[ExperimentStatus] = (
            asyncio.get_running_loop().create_future()
        )
        future.set_result(status)
        started = asyncio.Event()
        started.set()
        return cls(experiment_id, future, started)

    @property
    def started(self) -> bool:
        return self._started.is_set()

    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> ExperimentStatus:
        return await asyncio.shield(self._future)


class _ExecutionWorker:
    # Sole writer of its ExecutionState; pause/cancel arrive through the inbox
    # and are only looked at between runs.

    def __init__(
        self,
        controller: "ExecutionController",
        context: ExperimentContext,
        remaining: list[RunSpec],
        state: ExecutionState,
    ) -> None:
        self._controller = controller
        self._context = context
        self._remaining = remaining
        self._inbox: asyncio.Queue[ControlMessage] = asyncio.Queue()
        self.state = state
        self.started = asyncio.Event()
        self.run_durations_ms: list[int] = []

    @property
    def experiment_id(self) -> int:
        return self.state.experiment_id

    def send(self, message: ControlMessage) -> None:
        self._inbox.put_nowait(message)

    def snapshot(self) -> ExperimentProgress:
        return ExperimentProgress(
            experiment_id=self.state.experiment_id,
            completed_runs=self.state.completed_runs,
            total_runs=self.state.total_runs,
            percent_complete=percent_complete(
                self.state.completed_runs, self.state.total_runs
            ),
        )

    async def run(self, pool: asyncio.Semaphore) -> ExperimentStatus:
        async with pool:
            self.started.set()
            try:
                return await self._execute()
            except Exception as e:
                logger.exception(
                    "Execution of experiment %s aborted", self.experiment_id
                )
                return self._controller._finalize_failed(
                    self, str(e) or type(e).__name__, error_code="EXECUTION_FAILED"
                )
            finally:
                self._controller._release(self)

    async def _execute(self) -> ExperimentStatus:
        controller = self._controller
        broadcaster = controller.broadcaster
        experiment_id = self.experiment_id
        started_at = time.perf_counter()

        for index, run_spec in enumerate(self._remaining):
            self._drain_inbox()

            if self.state.cancelled:
                logger.info("Experiment %s cancelled", experiment_id)
                return controller._finalize_failed(
                    self, CANCELLED_MESSAGE, error_code="CANCELLED"
                )

            if self.state.paused:
                logger.info("Experiment %s paused", experiment_id)
                controller._save_status(experiment_id, ExperimentStatus.PAUSED)
                broadcaster.broadcast_experiment_paused(
                    experiment_id,
                    completed_runs=self.state.completed_runs,
                    remaining_runs=len(self._remaining) - index,
                )
                return ExperimentStatus.PAUSED

            broadcaster.broadcast_run_started(
                experiment_id,
                model_name=run_spec.model,
                iteration=run_spec.iteration,
                embedding_model=run_spec.embedding_model,
            )

            run = await controller.run_executor.execute_single_run(
                run_spec, self._context
            )

            self.state.completed_runs += 1
            if not run.succeeded:
                self.state.failed_runs += 1
            if run.duration_ms is not None:
                self.run_durations_ms.append(run.duration_ms)

            broadcaster.broadcast_run_completed(experiment_id, run)
            broadcaster.broadcast_progress(
                experiment_id,
                total_runs=self.state.total_runs,
                completed_runs=self.state.completed_runs,
                failed_runs=self.state.failed_runs,
                current_run_id=run.id,
                estimated_time_remaining_ms=self._estimate_remaining_ms(index + 1),
            )

        logger.info("Experiment %s completed", experiment_id)
        controller._save_status(experiment_id, ExperimentStatus.COMPLETED)
        broadcaster.broadcast_experiment_completed(
            experiment_id,
            final_status=ExperimentStatus.COMPLETED,
            total_runs=self.state.total_runs,
            successful_runs=self.state.completed_runs - self.state.failed_runs,
            failed_runs=self.state.failed_runs,
            total_duration_ms=int((time.perf_counter() - started_at) * 1000),
        )
        return ExperimentStatus.COMPLETED

    def _drain_inbox(self) -> None:
        while not self._inbox.empty():
            message = self._inbox.get_nowait()
            if message is ControlMessage.PAUSE:
                self.state.paused = True
            elif message is ControlMessage.CANCEL:
                self.state.cancelled = True

    def _estimate_remaining_ms(self, executed: int) -> int | None:
        if not self.run_durations_ms:
            return None
        average = sum(self.run_durations_ms) / len(self.run_durations_ms)
        return int(average * (len(self._remaining) - executed))


class ExecutionController:
    """Drives experiments through DRAFT -> RUNNING -> PAUSED/COMPLETED/FAILED.

    Every started or resumed experiment gets its own worker task. Runs inside
    one experiment execute strictly one after another; at most
    ``max_concurrent_experiments`` experiments execute at the same time and
    the rest wait for a free slot.
    """

    def __init__(
        self,
        experiment_repository: ExperimentRepositoryContract,
        run_executor: RunExecutor,
        broadcaster: ProgressBroadcaster,
        system_prompt_repository: SystemPromptRepositoryContract | None = None,
        max_concurrent_experiments: int = DEFAULT_MAX_CONCURRENT_EXPERIMENTS,
    ) -> None:
        if max_concurrent_experiments < 1:
            raise ValueError("max_concurrent_experiments must be at least 1")

        self._experiment_repository = experiment_repository
        self._system_prompt_repository = system_prompt_repository
        self._max_concurrent_experiments = max_concurrent_experiments
        self._pool: asyncio.Semaphore | None = None
        self._workers: dict[int, _ExecutionWorker] = {}
        self._tasks: set[asyncio.Task[ExperimentStatus]] = set()
        self.run_executor = run_executor
        self.broadcaster = broadcaster

    async def start(self, experiment_id: int) -> ExecutionHandle:
        logger.info("Starting experiment %s", experiment_id)

        experiment = self._experiment_repository.load_experiment(experiment_id)
        if experiment.status is not ExperimentStatus.DRAFT:
            raise InvalidStateError(
                "Experiment must be in DRAFT status to start, current status: "
                f"{experiment.status.value}"
            )
        self._ensure_not_executing(experiment_id)

        experiment.config.validate()
        context = self._build_context(experiment)
        run_matrix = generate_run_matrix(experiment.config)

        self._save_status(experiment_id, ExperimentStatus.RUNNING)
        logger.info(
            "Generated %d runs for experiment %s", len(run_matrix), experiment_id
        )

        state = ExecutionState(experiment_id=experiment_id, total_runs=len(run_matrix))
        return self._spawn(context, run_matrix, state)

    async def resume(self, experiment_id: int) -> ExecutionHandle:
        logger.info("Resuming experiment %s", experiment_id)

        experiment = self._experiment_repository.load_experiment(experiment_id)
        if experiment.status is not ExperimentStatus.PAUSED:
            raise InvalidStateError(
                "Experiment must be in PAUSED status to resume, current status: "
                f"{experiment.status.value}"
            )
        self._ensure_not_executing(experiment_id)

        experiment.config.validate()
        context = self._build_context(experiment)
        run_matrix = generate_run_matrix(experiment.config)

        # Persisted runs are assumed to be a prefix of the regenerated matrix.
        skip = min(
            self._experiment_repository.count_runs(experiment_id), len(run_matrix)
        )
        remaining = run_matrix[skip:]
        successful = min(self._count_successful_runs(experiment_id), skip)

        self._save_status(experiment_id, ExperimentStatus.RUNNING)
        logger.info(
            "Resuming experiment %s with %d of %d runs remaining",
            experiment_id,
            len(remaining),
            len(run_matrix),
        )

        if not remaining:
            logger.info(
                "No remaining runs for experiment %s, marking as completed",
                experiment_id,
            )
            self._save_status(experiment_id, ExperimentStatus.COMPLETED)
            self.broadcaster.broadcast_experiment_completed(
                experiment_id,
                final_status=ExperimentStatus.COMPLETED,
                total_runs=len(run_matrix),
                successful_runs=successful,
                failed_runs=skip - successful,
            )
            return ExecutionHandle.finished(experiment_id, ExperimentStatus.COMPLETED)

        state = ExecutionState(
            experiment_id=experiment_id,
            total_runs=len(run_matrix),
            completed_runs=skip,
            failed_runs=skip - successful,
        )
        return self._spawn(context, remaining, state)

    def pause(self, experiment_id: int) -> None:
        logger.info("Pausing experiment %s", experiment_id)
        worker = self._live_worker(experiment_id)
        if worker is not None:
            worker.send(ControlMessage.PAUSE)

    def cancel(self, experiment_id: int) -> None:
        logger.info("Cancelling experiment %s", experiment_id)
        worker = self._live_worker(experiment_id)
        if worker is not None:
            worker.send(ControlMessage.CANCEL)

    def get_progress(self, experiment_id: int) -> ExperimentProgress | None:
        worker = self._workers.get(experiment_id)
        if worker is None:
            return None
        return worker.snapshot()

    def is_executing(self, experiment_id: int) -> bool:
        return experiment_id in self._workers

    def active_experiments(self) -> list[int]:
        return sorted(self._workers)

    async def shutdown(self) -> None:
        """Cancel every outstanding execution task and wait for them to exit.

        Experiments interrupted this way keep their RUNNING status, exactly as
        after a crash.
        """
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(
        self,
        context: ExperimentContext,
        run_specs: list[RunSpec],
        state: ExecutionState,
    ) -> ExecutionHandle:
        worker = _ExecutionWorker(self, context, run_specs, state)
        self._workers[state.experiment_id] = worker

        task = asyncio.create_task(
            worker.run(self._get_pool()),
            name=f"experiment-exec-{state.experiment_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return ExecutionHandle(state.experiment_id, task, worker.started)

    def _get_pool(self) -> asyncio.Semaphore:
        if self._pool is None:
            self._pool = asyncio.Semaphore(self._max_concurrent_experiments)
        return self._pool

    def _live_worker(self, experiment_id: int) -> _ExecutionWorker | None:
        worker = self._workers.get(experiment_id)
        if worker is None:
            logger.warning("No active execution found for experiment %s", experiment_id)
        return worker

    def _ensure_not_executing(self, experiment_id: int) -> None:
        if experiment_id in self._workers:
            raise InvalidStateError(f"Experiment {experiment_id} is already executing")

    def _release(self, worker: _ExecutionWorker) -> None:
        if self._workers.get(worker.experiment_id) is worker:
            del self._workers[worker.experiment_id]

    def _finalize_failed(
        self, worker: _ExecutionWorker, reason: str, error_code: str
    ) -> ExperimentStatus:
        experiment_id = worker.experiment_id
        try:
            self._save_status(experiment_id, ExperimentStatus.FAILED)
        except Exception:
            logger.exception(
                "Could not record FAILED status for experiment %s", experiment_id
            )
        self.broadcaster.broadcast_error(
            experiment_id,
            error_code=error_code,
            message=reason,
            recoverable=False,
        )
        return ExperimentStatus.FAILED

    def _build_context(self, experiment: Experiment) -> ExperimentContext:
        system_prompt = None
        system_prompt_id = experiment.config.system_prompt_id
        if system_prompt_id is not None and self._system_prompt_repository:
            system_prompt = self._system_prompt_repository.get(system_prompt_id)
            if system_prompt is None:
                logger.warning(
                    "System prompt %s not found for experiment %s",
                    system_prompt_id,
                    experiment.id,
                )
        return ExperimentContext(experiment=experiment, system_prompt=system_prompt)

    def _count_successful_runs(self, experiment_id: int) -> int:
        return sum(
            1 for run in self._experiment_repository.load_runs(experiment_id)
            if run.succeeded
        )

    def _save_status(self, experiment_id: int, status: ExperimentStatus) -> None:
        self._experiment_repository.save_status(experiment_id, status)
        logger.info("Experiment %s status is now %s", experiment_id, status.value)
