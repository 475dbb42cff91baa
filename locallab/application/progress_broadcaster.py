import logging
from datetime import datetime, timezone
from typing import Any

from ..domain.contracts.broadcast import (
    BroadcastTransportContract,
    Envelope,
    MessageType,
)
from ..domain.contracts.experiment import ExperimentRun, ExperimentStatus

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "/experiments/"
TOPIC_SUFFIX = "/progress"


def topic_for(experiment_id: int) -> str:
    return f"{TOPIC_PREFIX}{experiment_id}{TOPIC_SUFFIX}"


def percent_complete(completed_runs: int, total_runs: int) -> float:
    if total_runs <= 0:
        return 0.0
    return completed_runs / total_runs * 100


class ProgressBroadcaster:
    """Best-effort publisher of experiment lifecycle events.

    Transport failures are logged and dropped; nothing here ever raises into
    the execution loop.
    """

    def __init__(self, transport: BroadcastTransportContract) -> None:
        self._transport = transport

    def publish(
        self,
        experiment_id: int,
        message_type: MessageType,
        payload: dict[str, Any] | None = None,
    ) -> None:
        envelope = Envelope(
            type=message_type,
            experiment_id=experiment_id,
            payload=payload,
            timestamp=datetime.now(timezone.utc),
        )
        topic = topic_for(experiment_id)

        try:
            self._transport.publish(topic, envelope)
            logger.debug("Published %s to %s", message_type.value, topic)
        except Exception as e:
            logger.error("Failed to publish %s to %s: %s", message_type.value, topic, e)

    def broadcast_progress(
        self,
        experiment_id: int,
        total_runs: int,
        completed_runs: int,
        failed_runs: int = 0,
        current_run_id: int | None = None,
        estimated_time_remaining_ms: int | None = None,
    ) -> None:
        self.publish(
            experiment_id,
            MessageType.PROGRESS,
            {
                "totalRuns": total_runs,
                "completedRuns": completed_runs,
                "failedRuns": failed_runs,
                "percentComplete": percent_complete(completed_runs, total_runs),
                "currentRunId": current_run_id,
                "estimatedTimeRemainingMs": estimated_time_remaining_ms,
            },
        )

    def broadcast_run_started(
        self,
        experiment_id: int,
        model_name: str,
        iteration: int,
        embedding_model: str | None = None,
    ) -> None:
        self.publish(
            experiment_id,
            MessageType.RUN_STARTED,
            {
                "modelName": model_name,
                "iteration": iteration,
                "embeddingModel": embedding_model,
            },
        )

    def broadcast_run_completed(self, experiment_id: int, run: ExperimentRun) -> None:
        self.publish(
            experiment_id,
            MessageType.RUN_COMPLETED,
            {
                "runId": run.id,
                "modelName": run.model_name,
                "iteration": run.iteration,
                "status": run.status.value,
                "durationMs": run.duration_ms,
                "tokensPerSecond": run.tokens_per_second,
                "errorMessage": run.error_message,
            },
        )

    def broadcast_experiment_completed(
        self,
        experiment_id: int,
        final_status: ExperimentStatus,
        total_runs: int,
        successful_runs: int,
        failed_runs: int,
        total_duration_ms: int | None = None,
    ) -> None:
        self.publish(
            experiment_id,
            MessageType.EXPERIMENT_COMPLETED,
            {
                "finalStatus": final_status.value,
                "totalRuns": total_runs,
                "successfulRuns": successful_runs,
                "failedRuns": failed_runs,
                "totalDurationMs": total_duration_ms,
            },
        )

    def broadcast_experiment_paused(
        self, experiment_id: int, completed_runs: int, remaining_runs: int
    ) -> None:
        self.publish(
            experiment_id,
            MessageType.EXPERIMENT_PAUSED,
            {"completedRuns": completed_runs, "remainingRuns": remaining_runs},
        )

    def broadcast_error(
        self,
        experiment_id: int,
        error_code: str,
        message: str,
        recoverable: bool = False,
    ) -> None:
        self.publish(
            experiment_id,
            MessageType.ERROR,
            {"errorCode": error_code, "message": message, "recoverable": recoverable},
        )
