from .create_experiment import CreateExperiment, CreateExperimentError
from .execution_controller import ExecutionController, ExecutionHandle, ExperimentProgress
from .progress_broadcaster import ProgressBroadcaster
from .rag_pipeline import RagPipeline
from .run_executor import ExperimentContext, RunExecutor

__all__ = [
    "CreateExperiment",
    "CreateExperimentError",
    "ExecutionController",
    "ExecutionHandle",
    "ExperimentContext",
    "ExperimentProgress",
    "ProgressBroadcaster",
    "RagPipeline",
    "RunExecutor",
]
