from .chunking import chunk_text
from .errors import (
    BackendError,
    ConfigurationError,
    InvalidStateError,
    LocalLabError,
    NotFoundError,
)
from .matrix import RunSpec, count_runs, generate_run_matrix

__all__ = [
    "BackendError",
    "ConfigurationError",
    "InvalidStateError",
    "LocalLabError",
    "NotFoundError",
    "RunSpec",
    "chunk_text",
    "count_runs",
    "generate_run_matrix",
]
