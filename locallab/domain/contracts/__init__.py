from .broadcast import BroadcastTransportContract
from .config import ExperimentConfig
from .documents import DocumentRepositoryContract
from .embedding import EmbeddingGatewayContract, EmbeddingModelRegistryContract
from .experiment import ExperimentRepositoryContract, SystemPromptRepositoryContract
from .generation import GenerationBackendContract
from .vector_store import VectorStoreContract

__all__ = [
    "BroadcastTransportContract",
    "DocumentRepositoryContract",
    "EmbeddingGatewayContract",
    "EmbeddingModelRegistryContract",
    "ExperimentConfig",
    "ExperimentRepositoryContract",
    "GenerationBackendContract",
    "SystemPromptRepositoryContract",
    "VectorStoreContract",
]
