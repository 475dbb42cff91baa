from .file_document_repository import FileDocumentRepository, FileSystemPromptRepository
from .file_experiment_repository import FileExperimentRepository
from .in_process_transport import InProcessTransport
from .logging_utils import setup_logging
from .qdrant_vector_store import QdrantVectorStore, create_qdrant_client
from .settings import Settings
from .yaml_embedding_model_registry import YamlEmbeddingModelRegistry

__all__ = [
    "FileDocumentRepository",
    "FileExperimentRepository",
    "FileSystemPromptRepository",
    "InProcessTransport",
    "QdrantVectorStore",
    "Settings",
    "YamlEmbeddingModelRegistry",
    "create_qdrant_client",
    "setup_logging",
]
