from .ollama import OllamaEmbeddingGateway, OllamaGenerationBackend, create_client

__all__ = ["OllamaEmbeddingGateway", "OllamaGenerationBackend", "create_client"]
