import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ..domain.errors import ConfigurationError

DEFAULT_HOME = Path(".locallab")
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


@dataclass
class Settings:
    home: Path = DEFAULT_HOME
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    ollama_timeout_seconds: int = 120
    ollama_max_retries: int = 3
    qdrant_location: str | None = None
    qdrant_url: str | None = None
    max_concurrent_experiments: int = 4
    log_level: str = "INFO"
    log_file: Path | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env

        home = Path(env.get("LOCALLAB_HOME") or DEFAULT_HOME)
        log_file = env.get("LOCALLAB_LOG_FILE")
        max_concurrent = _int_env(env, "LOCALLAB_MAX_CONCURRENT_EXPERIMENTS", 4)
        if max_concurrent < 1:
            raise ConfigurationError(
                "LOCALLAB_MAX_CONCURRENT_EXPERIMENTS must be at least 1"
            )

        return cls(
            home=home,
            ollama_base_url=env.get("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL,
            ollama_timeout_seconds=_int_env(env, "OLLAMA_TIMEOUT_SECONDS", 120),
            ollama_max_retries=_int_env(env, "OLLAMA_MAX_RETRIES", 3),
            qdrant_location=env.get("QDRANT_LOCATION") or None,
            qdrant_url=env.get("QDRANT_URL") or None,
            max_concurrent_experiments=max_concurrent,
            log_level=env.get("LOCALLAB_LOG_LEVEL", "INFO").upper(),
            log_file=Path(log_file) if log_file else None,
        )

    @property
    def experiments_dir(self) -> Path:
        return self.home / "experiments"

    @property
    def documents_dir(self) -> Path:
        return self.home / "documents"

    @property
    def system_prompts_dir(self) -> Path:
        return self.home / "system_prompts"

    @property
    def embedding_models_file(self) -> Path:
        return self.home / "embedding_models.yaml"

    @property
    def resolved_qdrant_location(self) -> str:
        return self.qdrant_location or str(self.home / "qdrant")
