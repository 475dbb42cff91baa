from pathlib import Path

import pytest

from locallab.domain.errors import ConfigurationError
from locallab.infrastructure.settings import Settings


def test_from_env_defaults():
    settings = Settings.from_env({})

    assert settings.home == Path(".locallab")
    assert settings.ollama_base_url == "http://localhost:11434"
    assert settings.ollama_timeout_seconds == 120
    assert settings.ollama_max_retries == 3
    assert settings.max_concurrent_experiments == 4
    assert settings.log_level == "INFO"
    assert settings.log_file is None
    assert settings.resolved_qdrant_location == str(Path(".locallab") / "qdrant")


def test_from_env_overrides():
    settings = Settings.from_env({
        "LOCALLAB_HOME": "/data/lab",
        "OLLAMA_BASE_URL": "http://gpu-box:11434",
        "OLLAMA_TIMEOUT_SECONDS": "30",
        "OLLAMA_MAX_RETRIES": "0",
        "QDRANT_LOCATION": ":memory:",
        "LOCALLAB_MAX_CONCURRENT_EXPERIMENTS": "2",
        "LOCALLAB_LOG_LEVEL": "debug",
        "LOCALLAB_LOG_FILE": "/tmp/lab.log",
    })

    assert settings.home == Path("/data/lab")
    assert settings.experiments_dir == Path("/data/lab/experiments")
    assert settings.documents_dir == Path("/data/lab/documents")
    assert settings.system_prompts_dir == Path("/data/lab/system_prompts")
    assert settings.embedding_models_file == Path("/data/lab/embedding_models.yaml")
    assert settings.ollama_base_url == "http://gpu-box:11434"
    assert settings.ollama_timeout_seconds == 30
    assert settings.ollama_max_retries == 0
    assert settings.resolved_qdrant_location == ":memory:"
    assert settings.max_concurrent_experiments == 2
    assert settings.log_level == "DEBUG"
    assert settings.log_file == Path("/tmp/lab.log")


@pytest.mark.parametrize(
    "env,message",
    [
        ({"OLLAMA_TIMEOUT_SECONDS": "soon"}, "must be an integer"),
        ({"OLLAMA_MAX_RETRIES": "-1"}, "must not be negative"),
        ({"LOCALLAB_MAX_CONCURRENT_EXPERIMENTS": "0"}, "must be at least 1"),
    ],
)
def test_from_env_rejects_invalid_values(env, message):
    with pytest.raises(ConfigurationError, match=message):
        Settings.from_env(env)
