from pathlib import Path

import pytest
import yaml

from fakes import InMemoryDocumentRepository, InMemoryExperimentRepository
from locallab.application.create_experiment import (
    CreateExperiment,
    CreateExperimentError,
    parse_config,
    validate_spec,
)
from locallab.domain.contracts.config import ContextMode
from locallab.domain.contracts.experiment import ExperimentStatus
from locallab.domain.errors import ConfigurationError

VALID_CONFIG = {
    "name": "bees-rag",
    "description": "Does retrieval help small models?",
    "models": ["llama3:8b", "qwen2:7b"],
    "embedding_models": ["nomic-embed-text"],
    "iterations": 3,
    "context_mode": "RAG",
    "document_id": 1,
    "hyperparameters": {"temperature": 0.7, "max_tokens": 256},
    "variable_values": {"question": "How do bees communicate?"},
    "template": {"name": "qa", "prompt": "Answer briefly: {{ question }}"},
}


def _write_config(tmp_path: Path, config: dict) -> Path:
    config_file = tmp_path / "config.yaml"
    with open(config_file, "w") as f:
        yaml.dump(config, f, default_flow_style=False)
    return config_file


# --- parse_config tests ---


def test_parse_config_valid(tmp_path):
    spec = parse_config(_write_config(tmp_path, VALID_CONFIG))

    assert spec.name == "bees-rag"
    assert spec.config.models == ["llama3:8b", "qwen2:7b"]
    assert spec.config.context_mode is ContextMode.RAG
    assert spec.config.iterations == 3
    assert spec.config.hyperparameters.temperature == 0.7
    assert spec.prompt_template == "Answer briefly: {{ question }}"
    assert spec.template_name == "qa"


def test_parse_config_minimal(tmp_path):
    spec = parse_config(
        _write_config(tmp_path, {"name": "minimal", "models": ["llama3"]})
    )

    assert spec.config.iterations == 1
    assert spec.config.context_mode is ContextMode.NONE
    assert spec.prompt_template is None
    assert spec.template_name == "minimal"


def test_parse_config_template_as_string(tmp_path):
    config = {"name": "s", "models": ["a"], "template": "Say {{ word }}"}

    spec = parse_config(_write_config(tmp_path, config))

    assert spec.prompt_template == "Say {{ word }}"
    assert spec.template_name == "s"


@pytest.mark.parametrize("missing", ["name", "models"])
def test_parse_config_missing_required_key(tmp_path, missing):
    config = {k: v for k, v in VALID_CONFIG.items() if k != missing}

    with pytest.raises(CreateExperimentError, match=f"Missing required keys.*{missing}"):
        parse_config(_write_config(tmp_path, config))


def test_parse_config_file_not_found(tmp_path):
    with pytest.raises(CreateExperimentError, match="Config file not found"):
        parse_config(tmp_path / "nonexistent.yaml")


def test_parse_config_invalid_yaml(tmp_path):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("name: [unclosed")

    with pytest.raises(CreateExperimentError, match="Invalid YAML"):
        parse_config(config_file)


def test_parse_config_not_a_dict(tmp_path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- item1\n- item2\n")

    with pytest.raises(CreateExperimentError, match="must be a YAML dictionary"):
        parse_config(config_file)


def test_parse_config_template_missing_prompt(tmp_path):
    config = {**VALID_CONFIG, "template": {"name": "qa"}}

    with pytest.raises(CreateExperimentError, match="missing required 'prompt'"):
        parse_config(_write_config(tmp_path, config))


def test_parse_config_invalid_context_mode(tmp_path):
    config = {**VALID_CONFIG, "context_mode": "HYBRID"}

    with pytest.raises(CreateExperimentError, match="Invalid context mode"):
        parse_config(_write_config(tmp_path, config))


# --- validate_spec tests ---


def test_validate_spec_valid(tmp_path):
    validate_spec(parse_config(_write_config(tmp_path, VALID_CONFIG)))


def test_validate_spec_undefined_template_variable(tmp_path):
    config = {**VALID_CONFIG, "template": "{{ question }} for {{ audience }}"}

    with pytest.raises(CreateExperimentError, match="undefined variables: audience"):
        validate_spec(parse_config(_write_config(tmp_path, config)))


def test_validate_spec_default_template_needs_prompt_variable(tmp_path):
    spec = parse_config(
        _write_config(tmp_path, {"name": "plain", "models": ["llama3"]})
    )

    with pytest.raises(CreateExperimentError, match="undefined variables: prompt"):
        validate_spec(spec)


def test_validate_spec_rag_without_embedding_models(tmp_path):
    config = {k: v for k, v in VALID_CONFIG.items() if k != "embedding_models"}

    with pytest.raises(CreateExperimentError, match="Embedding models must be specified"):
        validate_spec(parse_config(_write_config(tmp_path, config)))


def test_validate_spec_too_many_iterations(tmp_path):
    config = {**VALID_CONFIG, "iterations": 500}

    with pytest.raises(CreateExperimentError, match="must not exceed 100"):
        validate_spec(parse_config(_write_config(tmp_path, config)))


def test_create_experiment_error_is_configuration_error():
    assert issubclass(CreateExperimentError, ConfigurationError)


# --- CreateExperiment tests ---


def test_create_experiment_from_config(tmp_path):
    experiments = InMemoryExperimentRepository()
    documents = InMemoryDocumentRepository()
    documents.add("bees.txt", "Bees dance.")

    experiment = CreateExperiment(experiments, documents).from_config(
        _write_config(tmp_path, VALID_CONFIG)
    )

    assert experiment.status is ExperimentStatus.DRAFT
    assert experiment.name == "bees-rag"
    assert experiment.task_template.name == "qa"
    assert experiment.config.document_id == 1
    assert experiments.load_experiment(experiment.id) is experiment


def test_create_experiment_missing_document(tmp_path):
    experiments = InMemoryExperimentRepository()

    with pytest.raises(CreateExperimentError, match="Document not found: 1"):
        CreateExperiment(experiments, InMemoryDocumentRepository()).from_config(
            _write_config(tmp_path, VALID_CONFIG)
        )

    assert experiments.list_experiments() == []


def test_create_experiment_without_template_uses_pass_through(tmp_path):
    config = {
        "name": "plain",
        "models": ["llama3"],
        "variable_values": {"prompt": "Tell me a joke"},
    }

    experiment = CreateExperiment(InMemoryExperimentRepository()).from_config(
        _write_config(tmp_path, config)
    )

    assert experiment.task_template is None
