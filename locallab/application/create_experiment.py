from dataclasses import dataclass
from pathlib import Path

import yaml

from ..domain.contracts.config import ExperimentConfig
from ..domain.contracts.documents import DocumentRepositoryContract
from ..domain.contracts.experiment import (
    Experiment,
    ExperimentRepositoryContract,
    TaskTemplate,
)
from ..domain.errors import ConfigurationError
from .prompts import PASS_THROUGH_TEMPLATE, PLACEHOLDER_PATTERN


class CreateExperimentError(ConfigurationError):
    pass


@dataclass
class ExperimentSpec:
    name: str
    config: ExperimentConfig
    prompt_template: str | None = None
    template_name: str = ""


def parse_config(config_path: Path) -> ExperimentSpec:
    if not config_path.exists():
        raise CreateExperimentError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CreateExperimentError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(data, dict):
        raise CreateExperimentError(
            f"Config must be a YAML dictionary, got {type(data).__name__}"
        )

    required_keys = {"name", "models"}
    missing_keys = required_keys - set(data.keys())
    if missing_keys:
        raise CreateExperimentError(
            f"Missing required keys: {', '.join(sorted(missing_keys))}"
        )

    template = data.pop("template", None)
    template_name = ""
    prompt_template = None
    if isinstance(template, str):
        prompt_template = template
    elif isinstance(template, dict):
        if "prompt" not in template:
            raise CreateExperimentError("'template' missing required 'prompt' field")
        prompt_template = template["prompt"]
        template_name = template.get("name", "")
    elif template is not None:
        raise CreateExperimentError("'template' must be a string or a dictionary")

    name = str(data.pop("name"))

    try:
        config = ExperimentConfig.from_dict(data)
    except ConfigurationError as e:
        raise CreateExperimentError(str(e))

    return ExperimentSpec(
        name=name,
        config=config,
        prompt_template=prompt_template,
        template_name=template_name or name,
    )


def validate_spec(spec: ExperimentSpec) -> None:
    spec.name = spec.name.strip()
    if not spec.name:
        raise CreateExperimentError("Experiment name is required")

    try:
        spec.config.validate()
    except ConfigurationError as e:
        raise CreateExperimentError(str(e))

    template = spec.prompt_template or PASS_THROUGH_TEMPLATE
    template_vars = set(PLACEHOLDER_PATTERN.findall(template))
    missing = template_vars - set(spec.config.variable_values)
    if missing:
        raise CreateExperimentError(
            f"Template uses undefined variables: {', '.join(sorted(missing))}. "
            f"Available: {', '.join(sorted(spec.config.variable_values)) or 'none'}"
        )


class CreateExperiment:
    def __init__(
        self,
        experiment_repository: ExperimentRepositoryContract,
        document_repository: DocumentRepositoryContract | None = None,
    ) -> None:
        self._experiment_repository = experiment_repository
        self._document_repository = document_repository

    def from_config(self, config_path: Path) -> Experiment:
        spec = parse_config(config_path)
        return self.from_spec(spec)

    def from_spec(self, spec: ExperimentSpec) -> Experiment:
        validate_spec(spec)

        document_id = spec.config.document_id
        if (
            document_id is not None
            and self._document_repository is not None
            and self._document_repository.get(document_id) is None
        ):
            raise CreateExperimentError(f"Document not found: {document_id}")

        task_template = None
        if spec.prompt_template is not None:
            task_template = TaskTemplate(
                name=spec.template_name, prompt_template=spec.prompt_template
            )

        return self._experiment_repository.create_experiment(
            spec.name, spec.config, task_template
        )
