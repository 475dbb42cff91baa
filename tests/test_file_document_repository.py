import pytest
import yaml

from locallab.domain.errors import ConfigurationError, NotFoundError
from locallab.infrastructure.file_document_repository import (
    FileDocumentRepository,
    FileSystemPromptRepository,
)
from locallab.infrastructure.yaml_embedding_model_registry import (
    YamlEmbeddingModelRegistry,
)


def test_add_and_get_document(tmp_path):
    repository = FileDocumentRepository(tmp_path / "documents")

    document = repository.add("bees.txt", "Bees dance to communicate.\n")
    loaded = repository.get(document.id)

    assert document.id == 1
    assert loaded.filename == "bees.txt"
    assert loaded.content == "Bees dance to communicate.\n"
    assert loaded.chunk_count is None


def test_update_chunk_count(tmp_path):
    repository = FileDocumentRepository(tmp_path)
    document = repository.add("a.txt", "abc")

    repository.update_chunk_count(document.id, 12)

    assert repository.get(document.id).chunk_count == 12


def test_get_missing_document(tmp_path):
    assert FileDocumentRepository(tmp_path).get(3) is None


def test_update_chunk_count_missing_document(tmp_path):
    with pytest.raises(NotFoundError, match="Document not found: 3"):
        FileDocumentRepository(tmp_path).update_chunk_count(3, 1)


def test_system_prompt_from_markdown(tmp_path):
    (tmp_path / "4.md").write_text("---\nalias: pirate\n---\n\nTalk like a pirate.\n")

    prompt = FileSystemPromptRepository(tmp_path).get(4)

    assert prompt.id == 4
    assert prompt.alias == "pirate"
    assert prompt.content == "Talk like a pirate."


def test_system_prompt_without_frontmatter(tmp_path):
    (tmp_path / "2.md").write_text("Be brief.")

    prompt = FileSystemPromptRepository(tmp_path).get(2)

    assert prompt.alias == "2"
    assert prompt.content == "Be brief."


def test_missing_system_prompt(tmp_path):
    assert FileSystemPromptRepository(tmp_path).get(1) is None


def _write_registry(tmp_path, data):
    path = tmp_path / "embedding_models.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return YamlEmbeddingModelRegistry(path)


def test_embedding_registry_lookup(tmp_path):
    registry = _write_registry(
        tmp_path,
        [
            {"name": "Nomic", "model_name": "nomic-embed-text", "dimensions": 768},
            {"model_name": "mxbai-embed-large", "dimensions": 1024},
        ],
    )

    nomic = registry.find_by_model_name("nomic-embed-text")
    assert (nomic.name, nomic.dimensions) == ("Nomic", 768)
    assert registry.find_by_model_name("mxbai-embed-large").name == "mxbai-embed-large"
    assert registry.find_by_model_name("unknown") is None
    assert len(registry.list_models()) == 2


def test_embedding_registry_missing_file(tmp_path):
    registry = YamlEmbeddingModelRegistry(tmp_path / "missing.yaml")

    assert registry.list_models() == []
    assert registry.find_by_model_name("anything") is None


@pytest.mark.parametrize(
    "data,message",
    [
        ({"model_name": "x"}, "must contain a list"),
        (["x"], "must be a dictionary"),
        ([{"dimensions": 3}], "missing 'model_name'"),
        ([{"model_name": "x", "dimensions": 0}], "positive integer 'dimensions'"),
        ([{"model_name": "x", "dimensions": "768"}], "positive integer 'dimensions'"),
    ],
)
def test_embedding_registry_rejects_invalid_entries(tmp_path, data, message):
    registry = _write_registry(tmp_path, data)

    with pytest.raises(ConfigurationError, match=message):
        registry.list_models()
