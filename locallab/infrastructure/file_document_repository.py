from pathlib import Path

import frontmatter
import yaml

from ..domain.contracts.documents import Document, DocumentRepositoryContract
from ..domain.contracts.experiment import SystemPrompt, SystemPromptRepositoryContract
from .file_experiment_repository import FileRepositoryError, numeric_ids

META_FILE = "meta.yaml"
CONTENT_FILE = "content.txt"


class FileDocumentRepository(DocumentRepositoryContract):
    def __init__(self, root: Path) -> None:
        self._root = root

    def add(self, filename: str, content: str) -> Document:
        existing = numeric_ids(self._root)
        document = Document(
            id=existing[-1] + 1 if existing else 1,
            filename=filename,
            content=content,
        )

        document_dir = self._root / str(document.id)
        document_dir.mkdir(parents=True, exist_ok=True)
        (document_dir / CONTENT_FILE).write_text(content, encoding="utf-8")
        self._write_meta(document)
        return document

    def get(self, document_id: int) -> Document | None:
        document_dir = self._root / str(document_id)
        meta_file = document_dir / META_FILE
        if not meta_file.exists():
            return None

        with open(meta_file) as f:
            meta = yaml.safe_load(f) or {}

        return Document(
            id=document_id,
            filename=meta.get("filename", ""),
            content=(document_dir / CONTENT_FILE).read_text(encoding="utf-8"),
            chunk_count=meta.get("chunk_count"),
        )

    def update_chunk_count(self, document_id: int, chunk_count: int) -> None:
        document = self.get(document_id)
        if document is None:
            raise FileRepositoryError(f"Document not found: {document_id}")
        document.chunk_count = chunk_count
        self._write_meta(document)

    def _write_meta(self, document: Document) -> None:
        meta = {"filename": document.filename, "chunk_count": document.chunk_count}
        with open(self._root / str(document.id) / META_FILE, "w") as f:
            yaml.dump(meta, f, default_flow_style=False)


class FileSystemPromptRepository(SystemPromptRepositoryContract):
    """System prompts stored as ``<id>.md`` with an ``alias`` in the frontmatter."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def get(self, system_prompt_id: int) -> SystemPrompt | None:
        prompt_file = self._root / f"{system_prompt_id}.md"
        if not prompt_file.exists():
            return None

        post = frontmatter.load(prompt_file)
        return SystemPrompt(
            id=system_prompt_id,
            alias=str(post.metadata.get("alias", prompt_file.stem)),
            content=post.content.strip(),
        )
