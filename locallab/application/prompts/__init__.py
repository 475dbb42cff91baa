import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from jinja2 import Template

PROMPTS_DIR = Path(__file__).parent

PASS_THROUGH_TEMPLATE = "{{prompt}}"
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    prompt_file = PROMPTS_DIR / f"{name}.md"
    if not prompt_file.exists():
        raise FileNotFoundError(f"Prompt template not found: {prompt_file}")

    return prompt_file.read_text()


def render_prompt(template: str | None, variables: dict[str, Any] | None) -> str:
    """Fill ``{{name}}`` placeholders from ``variables``.

    Only bare-name placeholders are replaced; anything else in the template,
    including placeholders with no matching variable, is kept verbatim.
    """
    source = template if template is not None else PASS_THROUGH_TEMPLATE
    values = variables or {}

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        return str(values[name])

    return PLACEHOLDER_PATTERN.sub(substitute, source)


def get_context_block(contents: Iterable[str]) -> str:
    template = Template(load_prompt("rag_context"))
    return template.render(chunks=list(contents))
