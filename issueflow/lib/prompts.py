"""
Prompt loader for issueflow.

Loads prompt templates from the package's prompts/ directory and interpolates
variables. Templates use Python str.format() syntax: {variable_name}
Use {{ and }} for literal braces in LLM output (e.g., JSON examples).

HTML comments (<!-- ... -->) are stripped before rendering - use them for
documentation that shouldn't be sent to the LLM.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

from .types import ArtifactRef

logger = logging.getLogger(__name__)

__all__ = ["PromptError", "load_prompt", "render_prompt", "build_documents", "clear_cache", "PROMPTS_DIR"]

_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptError(Exception):
    """Raised when prompt loading or rendering fails."""
    pass


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    """
    Load a prompt template by name (cached).

    Raises:
        PromptError: If prompt file doesn't exist
    """
    prompt_path = PROMPTS_DIR / f"{name}.md"

    if not prompt_path.exists():
        raise PromptError(
            f"Prompt template '{name}' not found. "
            f"Expected file: {prompt_path}"
        )

    logger.debug(f"Loading prompt template: {name}")
    content = _HTML_COMMENT_PATTERN.sub('', prompt_path.read_text())
    return content.lstrip()


def build_documents(context: list[ArtifactRef]) -> str:
    """Inline every context document under its own heading."""
    sections = []
    for ref in context:
        try:
            body = ref.path.read_text().strip()
        except OSError as e:
            raise PromptError(f"Cannot read context document {ref.path}: {e}") from e
        sections.append(f"## {ref.name} ({ref.path.name})\n\n{body}\n")
    return "\n".join(sections) if sections else "(no documents)"


def render_prompt(name: str, context: list[ArtifactRef] | None = None, **kwargs) -> str:
    """
    Load and render the prompt for an agent phase.

    The context documents are inlined as {documents} and the shared JSON
    output instructions as {output_contract}.

    Raises:
        PromptError: If template not found or required variable missing

    Example:
        render_prompt('fix', refs, worktree='/repo')
    """
    template = load_prompt(name)
    variables = {
        "documents": build_documents(context or []),
        "output_contract": load_prompt("_output_contract").format(),
        "worktree": ".",
    }
    variables.update(kwargs)

    try:
        return template.format(**variables)
    except KeyError as e:
        raise PromptError(
            f"Missing required variable {e} in prompt '{name}'. "
            f"Provided: {list(variables.keys())}"
        ) from e


def clear_cache():
    """Clear the prompt cache (useful for testing or hot-reload)."""
    load_prompt.cache_clear()
