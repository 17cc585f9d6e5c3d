# =============================================================================
# AGENTFORGE - PROMPT LOADER
# =============================================================================
"""
Prompt Loader Module

Loads prompt templates from disk and substitutes ``{{ name }}``
placeholders.

Layout:
    prompts/
    ├── product/analyze_requirement.md
    ├── coder/handle_interaction.md
    ├── test/generate_tests.md
    └── security/analyze_code.md

Templates are looked up as ``<agent_type>/<name>.md`` and then
``<agent_type>/<name>.txt``, and cached per (agent_type, name).
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional, Tuple


logger = logging.getLogger(__name__)

TEMPLATE_EXTENSIONS = (".md", ".txt")

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class PromptLoader:
    """
    Template loader with placeholder substitution.

    Usage:
        loader = PromptLoader("./prompts")
        template = loader.load_template("coder", "handle_interaction")
        prompt = loader.apply_variables(template, {"requirement": "..."})
    """

    def __init__(self, prompts_path: Optional[str] = None, max_size: int = 1_000_000):
        """
        Initialize the loader.

        Args:
            prompts_path: Template root; PROMPTS_PATH or ./prompts by default
            max_size: Maximum template size in bytes
        """
        self.prompts_path = Path(prompts_path or os.environ.get("PROMPTS_PATH", "./prompts"))
        self.max_size = max_size
        self._cache: Dict[Tuple[str, str], str] = {}

    def load_template(self, agent_type: str, name: str) -> Optional[str]:
        """
        Load a template.

        Args:
            agent_type: Agent directory (product, coder, test, security)
            name: Template name without extension

        Returns:
            Template text, or None if not found or unreadable
        """
        key = (agent_type, name)
        if key in self._cache:
            return self._cache[key]

        for extension in TEMPLATE_EXTENSIONS:
            path = self.prompts_path / agent_type / f"{name}{extension}"
            if not path.is_file():
                continue

            content = self._read(path)
            if content is None:
                return None

            self._cache[key] = content
            logger.debug(f"Loaded prompt template {path}")
            return content

        logger.warning(f"Prompt template not found: {agent_type}/{name}")
        return None

    def _read(self, path: Path) -> Optional[str]:
        try:
            size = path.stat().st_size
            if size > self.max_size:
                logger.warning(f"Template too large ({size} bytes), truncating: {path}")

            # Try UTF-8 first
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return f.read(self.max_size)
            except UnicodeDecodeError:
                with open(path, "r", encoding="latin-1") as f:
                    return f.read(self.max_size)

        except OSError as e:
            logger.error(f"Failed to read template {path}: {e}")
            return None

    @staticmethod
    def apply_variables(template: str, variables: Dict[str, Any]) -> str:
        """
        Replace ``{{ key }}`` placeholders.

        Keys are matched case-sensitively; whitespace inside the braces
        is ignored. None renders as an empty string. Placeholders with
        no matching variable are left untouched. Substituted values are
        not scanned again, so placeholders inside them survive.
        """
        def substitute(match):
            key = match.group(1)
            if key not in variables:
                return match.group(0)
            value = variables[key]
            return "" if value is None else str(value)

        return PLACEHOLDER_PATTERN.sub(substitute, template)

    def render(self, agent_type: str, name: str, variables: Dict[str, Any]) -> Optional[str]:
        """Load a template and apply variables; None if not found."""
        template = self.load_template(agent_type, name)
        if template is None:
            return None
        return self.apply_variables(template, variables)

    def clear_cache(self) -> None:
        """Forget cached templates so edits on disk are picked up."""
        self._cache.clear()
