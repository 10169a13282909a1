"""Prompt templates for translation strategies."""

import os
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader

PROMPT_FOLDER = os.path.join(os.path.dirname(__file__), "prompts")


class PromptLibrary:
    """Loads and renders the Jinja2 prompt templates in a folder."""

    def __init__(self, prompt_folder: Optional[str] = None):
        self.prompt_folder = prompt_folder or PROMPT_FOLDER
        self.env = Environment(
            loader=FileSystemLoader(self.prompt_folder),
            trim_blocks=True,
            lstrip_blocks=True
        )

    def load_prompt(self, prompt_name: str, context: Dict[str, Any]) -> str:
        """Load and render a prompt template."""
        template = self.env.get_template(f"{prompt_name}.txt")
        return template.render(**context)
