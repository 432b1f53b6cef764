"""
Loading of the static system prompts kept under ``prompts/``.
"""
from functools import lru_cache
from pathlib import Path
from string import Template

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Read ``prompts/<name>.md``, e.g. ``load_prompt("lesson/system_instruction")``."""
    with open(PROMPTS_DIR / f"{name}.md", "r", encoding="utf-8") as file:
        return file.read().strip()


def render_prompt(name: str, **values) -> str:
    """Load a prompt and fill its ``$placeholders``; unknown ones are left as-is."""
    return Template(load_prompt(name)).safe_substitute(**values)
