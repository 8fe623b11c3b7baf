"""YAML prompt loading, cached per file."""

from pathlib import Path

import yaml

PROMPTS_DIR = Path(__file__).parent.parent.parent / "prompts"

_cache: dict[str, dict] = {}


def load_prompt(name: str) -> dict:
    """Load prompts/<name>.yaml once and return its mapping."""
    if name not in _cache:
        with open(PROMPTS_DIR / f"{name}.yaml", "r", encoding="utf-8") as f:
            _cache[name] = yaml.safe_load(f)
    return _cache[name]
