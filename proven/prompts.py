"""
Bundled scripts.

Scripts shipped with the package have fixed hashes, so an owner can whitelist
them (or register a per-code secret for them) before they are ever called.
``ask_llm`` reads its endpoint and API key from the injected secret and takes
``[model, prompt]`` as arguments.
"""

from pathlib import Path
from typing import Dict

from .hashing import code_hash

SCRIPTS_DIR = Path(__file__).parent / "scripts"

ASK_LLM = "ask_llm"

# Model names behind the fixed-model shortcuts on Prover
PRESET_MODELS = {
    "gpt4": "gpt-4-turbo-preview",
    "gpt3n5": "gpt-3.5-turbo-0125",
}


def load_script(name: str) -> str:
    """Return the source of bundled script ``name``."""
    path = SCRIPTS_DIR / f"{name}.js"
    if path.parent != SCRIPTS_DIR or not path.is_file():
        raise KeyError(f"Unknown bundled script: {name}")
    return path.read_text(encoding="utf-8")


def script_hash(name: str) -> bytes:
    return code_hash(load_script(name))


def bundled_scripts() -> Dict[str, bytes]:
    """Map every bundled script name to its code hash."""
    return {p.stem: code_hash(p.read_text(encoding="utf-8")) for p in sorted(SCRIPTS_DIR.glob("*.js"))}
