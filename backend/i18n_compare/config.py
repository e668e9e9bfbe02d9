from __future__ import annotations

import json
import logging
import os
import pathlib
from typing import Optional

from .schemas import Settings

log = logging.getLogger(__name__)


def settings_path() -> pathlib.Path:
    # absolute SETTINGS_FILE wins over the package-relative default
    name = os.getenv("SETTINGS_FILE", ".settings.json")
    return pathlib.Path(__file__).resolve().parent.parent / name


def settings_from_env() -> Settings:
    return Settings(
        provider=os.getenv("PROVIDER", "openai_compat"),
        system_prompt=os.getenv("SYSTEM_PROMPT", "").strip(),
        max_batch_translations=int(os.getenv("MAX_BATCH_TRANSLATIONS", "10")),
        openai_compat=dict(
            base_url=os.getenv("OPENAI_COMPAT_BASE_URL", "https://api.openai.com/v1"),
            api_key=os.getenv("OPENAI_COMPAT_API_KEY") or os.getenv("OPENAI_API_KEY", ""),
            model=os.getenv("AI_MODEL", "gpt-3.5-turbo"),
            temperature=float(os.getenv("OPENAI_COMPAT_TEMPERATURE", "0.3")),
        ),
        ollama=dict(
            host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
            model=os.getenv("OLLAMA_MODEL", "llama3.1"),
            temperature=float(os.getenv("OLLAMA_TEMPERATURE", "0.3")),
        ),
    ).normalized()


def settings_from_disk(path: Optional[pathlib.Path] = None) -> Optional[Settings]:
    path = path or settings_path()
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            return Settings(**data).normalized()
    except (OSError, ValueError) as e:
        log.warning("Failed to read settings from %s: %s", path, e)
    return None


def save_settings(s: Settings, path: Optional[pathlib.Path] = None) -> None:
    path = path or settings_path()
    try:
        path.write_text(
            json.dumps(s.model_dump(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    except OSError as e:
        log.warning("Failed to persist settings to %s: %s", path, e)


def load_settings() -> Settings:
    """Settings saved from the UI take precedence; otherwise seed them from the environment."""
    disk = settings_from_disk()
    if disk:
        return disk
    s = settings_from_env()
    save_settings(s)
    return s
