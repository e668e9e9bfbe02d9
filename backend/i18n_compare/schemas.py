# i18n_compare/schemas.py
from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


# -----------------------------------------------------------------------------
# Translation wire types
# -----------------------------------------------------------------------------
class TranslationItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    text: str


class TranslationResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    translated_text: str = Field(alias="translatedText")


class TranslateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    source_language: str = Field(alias="sourceLanguage", min_length=1)
    target_language: str = Field(alias="targetLanguage", min_length=1)


class TranslateBatchIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[TranslationItem]
    source_language: str = Field(alias="sourceLanguage", min_length=1)
    target_language: str = Field(alias="targetLanguage", min_length=1)


# -----------------------------------------------------------------------------
# Auto-translate run state
# -----------------------------------------------------------------------------
class AutoTranslateStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    ERROR = "error"


class FailedKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    language: str
    key: str


class RunState(BaseModel):
    """Point-in-time snapshot of an auto-translate run. Never mutated in place."""

    model_config = ConfigDict(frozen=True)

    status: AutoTranslateStatus = AutoTranslateStatus.IDLE
    current_language: Optional[str] = None
    translated_count: int = 0
    total_count: int = 0
    error: Optional[str] = None
    failed_keys: Tuple[FailedKey, ...] = ()

    @property
    def active(self) -> bool:
        return self.status in (AutoTranslateStatus.RUNNING, AutoTranslateStatus.PAUSED)


class AutoTranslateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_languages: Optional[List[str]] = Field(default=None, alias="targetLanguages")
    # explicit selection; omitted -> every key missing in one of the targets
    keys: Optional[List[str]] = None


# -----------------------------------------------------------------------------
# Workspace
# -----------------------------------------------------------------------------
class EntryUpdateIn(BaseModel):
    key: str = Field(min_length=1)
    language: str = Field(min_length=1)
    value: str = ""


class EntriesDeleteIn(BaseModel):
    keys: List[str]


class WorkspaceOut(BaseModel):
    ok: bool = True
    id: str
    source_language: str
    languages: List[str]
    missing: int
    sections: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    run: RunState = Field(default_factory=RunState)


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------
class Settings(BaseModel):
    provider: str = "openai_compat"

    # Global prompting controls
    system_prompt: str = ""

    # Ceiling on items per translate-batch request
    max_batch_translations: int = 10

    # Provider-specific blocks
    openai_compat: Dict[str, Any] = Field(default_factory=dict)
    ollama: Dict[str, Any] = Field(default_factory=dict)

    def normalized(self) -> "Settings":
        """Coerce defaults and expected types for nested dicts."""
        s = self.model_copy(deep=True)

        # openai_compat defaults
        oac = dict(s.openai_compat or {})
        oac.setdefault("base_url", "https://api.openai.com/v1")
        oac.setdefault("api_key", "")
        oac.setdefault("model", "gpt-3.5-turbo")
        oac["temperature"] = float(oac.get("temperature", 0.3))
        oac["timeout"] = int(oac.get("timeout", 120))
        s.openai_compat = oac

        # ollama defaults
        ol = dict(s.ollama or {})
        ol.setdefault("host", "http://localhost:11434")
        ol.setdefault("model", "llama3.1")
        ol["temperature"] = float(ol.get("temperature", 0.3))
        ol["timeout"] = int(ol.get("timeout", 300))
        s.ollama = ol

        # top-level defaults
        try:
            s.max_batch_translations = max(1, int(s.max_batch_translations))
        except (TypeError, ValueError):
            s.max_batch_translations = 10
        s.provider = (s.provider or "openai_compat").lower().replace("-", "_")

        return s

    def public_copy(self) -> Dict[str, Any]:
        """
        Strip secrets and return a JSON-safe dict for the frontend defaults.
        """
        s = self.normalized()
        oac = dict(s.openai_compat or {})
        # redact secrets
        if "api_key" in oac and oac["api_key"]:
            oac["api_key"] = "******"

        return {
            "provider": s.provider,
            "system_prompt": s.system_prompt,
            "max_batch_translations": s.max_batch_translations,
            "openai_compat": oac,
            "ollama": dict(s.ollama or {}),
        }


class SettingsOut(BaseModel):
    ok: bool = True
    defaults: Dict[str, Any] = Field(default_factory=dict)
