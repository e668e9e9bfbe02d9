from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .controller import BatchTranslationController, SourceEntry
from .errors import RunInProgressError
from .schemas import RunState, TranslationItem, TranslationResult
from .service import TranslationService

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Flatten / unflatten
# -----------------------------------------------------------------------------
def _leaf_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten(obj: Any, prefix: str = "") -> Dict[str, str]:
    """
    {"a": {"b": "x"}, "l": ["p", "q"]} -> {"a.b": "x", "l.0": "p", "l.1": "q"}
    """
    flat: Dict[str, str] = {}
    if isinstance(obj, dict):
        children = obj.items()
    elif isinstance(obj, list):
        children = ((str(i), v) for i, v in enumerate(obj))
    else:
        return {prefix: _leaf_to_str(obj)} if prefix else {}

    for key, value in children:
        new_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, (dict, list)):
            flat.update(flatten(value, new_key))
        else:
            flat[new_key] = _leaf_to_str(value)
    return flat


def _restore_lists(node: Any) -> Any:
    if not isinstance(node, dict):
        return node
    node = {k: _restore_lists(v) for k, v in node.items()}
    if node and all(k.isdigit() for k in node) and sorted(int(k) for k in node) == list(range(len(node))):
        return [node[str(i)] for i in range(len(node))]
    return node


def unflatten(flat: Dict[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for dotted, value in flat.items():
        parts = dotted.split(".")
        current = out
        for part in parts[:-1]:
            nxt = current.get(part)
            if not isinstance(nxt, dict):
                nxt = current[part] = {}
            current = nxt
        current[parts[-1]] = value
    restored = _restore_lists(out)
    # a top-level array only round-trips as an object keyed by index
    return restored if isinstance(restored, dict) else {str(i): v for i, v in enumerate(restored)}


# -----------------------------------------------------------------------------
# Comparison table
# -----------------------------------------------------------------------------
@dataclass
class TranslationRow:
    key: str
    values: Dict[str, str] = field(default_factory=dict)

    @property
    def section(self) -> str:
        return self.key.split(".")[0]

    @property
    def subsection(self) -> Optional[str]:
        parts = self.key.split(".")
        return ".".join(parts[:-1]) if len(parts) > 2 else None

    @property
    def missing(self) -> int:
        return sum(1 for v in self.values.values() if not v)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "values": dict(self.values),
            "section": self.section,
            "subsection": self.subsection,
        }


class TranslationTable:
    """
    One row per key of the source file; one column per language.
    Keys only present in target files are not shown (the source defines the key set).
    """

    def __init__(self, source_language: str, languages: Sequence[str], rows: Iterable[TranslationRow]):
        self.source_language = source_language
        self.languages = list(languages)
        self._rows: Dict[str, TranslationRow] = {r.key: r for r in rows}

    @classmethod
    def from_files(
        cls,
        source: Tuple[str, Any],
        targets: Sequence[Tuple[str, Any]] = (),
    ) -> "TranslationTable":
        source_language, source_content = source
        source_flat = flatten(source_content)

        # later uploads for the same language replace earlier ones
        target_flats: Dict[str, Dict[str, str]] = {}
        for language, content in targets:
            if language == source_language:
                raise ValueError(f"Target file language '{language}' is the source language")
            target_flats[language] = flatten(content)

        languages = [source_language] + list(target_flats)
        rows = []
        for key, value in source_flat.items():
            values = {source_language: value}
            for language, flat in target_flats.items():
                values[language] = flat.get(key, "")
            rows.append(TranslationRow(key=key, values=values))
        return cls(source_language, languages, rows)

    @property
    def target_languages(self) -> List[str]:
        return [lang for lang in self.languages if lang != self.source_language]

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: str) -> bool:
        return key in self._rows

    def get(self, key: str, language: str) -> str:
        return self._rows[key].values.get(language, "")

    def rows(self, hide_completed: bool = False) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._rows.values() if not (hide_completed and r.missing == 0)]

    def update(self, key: str, language: str, value: str) -> None:
        if key not in self._rows:
            raise KeyError(f"Unknown key: {key}")
        if language not in self.languages:
            raise KeyError(f"Unknown language: {language}")
        self._rows[key].values[language] = value

    def delete(self, keys: Iterable[str]) -> int:
        deleted = 0
        for key in keys:
            if self._rows.pop(key, None) is not None:
                deleted += 1
        return deleted

    def missing_count(self) -> int:
        return sum(r.missing for r in self._rows.values())

    def section_stats(self) -> Dict[str, Dict[str, int]]:
        stats: Dict[str, Dict[str, int]] = {}
        for r in self._rows.values():
            s = stats.setdefault(r.section, {"keys": 0, "total": 0, "missing": 0, "complete": 0})
            s["keys"] += 1
            s["total"] += len(self.languages)
            s["missing"] += r.missing
        for s in stats.values():
            s["complete"] = s["total"] - s["missing"]
        return stats

    def export(self, language: str) -> Dict[str, Any]:
        if language not in self.languages:
            raise KeyError(f"Unknown language: {language}")
        return unflatten({key: r.values.get(language, "") for key, r in self._rows.items()})

    def missing_keys(self, languages: Sequence[str]) -> List[str]:
        return [key for key, r in self._rows.items() if any(not r.values.get(lang) for lang in languages)]

    def source_items(self, keys: Sequence[str]) -> List[SourceEntry]:
        """Source texts for the given keys, in table order; blank sources are skipped."""
        wanted = set(keys)
        unknown = wanted - set(self._rows)
        if unknown:
            raise KeyError(f"Unknown key(s): {', '.join(sorted(unknown))}")
        entries = []
        for key, r in self._rows.items():
            if key not in wanted:
                continue
            text = r.values.get(self.source_language, "")
            if text.strip():
                entries.append(SourceEntry(key, text))
        return entries


# -----------------------------------------------------------------------------
# Workspace + store
# -----------------------------------------------------------------------------
class Workspace:
    """A comparison table plus the auto-translate run that writes into it."""

    def __init__(self, workspace_id: str, table: TranslationTable):
        self.id = workspace_id
        self.table = table
        self.service: Optional[TranslationService] = None
        self.task: Optional[asyncio.Task] = None
        self.controller = BatchTranslationController(
            self._translate_batch,
            on_translate=self._on_translate,
            on_error=self._on_error,
        )

    @property
    def run_state(self) -> RunState:
        return self.controller.state

    @property
    def run_active(self) -> bool:
        return self.controller.is_running or (self.task is not None and not self.task.done())

    async def _translate_batch(
        self, items: Sequence[TranslationItem], source_language: str, target_language: str
    ) -> List[TranslationResult]:
        if self.service is None:
            raise RuntimeError("No translation service bound to this workspace")
        return await self.service.translate_batch(items, source_language, target_language)

    def _on_translate(self, key: str, language: str, text: str) -> None:
        # the key may have been deleted while the run was going
        if key in self.table:
            self.table.update(key, language, text)

    def _on_error(self, message: str) -> None:
        log.warning("workspace %s auto-translate failed: %s", self.id, message)

    async def start_auto_translate(
        self,
        service: TranslationService,
        target_languages: Optional[Sequence[str]] = None,
        keys: Optional[Sequence[str]] = None,
    ) -> asyncio.Task:
        """
        Schedule a run on the current event loop and return its task.
        The task is given one turn of the loop so the run is already
        marked running when this returns.
        """
        if self.run_active:
            raise RunInProgressError("An auto-translate run is already in progress for this workspace")

        targets = list(target_languages) if target_languages else self.table.target_languages
        for lang in targets:
            if lang not in self.table.target_languages:
                raise ValueError(f"'{lang}' is not a target language of this workspace")
        if keys is None:
            keys = self.table.missing_keys(targets)
        items = self.table.source_items(keys)

        self.service = service
        self.controller.max_batch_size = service.max_batch_size
        self.task = asyncio.create_task(
            self.controller.start(items, self.table.source_language, targets),
            name=f"auto-translate-{self.id}",
        )
        await asyncio.sleep(0)
        return self.task

    def subscribe_queue(self) -> Tuple["asyncio.Queue[RunState]", Any]:
        queue: "asyncio.Queue[RunState]" = asyncio.Queue()
        unsubscribe = self.controller.subscribe(queue.put_nowait)
        return queue, unsubscribe

    def cancel(self) -> None:
        self.controller.stop()
        if self.task is not None and not self.task.done():
            self.task.cancel()


class WorkspaceStore:
    def __init__(self):
        self._items: Dict[str, Workspace] = {}

    def create(self, table: TranslationTable) -> Workspace:
        ws = Workspace(uuid.uuid4().hex, table)
        self._items[ws.id] = ws
        return ws

    def get(self, workspace_id: str) -> Workspace:
        return self._items[workspace_id]

    def remove(self, workspace_id: str) -> None:
        ws = self._items.pop(workspace_id)
        ws.cancel()

    def __len__(self) -> int:
        return len(self._items)


def parse_json_upload(filename: str, raw: bytes) -> Any:
    """Decode an uploaded translation file; raises ValueError with the filename on bad input."""
    try:
        content = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValueError(f"Error processing {filename}: Invalid JSON format") from e
    if not isinstance(content, (dict, list)):
        raise ValueError(f"Error processing {filename}: expected a JSON object")
    return content
