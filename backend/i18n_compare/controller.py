"""
Auto-translate batch controller.

Drives translation of a fixed list of (key, source text) pairs into one or
more target languages through a size-limited translate-batch call. Batches
that fail are retried at half the size until a single poison item can be
isolated and skipped. Pause and stop are cooperative: they are honoured at
checkpoints between calls, never in the middle of one.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Mapping, NamedTuple, Optional, Sequence

from .errors import RunInProgressError, StoppedByUser, TranslationFailedError
from .schemas import AutoTranslateStatus, FailedKey, RunState, TranslationItem, TranslationResult
from .utils.languages import language_name as default_language_name

log = logging.getLogger(__name__)

# (items, source language name, target language name) -> results
TranslateBatchFn = Callable[[Sequence[TranslationItem], str, str], Awaitable[List[TranslationResult]]]

_QUOTES = ('"', "'")


class SourceEntry(NamedTuple):
    key: str
    source_text: str


def _source_entry(entry: Any) -> SourceEntry:
    if isinstance(entry, Mapping):
        text = entry["source_text"] if "source_text" in entry else entry["sourceText"]
        return SourceEntry(entry["key"], text)
    if isinstance(entry, (str, bytes)) or len(entry) != 2:
        raise TypeError(f"expected a (key, source_text) pair, got {entry!r}")
    return SourceEntry(*entry)


def clean_translation(text: str) -> str:
    """Drop one pair of matching surrounding quotes, then trim whitespace."""
    if len(text) >= 2 and text[0] in _QUOTES and text[-1] == text[0]:
        text = text[1:-1]
    return text.strip()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class BatchTranslationController:
    """
    Owns one RunState and mutates it as a run progresses. Observers get a
    fresh immutable snapshot on every transition via subscribe().

    on_translate(key, language, text) may be a plain function or a coroutine
    function; the same goes for on_complete() and on_error(message).
    """

    def __init__(
        self,
        translate_batch: TranslateBatchFn,
        *,
        on_translate: Callable[[str, str, str], Any],
        on_complete: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
        max_batch_size: int = 10,
        language_name: Callable[[str], str] = default_language_name,
    ):
        self._translate_batch = translate_batch
        self.on_translate = on_translate
        self.on_complete = on_complete
        self.on_error = on_error
        self.max_batch_size = max_batch_size
        self.language_name = language_name

        self._state = RunState()
        self._subscribers: List[Callable[[RunState], Any]] = []
        self._running = False

        # set -> not paused; stop() also sets it so a paused run wakes up
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._stopped = asyncio.Event()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True while a start() call is in flight, even after stop() was requested."""
        return self._running

    def subscribe(self, callback: Callable[[RunState], Any]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, state: RunState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                log.exception("run state subscriber failed")

    def _update(self, **changes: Any) -> None:
        self._publish(self._state.model_copy(update=changes))

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------
    def pause(self) -> None:
        if not self._state.active:
            return
        self._resumed.clear()
        self._update(status=AutoTranslateStatus.PAUSED)

    def resume(self) -> None:
        if not self._state.active:
            return
        self._resumed.set()
        self._update(status=AutoTranslateStatus.RUNNING)

    def stop(self) -> None:
        if not self._state.active:
            return
        self._stopped.set()
        self._resumed.set()
        self._update(status=AutoTranslateStatus.STOPPED)

    async def _checkpoint(self) -> None:
        if self._stopped.is_set():
            raise StoppedByUser()
        while not self._resumed.is_set():
            await self._resumed.wait()
            if self._stopped.is_set():
                raise StoppedByUser()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    async def start(
        self,
        items: Sequence[SourceEntry],
        source_language: str,
        target_languages: Sequence[str],
    ) -> RunState:
        """
        Translate every item into every target language, in order.
        Items are (key, source_text) pairs or mappings with "key" and
        "source_text" (or "sourceText").

        Returns the final snapshot: idle on success, stopped when stop() was
        honoured, error when a run-ending failure happened.
        """
        if self._running:
            raise RunInProgressError("An auto-translate run is already in progress")

        max_batch_size = int(self.max_batch_size)
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be a positive integer")

        entries = [_source_entry(entry) for entry in items]
        languages = list(target_languages)

        self._stopped.clear()
        self._resumed.set()
        self._running = True
        self._publish(
            RunState(
                status=AutoTranslateStatus.RUNNING,
                total_count=len(entries) * len(languages),
            )
        )
        log.info(
            "auto-translate started: %d keys x %d languages (%s), batch<=%d",
            len(entries), len(languages), ",".join(languages), max_batch_size,
        )

        try:
            for target_language in languages:
                if self._stopped.is_set():
                    raise StoppedByUser()
                self._update(current_language=target_language)
                batch_items = [TranslationItem(key=e.key, text=e.source_text) for e in entries]
                await self._translate_with_retry(batch_items, source_language, target_language, max_batch_size)
        except StoppedByUser as e:
            log.info("auto-translate stopped after %d/%d", self._state.translated_count, self._state.total_count)
            self._update(status=AutoTranslateStatus.STOPPED, error=str(e))
            return self._state
        except asyncio.CancelledError:
            self._update(status=AutoTranslateStatus.STOPPED)
            raise
        except Exception as e:
            message = str(e) or "Translation failed"
            log.error("auto-translate failed: %s", message)
            self._update(status=AutoTranslateStatus.ERROR, error=message)
            if self.on_error:
                await _maybe_await(self.on_error(message))
            return self._state
        finally:
            self._running = False

        self._update(status=AutoTranslateStatus.IDLE, current_language=None)
        log.info("auto-translate complete: %d translated", self._state.translated_count)
        if self.on_complete:
            await _maybe_await(self.on_complete())
        return self._state

    async def _translate_with_retry(
        self,
        items: List[TranslationItem],
        source_language: str,
        target_language: str,
        max_batch_size: int,
    ) -> None:
        source_name = self.language_name(source_language)
        target_name = self.language_name(target_language)

        remaining = list(items)
        batch_size = min(len(remaining), max_batch_size)

        while remaining:
            await self._checkpoint()

            batch = remaining[:batch_size]
            try:
                results = await self._translate_batch(batch, source_name, target_name)
            except Exception as e:
                if batch_size == 1:
                    failed_key = batch[0].key
                    log.error("Failed to translate key %s (%s): %s", failed_key, target_language, e)
                    remaining = remaining[1:]
                    self._update(
                        failed_keys=self._state.failed_keys + (FailedKey(language=target_language, key=failed_key),)
                    )
                    if not remaining:
                        raise TranslationFailedError(failed_key) from e
                    batch_size = min(len(remaining), max_batch_size)
                else:
                    batch_size = max(1, batch_size // 2)
                    log.info("Retrying with smaller batch size: %d (%s: %s)", batch_size, target_language, e)
                continue

            await self._apply(batch, results, target_language)
            remaining = remaining[len(batch):]
            self._update(translated_count=self._state.translated_count + len(batch))
            batch_size = min(len(remaining), max_batch_size)

    async def _apply(
        self,
        batch: List[TranslationItem],
        results: Sequence[TranslationResult],
        target_language: str,
    ) -> None:
        pending = {it.key for it in batch}
        for result in results:
            if result.key not in pending:
                log.warning("Ignoring result for unexpected or repeated key %r (%s)", result.key, target_language)
                continue
            pending.discard(result.key)
            await _maybe_await(
                self.on_translate(result.key, target_language, clean_translation(result.translated_text))
            )
        if pending:
            log.warning("%d key(s) missing from batch result (%s): %s", len(pending), target_language, sorted(pending))
