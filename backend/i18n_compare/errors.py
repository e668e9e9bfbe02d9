from __future__ import annotations


class ProviderError(ValueError):
    """The translation provider could not be reached or returned an unusable answer."""


class InvalidBatchError(ValueError):
    """A translate-batch request was rejected before reaching the provider."""


class RunInProgressError(RuntimeError):
    """An auto-translate run is already active for this workspace."""


class StoppedByUser(Exception):
    def __init__(self) -> None:
        super().__init__("Translation stopped by user")


class TranslationFailedError(Exception):
    def __init__(self, key: str) -> None:
        super().__init__(f"Translation failed for key: {key}")
        self.key = key
