from __future__ import annotations


class LifeQuestError(Exception):
    """Base class for recoverable engine errors."""


class ValidationError(LifeQuestError):
    pass


class NotReadyError(LifeQuestError):
    pass


class StoreWriteError(LifeQuestError):
    def __init__(self, message: str, paths: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.paths = paths


class ExternalServiceError(LifeQuestError):
    pass
