"""CompletionDispatcher: tries completion backends in priority order."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from storyloom.config import settings
from storyloom.llm.backends import BackendError, build_backend

if TYPE_CHECKING:
    from storyloom.llm.backends import CompletionBackend, CompletionRequest

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I'm having trouble responding right now. Please try again in a few moments."
)


@dataclass(frozen=True)
class Completion:
    text: str
    source: str


@dataclass(frozen=True)
class BackendFailure:
    backend: str
    reason: str


class DispatchError(Exception):
    """Every configured backend failed.

    ``failures`` lists each backend in the order it was tried;
    ``user_message`` is safe to show in place of a reply.
    """

    user_message = FALLBACK_MESSAGE

    def __init__(self, failures: list[BackendFailure]) -> None:
        self.failures = failures
        if failures:
            detail = "; ".join(f"{f.backend}: {f.reason}" for f in failures)
        else:
            detail = "no completion backends configured"
        super().__init__(f"All completion backends failed ({detail})")


class CompletionDispatcher:
    """Sends a request to each backend in order until one succeeds.

    Singleton accessed via ``CompletionDispatcher.get()``, built from
    ``settings.completion_backends``.  Holds no state between calls.
    """

    _instance: CompletionDispatcher | None = None

    def __init__(self, backends: list[CompletionBackend]) -> None:
        self._backends = list(backends)

    @classmethod
    def get(cls) -> CompletionDispatcher:
        """Return the shared dispatcher, creating it from settings if needed."""
        if cls._instance is None:
            cls._instance = cls.from_settings()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @classmethod
    def from_settings(cls) -> CompletionDispatcher:
        names = settings.get_completion_backends()
        logger.info("Completion backends: %s", ", ".join(names) or "(none)")
        return cls([build_backend(name) for name in names])

    @property
    def backend_names(self) -> list[str]:
        return [b.name for b in self._backends]

    async def complete(self, request: CompletionRequest) -> Completion:
        """Return the first successful completion. Raises DispatchError if all fail."""
        failures: list[BackendFailure] = []
        for backend in self._backends:
            try:
                text = await backend.complete(request)
            except BackendError as exc:
                logger.warning("Backend %s failed: %s", backend.name, exc)
                failures.append(BackendFailure(backend=backend.name, reason=str(exc)))
                continue
            if failures:
                logger.info(
                    "Completed via %s after %d failed backend(s)", backend.name, len(failures)
                )
            return Completion(text=text, source=backend.name)

        raise DispatchError(failures)
