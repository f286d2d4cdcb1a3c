"""Test doubles shared across test modules."""

from storyloom.llm.backends import BackendError, CompletionRequest


class StubBackend:
    """Completion backend that replays canned replies or fails."""

    def __init__(self, name: str = "stub", replies: list[str] | None = None, fail: bool = False):
        self._name = name
        self._replies = list(replies or ["Hello there."])
        self._fail = fail
        self.requests: list[CompletionRequest] = []

    @property
    def name(self) -> str:
        return self._name

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        if self._fail:
            msg = f"{self._name} is down"
            raise BackendError(msg)
        if len(self._replies) > 1:
            return self._replies.pop(0)
        return self._replies[0]
