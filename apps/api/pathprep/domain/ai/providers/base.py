from typing import Protocol


class ProviderError(RuntimeError):
    """Non-2xx response or transport failure from a completion endpoint."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class CompletionProvider(Protocol):
    """Chat-completion endpoint contract that returns the raw completion text."""

    async def complete(
        self,
        *,
        prompt: str,
        model: str | None = None,
    ) -> str:
        ...
