import asyncio
import logging

from pathprep.domain.ai.providers.base import CompletionProvider, ProviderError
from pathprep.domain.ai.resilience import ResiliencePolicy
from pathprep.services.generation.pipeline_runtime import (
    ModelUnavailable,
    ai_error_detail,
    classify_model_failure,
)


logger = logging.getLogger(__name__)


class AIService:
    """Resilient wrapper around a single completion provider.

    Each ``generate`` call takes a backpressure slot, checks the circuit
    breaker, bounds every attempt with a timeout and retries rate-limit
    responses with jittered exponential backoff. Every failure leaves as
    ``ModelUnavailable`` with a ``cause`` describing what went wrong.
    """

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        policy: ResiliencePolicy | None = None,
        default_model: str | None = None,
        max_concurrency: int = 4,
        acquire_timeout_ms: int = 200,
    ) -> None:
        self.provider = provider
        self.policy = policy or ResiliencePolicy()
        self.default_model = default_model
        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._acquire_timeout_sec = max(0.01, int(acquire_timeout_ms) / 1000)

    async def generate(self, prompt: str, model: str | None = None) -> str:
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._acquire_timeout_sec)
        except asyncio.TimeoutError:
            raise ModelUnavailable("ai_backpressure_busy", cause="backpressure_busy", attempt_count=0) from None
        try:
            return await self._generate_with_retry(prompt, model or self.default_model)
        finally:
            self._semaphore.release()

    async def _generate_with_retry(self, prompt: str, model: str | None) -> str:
        breaker = self.policy.breaker
        max_attempts = max(1, int(self.policy.retry.max_attempts))
        attempt = 0

        while True:
            attempt += 1
            if not breaker.allow_request():
                raise ModelUnavailable("circuit_open", cause="circuit_open", attempt_count=attempt)

            try:
                text = await asyncio.wait_for(
                    self.provider.complete(prompt=prompt, model=model),
                    timeout=self.policy.timeout_sec,
                )
            except asyncio.TimeoutError:
                breaker.record_failure()
                raise ModelUnavailable(
                    f"ai_timeout:{self.policy.timeout_sec}s",
                    cause="timeout",
                    attempt_count=attempt,
                ) from None
            except Exception as exc:
                breaker.record_failure()
                detail = ai_error_detail(exc)
                status_code = exc.status_code if isinstance(exc, ProviderError) else None
                cause, retryable = classify_model_failure(detail, status_code)
                if retryable and attempt < max_attempts:
                    delay = await self.policy.wait_before_retry(attempt)
                    logger.warning(
                        "model call %s on attempt %d/%d, retried after %.2fs",
                        cause,
                        attempt,
                        max_attempts,
                        delay,
                    )
                    continue
                raise ModelUnavailable(detail, cause=cause, attempt_count=attempt) from exc

            breaker.record_success()
            if not text or not text.strip():
                raise ModelUnavailable("empty_output", cause="empty_output", attempt_count=attempt)
            return text
