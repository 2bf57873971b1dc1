from pathprep.core.config import Settings
from pathprep.domain.ai.providers.groq import GroqProvider
from pathprep.domain.ai.resilience import CircuitBreaker, ResiliencePolicy, RetryPolicy
from pathprep.domain.ai.service import AIService


def build_ai_service(settings: Settings) -> AIService:
    provider = GroqProvider(
        api_key=settings.groq_api_key,
        model=settings.groq_model,
        base_url=settings.groq_base_url,
        timeout_sec=settings.ai_request_timeout_sec,
    )
    return AIService(
        provider=provider,
        policy=build_resilience_policy(settings),
        default_model=settings.groq_model,
        max_concurrency=settings.ai_max_concurrency,
        acquire_timeout_ms=settings.ai_backpressure_acquire_timeout_ms,
    )


def build_resilience_policy(settings: Settings) -> ResiliencePolicy:
    return ResiliencePolicy(
        retry=RetryPolicy(
            max_attempts=settings.ai_retry_max_attempts,
            base_delay_sec=settings.ai_retry_base_delay_sec,
            max_delay_sec=settings.ai_retry_max_delay_sec,
            jitter=settings.ai_retry_jitter,
        ),
        breaker=CircuitBreaker(
            window_size=settings.breaker_window_size,
            failure_ratio=settings.breaker_failure_ratio,
            min_calls=settings.breaker_min_calls,
            cooldown_sec=settings.breaker_cooldown_sec,
        ),
        timeout_sec=settings.ai_request_timeout_sec,
    )
