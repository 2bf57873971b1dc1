from __future__ import annotations


class GenerationError(RuntimeError):
    kind = "generation_failed"
    status_code = 500
    retryable = False

    def __init__(self, reason: str = "", *, stage: str = "pipeline") -> None:
        self.reason = normalize_error_reason(reason) if reason else self.kind
        self.stage = stage
        super().__init__(f"{stage}:{self.kind}:{self.reason}")


class NormalizationFailure(GenerationError):
    kind = "normalization_failure"
    status_code = 422


class MappingFailure(GenerationError):
    kind = "mapping_failure"
    status_code = 422


class ModelUnavailable(GenerationError):
    kind = "model_unavailable"
    status_code = 503
    retryable = True

    def __init__(self, reason: str = "", *, cause: str = "provider_error", attempt_count: int = 1) -> None:
        self.cause = cause
        self.attempt_count = attempt_count
        super().__init__(reason or cause, stage="model")


class PersistenceFailure(GenerationError):
    kind = "persistence_failure"
    status_code = 503
    retryable = True

    def __init__(self, reason: str = "", *, operation: str = "store") -> None:
        self.operation = operation
        super().__init__(reason, stage=operation)


class NotFound(GenerationError):
    kind = "not_found"
    status_code = 404

    def __init__(self, reason: str = "", *, entity_id: str | None = None) -> None:
        self.entity_id = entity_id
        super().__init__(reason or f"entity_not_found:{entity_id}", stage="lookup")


def ai_error_detail(exc: BaseException) -> str:
    message = str(exc).strip()
    if not message:
        return type(exc).__name__.lower() or "ai_provider_failed"
    return message[:300]


def normalize_error_reason(value: str) -> str:
    return " ".join(str(value or "").split())[:260] or "ai_provider_failed"


def format_pipeline_error_detail(pipeline: str, kind: str, reason: str) -> str:
    return f"{pipeline}_failed:{kind}:{normalize_error_reason(reason)}"


def classify_model_failure(detail: str, status_code: int | None = None) -> tuple[str, bool]:
    """Map a provider failure to ``(cause, retryable)``.

    Only rate limiting is worth retrying at the client; everything else is
    surfaced immediately as a single unavailable condition.
    """
    if status_code == 429:
        return ("rate_limited", True)
    if status_code == 408 or status_code == 504:
        return ("timeout", False)

    text = str(detail or "").lower()

    rate_limit_tokens = (
        "429",
        "too many requests",
        "rate limit",
        "rate_limit",
        "resource exhausted",
        "quota",
    )
    timeout_tokens = (
        "timed out",
        "timeout",
        "read operation timed out",
    )
    config_tokens = (
        "api_key_missing",
        "base_url_missing",
        "unsupported_ai_provider",
        "config_error",
    )

    if any(token in text for token in rate_limit_tokens):
        return ("rate_limited", True)
    if any(token in text for token in timeout_tokens):
        return ("timeout", False)
    if "ai_backpressure_busy" in text:
        return ("backpressure_busy", False)
    if any(token in text for token in config_tokens):
        return ("config_error", False)
    return ("provider_error", False)


def classify_store_failure(exc: BaseException) -> str:
    text = f"{type(exc).__name__} {exc}".lower()
    if "timeout" in text or "timed out" in text:
        return "timeout"
    if "connection" in text or "connect" in text:
        return "connection"
    return "other"
