import re
from typing import Any

from fastapi import HTTPException

from pathprep.services.generation.pipeline_runtime import GenerationError, format_pipeline_error_detail


KNOWN_ERROR_CODES = {
    "normalization_failure",
    "mapping_failure",
    "model_unavailable",
    "persistence_failure",
    "not_found",
    "validation_error",
    "config_error",
    "unknown",
}

RETRYABLE_ERROR_CODES = {
    "model_unavailable",
    "persistence_failure",
}

_PIPELINE_FAILURE_PATTERN = re.compile(r"^[a-z0-9_]+_failed:([a-z_]+):(.*)$")


def normalize_error_code(value: Any) -> str:
    raw = str(value or "").strip().lower()
    if raw in KNOWN_ERROR_CODES:
        return raw
    return "unknown"


def build_structured_error_detail(
    *,
    error_code: str,
    message: str | None = None,
    retryable: bool | None = None,
    detail: Any = None,
) -> dict[str, Any]:
    code = normalize_error_code(error_code)
    message_text = " ".join(str(message or "").split()).strip()
    if not message_text:
        message_text = _build_message(code, str(detail or ""))
    if retryable is None:
        retryable = code in RETRYABLE_ERROR_CODES

    legacy_detail = " ".join(str(detail or "").split()).strip()
    if not legacy_detail:
        legacy_detail = message_text

    return {
        "error_code": code,
        "message": message_text[:260],
        "retryable": bool(retryable),
        "detail": legacy_detail,
    }


def _build_message(code: str, reason: str) -> str:
    message = " ".join(str(reason or "").split()).strip()
    if message:
        return message[:260]
    defaults = {
        "normalization_failure": "AI response could not be normalized",
        "mapping_failure": "AI response did not match the expected shape",
        "model_unavailable": "AI service is currently unavailable",
        "persistence_failure": "Failed to read or persist generated content",
        "not_found": "Requested entity was not found",
        "validation_error": "Request validation failed",
        "config_error": "AI service configuration error",
        "unknown": "Request failed",
    }
    return defaults.get(code, "Request failed")


def http_exception_from_error(pipeline: str, error: GenerationError) -> HTTPException:
    return HTTPException(
        status_code=error.status_code,
        detail=build_structured_error_detail(
            error_code=error.kind,
            message=error.reason,
            retryable=error.retryable,
            detail=format_pipeline_error_detail(pipeline, error.kind, error.reason),
        ),
    )


def parse_legacy_detail(detail: Any) -> tuple[str, str, str]:
    text = " ".join(str(detail or "").split()).strip()
    if not text:
        return "unknown", _build_message("unknown", ""), ""

    match = _PIPELINE_FAILURE_PATTERN.match(text)
    if match:
        code = normalize_error_code(match.group(1))
        return code, _build_message(code, match.group(2)), text

    token = text.split(":", 1)[0].strip().lower()
    token_code = normalize_error_code(token)
    if token_code != "unknown":
        reason = text.split(":", 1)[1] if ":" in text else ""
        return token_code, _build_message(token_code, reason), text

    if text.lower() == "not found":
        return "not_found", _build_message("not_found", ""), text

    return "unknown", _build_message("unknown", text), text


def _payload_from_detail_dict(detail: dict[str, Any]) -> tuple[str, str, bool, str]:
    code = normalize_error_code(detail.get("error_code"))
    inferred_legacy = ""
    if code == "unknown":
        parsed_code, _, inferred_legacy = parse_legacy_detail(detail.get("detail"))
        code = parsed_code
    message = " ".join(str(detail.get("message") or "").split()).strip()
    if not message:
        message = _build_message(code, detail.get("detail") or "")
    retryable = bool(detail.get("retryable")) if "retryable" in detail else code in RETRYABLE_ERROR_CODES
    legacy_detail = str(detail.get("detail") or "").strip()
    if not legacy_detail:
        legacy_detail = inferred_legacy or message
    return code, message[:260], retryable, legacy_detail


def build_http_error_payload(exc: HTTPException, trace_id: str) -> dict[str, Any]:
    detail = exc.detail

    if isinstance(detail, dict):
        code, message, retryable, legacy_detail = _payload_from_detail_dict(detail)
    else:
        code, message, legacy_detail = parse_legacy_detail(detail)
        retryable = code in RETRYABLE_ERROR_CODES

    return {
        "error_code": code,
        "message": message,
        "retryable": retryable,
        "trace_id": trace_id,
        "detail": legacy_detail,
    }


def build_validation_error_payload(errors: list[Any], trace_id: str) -> dict[str, Any]:
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body") if isinstance(first, dict) else ""
    reason = first.get("msg", "") if isinstance(first, dict) else ""
    message = f"{location}: {reason}" if location else reason
    return {
        "error_code": "validation_error",
        "message": _build_message("validation_error", message),
        "retryable": False,
        "trace_id": trace_id,
        "detail": f"request_validation_failed:{len(errors)}",
    }


def build_unexpected_error_payload(trace_id: str) -> dict[str, Any]:
    return {
        "error_code": "unknown",
        "message": "Unexpected server error",
        "retryable": False,
        "trace_id": trace_id,
        "detail": "unexpected_server_error",
    }
