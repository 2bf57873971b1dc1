"""AI domain services and provider abstractions."""

from pathprep.domain.ai.factory import build_ai_service, build_resilience_policy
from pathprep.domain.ai.service import AIService

__all__ = ["AIService", "build_ai_service", "build_resilience_policy"]
