from typing import Any

import httpx

from pathprep.domain.ai.providers.base import ProviderError


class GroqProvider:
    """OpenAI-compatible chat-completions client pointed at Groq by default."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_sec: float = 30,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("groq_base_url_missing")

        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._transport = transport

    async def complete(
        self,
        *,
        prompt: str,
        model: str | None = None,
    ) -> str:
        if not self.api_key:
            raise ProviderError("groq_api_key_missing")

        endpoint = f"{self.base_url}/chat/completions"
        payload = {
            "model": model or self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self._transport) as client:
                response = await client.post(endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"groq_request_timeout:{exc}") from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network boundary
            raise ProviderError(f"groq_request_failed:{exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                f"groq_http_{response.status_code}:{response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            decoded = response.json()
        except ValueError as exc:
            raise ProviderError(f"groq_invalid_body:{exc}", status_code=response.status_code) from exc
        return self._extract_text(decoded)

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        if not isinstance(response_json, dict):
            raise ProviderError("groq_body_not_object")
        choices = response_json.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderError("groq_choices_missing")

        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None

        if isinstance(content, str):
            return content

        if isinstance(content, list):
            texts: list[str] = []
            for part in content:
                if isinstance(part, dict):
                    text = part.get("text")
                    if isinstance(text, str) and text.strip():
                        texts.append(text)
            return "\n".join(texts)

        # 빈 응답은 서비스 계층에서 empty_output 으로 분류한다.
        return ""
