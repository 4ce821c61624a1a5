from __future__ import annotations

"""Replacement text providers backed by generative models."""

import asyncio
from dataclasses import dataclass

import httpx

from reanchor.app.settings import settings


class ReplacementError(RuntimeError):
    """Raised when a replacement request fails or returns nothing usable."""
    pass


_SYSTEM_PROMPT = (
    "You are an editor improving a passage of a document. "
    "Rewrite only the selected passage so it reads clearly and correctly. "
    "Keep the author's meaning and tone, and keep markdown formatting. "
    "Return only the replacement text, without quotes or commentary."
)


def build_user_prompt(selected_text: str, context: str) -> str:
    """Format the selected passage and its surrounding context."""
    if context.strip():
        return f"Context:\n{context}\n\nSelected passage:\n{selected_text}"
    return f"Selected passage:\n{selected_text}"


class ReplacementProvider:
    """Base class for replacement providers."""
    async def request_replacement(self, selected_text: str, context: str = "") -> str:
        """Return suggested replacement text for the selected passage."""
        raise NotImplementedError


@dataclass(frozen=True)
class NoopReplacementProvider(ReplacementProvider):
    """Provider that returns the selected text unchanged."""
    async def request_replacement(self, selected_text: str, context: str = "") -> str:
        return selected_text


@dataclass(frozen=True)
class OllamaReplacementProvider(ReplacementProvider):
    """Provider backed by the Ollama chat API."""
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    client: httpx.AsyncClient | None = None

    async def request_replacement(self, selected_text: str, context: str = "") -> str:
        """Request a replacement using the Ollama chat API."""
        if not selected_text.strip():
            return selected_text
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(selected_text, context)},
            ],
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        data = await _post_json(
            self.client,
            f"{self.base_url}/api/chat",
            payload,
            headers=None,
            timeout=self.timeout,
        )
        message = data.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise ReplacementError("Invalid Ollama response")
        return _clean_replacement(content)


@dataclass(frozen=True)
class OpenAIReplacementProvider(ReplacementProvider):
    """Provider backed by OpenAI chat completions."""
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    client: httpx.AsyncClient | None = None

    async def request_replacement(self, selected_text: str, context: str = "") -> str:
        """Request a replacement using OpenAI chat completions."""
        if not selected_text.strip():
            return selected_text
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(selected_text, context)},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = await _post_json(
            self.client,
            f"{self.base_url}/chat/completions",
            payload,
            headers=headers,
            timeout=self.timeout,
        )
        choices = data.get("choices") or []
        if not choices:
            raise ReplacementError("Invalid OpenAI response")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise ReplacementError("Invalid OpenAI response content")
        return _clean_replacement(content)


@dataclass(frozen=True)
class GeminiReplacementProvider(ReplacementProvider):
    """Provider backed by Gemini models."""
    api_key: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float

    async def request_replacement(self, selected_text: str, context: str = "") -> str:
        """Request a replacement using the Gemini API."""
        if not selected_text.strip():
            return selected_text
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise ReplacementError("google-generativeai is required for Gemini replacements") from exc
        prompt = f"{_SYSTEM_PROMPT}\n\n{build_user_prompt(selected_text, context)}"

        def _run() -> str:
            genai.configure(api_key=self.api_key)
            model = genai.GenerativeModel(self.model)
            response = model.generate_content(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                },
            )
            return getattr(response, "text", "") or ""

        try:
            content = await asyncio.wait_for(asyncio.to_thread(_run), timeout=self.timeout)
        except Exception as exc:
            raise ReplacementError(str(exc)) from exc
        return _clean_replacement(content)


async def _post_json(
    client: httpx.AsyncClient | None,
    url: str,
    payload: dict[str, object],
    headers: dict[str, str] | None,
    timeout: float,
) -> dict[str, object]:
    """POST a JSON payload, using the injected client when one is given."""
    try:
        if client is not None:
            response = await client.post(url, json=payload, headers=headers, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        else:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                response = await owned.post(url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
    except httpx.HTTPError as exc:
        raise ReplacementError(str(exc)) from exc
    if not isinstance(data, dict):
        raise ReplacementError("Invalid provider response")
    return data


def _clean_replacement(content: str) -> str:
    """Strip whitespace and wrapping quotes models like to add."""
    cleaned = content.strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in {'"', "'"}:
        cleaned = cleaned[1:-1].strip()
    if not cleaned:
        raise ReplacementError("Empty replacement text")
    return cleaned


def build_replacement_provider() -> ReplacementProvider:
    """Factory for replacement providers based on settings."""
    provider = settings.replacement_provider.strip().lower()
    if provider in {"", "none", "noop"}:
        return NoopReplacementProvider()
    if provider == "ollama":
        return OllamaReplacementProvider(
            base_url=settings.ollama_base_url.rstrip("/"),
            model=settings.ollama_model,
            temperature=settings.ollama_temperature,
            max_tokens=settings.ollama_max_tokens,
            timeout=settings.ollama_timeout,
        )
    if provider == "openai":
        if not settings.openai_api_key or not settings.openai_chat_model:
            raise ReplacementError("OpenAI provider requires OPENAI_API_KEY and OPENAI_CHAT_MODEL")
        return OpenAIReplacementProvider(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url.rstrip("/"),
            model=settings.openai_chat_model,
            temperature=settings.ollama_temperature,
            max_tokens=settings.ollama_max_tokens,
            timeout=settings.ollama_timeout,
        )
    if provider in {"gemini", "google"}:
        if not settings.gemini_api_key or not settings.gemini_chat_model:
            raise ReplacementError("Gemini provider requires GEMINI_API_KEY and GEMINI_CHAT_MODEL")
        return GeminiReplacementProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_chat_model,
            temperature=settings.ollama_temperature,
            max_tokens=settings.ollama_max_tokens,
            timeout=settings.ollama_timeout,
        )
    raise ReplacementError(f"Unsupported replacement provider: {provider}")
