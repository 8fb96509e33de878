"""LLM provider clients for the Plan step.

Each client turns a prompt string into the generated text, or raises
``ProviderError``. Gemini is called over plain httpx; Claude goes through
the anthropic SDK, which speaks the Messages API wire format.
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from ddaloop.config.settings import LLMProvider, ProviderConfig

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_VERSION = "2023-06-01"


class ProviderError(Exception):
    """Transport failure, non-2xx status or an unreadable response body."""


class ProviderClient(Protocol):
    provider: LLMProvider
    model: str

    async def generate(self, prompt: str) -> str: ...


# --- Response schemas ---

class GeminiPart(BaseModel):
    text: Optional[str] = None


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = []


class GeminiCandidate(BaseModel):
    content: Optional[GeminiContent] = None


class GeminiResponse(BaseModel):
    """``{"candidates": [{"content": {"parts": [{"text": ...}]}}]}``"""
    candidates: list[GeminiCandidate] = []

    def first_text(self) -> Optional[str]:
        for candidate in self.candidates:
            if candidate.content is None:
                continue
            for part in candidate.content.parts:
                if part.text:
                    return part.text
        return None


def strip_code_fences(text: str) -> str:
    """Remove one leading ```lang line and one trailing ``` if present."""
    trimmed = text.strip()
    if trimmed.startswith("```"):
        newline = trimmed.find("\n")
        trimmed = trimmed[newline + 1:] if newline > 0 else trimmed[3:]
    if trimmed.endswith("```"):
        trimmed = trimmed[:-3]
    return trimmed.strip()


# --- Clients ---

class GeminiClient:
    provider = LLMProvider.GEMINI

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = GEMINI_BASE_URL,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_body(self, prompt: str) -> dict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self.max_tokens,
                "temperature": self.temperature,
            },
        }

    async def generate(self, prompt: str) -> str:
        client = self._http_client or httpx.AsyncClient()
        try:
            resp = await client.post(
                self.url,
                params={"key": self.api_key},
                json=self.build_body(prompt),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            parsed = GeminiResponse.model_validate(resp.json())
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Gemini returned {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Gemini request failed: {e!r}") from e
        except (ValueError, ValidationError) as e:
            raise ProviderError(f"Gemini response unreadable: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if not parsed.candidates:
            raise ProviderError("Gemini response missing 'candidates'")
        return parsed.first_text() or ""


class ClaudeClient:
    provider = LLMProvider.CLAUDE

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 1024,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ):
        import anthropic

        self.model = model
        self.max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
            default_headers={"anthropic-version": ANTHROPIC_VERSION},
        )

    async def generate(self, prompt: str) -> str:
        import anthropic

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Claude returned {e.status_code}: {str(e)[:500]}"
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Claude request failed: {e!r}") from e

        for block in response.content or []:
            text = getattr(block, "text", None)
            if text:
                return text
        return ""


def create_client(
    config: ProviderConfig, http_client: Optional[httpx.AsyncClient] = None,
) -> Optional[ProviderClient]:
    """Build the configured provider client, or None without a credential."""
    api_key = config.get_api_key()
    if not api_key:
        return None

    provider = config.get_provider()
    model = config.get_model()
    logger.debug(f"Using LLM provider {provider.value}, model {model}")
    if provider == LLMProvider.CLAUDE:
        return ClaudeClient(
            api_key=api_key,
            model=model,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            http_client=http_client,
        )
    return GeminiClient(
        api_key=api_key,
        model=model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout=config.timeout_seconds,
        http_client=http_client,
    )
