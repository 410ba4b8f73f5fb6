"""
Hosted provider adapters over plain HTTPS with requests.
"""

from typing import Any, Dict, Optional, Tuple

import requests

from util.logging import logger
from .base import ProviderAdapter, GenerationRequest, GenerationResponse, RoutingMode, build_prompt, build_usage
from ..core.errors import ProviderUnavailable
from ..core.schema import ProviderKind

GOOGLE_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 1024


class HTTPProviderAdapter(ProviderAdapter):
    """Shared transport: one POST per completion, failures raise ProviderUnavailable."""

    def _post_json(self, url: str, headers: Dict[str, str], body: Dict[str, Any],
                   params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        kind = ProviderKind(self.config.kind).value
        try:
            response = requests.post(url, headers=headers, json=body, params=params, timeout=self.timeout)
        except requests.Timeout:
            raise ProviderUnavailable(kind, f"timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise ProviderUnavailable(kind, f"transport error: {e}")

        if not response.ok:
            raise ProviderUnavailable(kind, f"HTTP {response.status_code} {response.reason}")

        try:
            return response.json()
        except ValueError:
            raise ProviderUnavailable(kind, "response body is not JSON")

    def complete(self, request: GenerationRequest, mode: RoutingMode) -> GenerationResponse:
        kind = ProviderKind(self.config.kind)
        prompt = build_prompt(request)

        data = self._post_json(*self._build_call(request, prompt))
        try:
            text, input_tokens, output_tokens = self._parse(data)
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderUnavailable(kind.value, f"malformed response payload: {e}")

        usage = build_usage(kind, self.model_name, mode, input_tokens, output_tokens,
                            f"{request.system_directive}\n\n{prompt}", text)
        logger.log_provider_call(kind.value, self.model_name, RoutingMode(mode).value, "success", {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens
        })
        return GenerationResponse(text=text, usage=usage)

    def _build_call(self, request: GenerationRequest, prompt: str) -> Tuple:
        """Return (url, headers, body[, params]) for the POST."""
        raise NotImplementedError

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
        """Return (text, input_tokens, output_tokens); missing counts are None."""
        raise NotImplementedError


class OpenAICompatibleAdapter(HTTPProviderAdapter):
    """Chat completions schema shared by OpenAI, Groq, Mistral and xAI."""

    url: str = ""

    def _build_call(self, request: GenerationRequest, prompt: str) -> Tuple:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.credential}",
        }
        body = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": request.system_directive},
                {"role": "user", "content": prompt},
            ],
            "temperature": request.temperature,
            "stream": False,
        }
        return self.url, headers, body

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
        text = data["choices"][0]["message"]["content"]
        usage = data.get("usage") or {}
        return text, usage.get("prompt_tokens"), usage.get("completion_tokens")


class OpenAIAdapter(OpenAICompatibleAdapter):
    kind = ProviderKind.OPENAI
    default_model = "gpt-4o"
    url = "https://api.openai.com/v1/chat/completions"


class GroqAdapter(OpenAICompatibleAdapter):
    kind = ProviderKind.GROQ
    default_model = "llama3-70b-8192"
    url = "https://api.groq.com/openai/v1/chat/completions"


class MistralAdapter(OpenAICompatibleAdapter):
    kind = ProviderKind.MISTRAL
    default_model = "mistral-large-latest"
    url = "https://api.mistral.ai/v1/chat/completions"


class XAIAdapter(OpenAICompatibleAdapter):
    kind = ProviderKind.XAI
    default_model = "grok-beta"
    url = "https://api.x.ai/v1/chat/completions"


class AnthropicAdapter(HTTPProviderAdapter):
    kind = ProviderKind.ANTHROPIC
    default_model = "claude-3-5-sonnet-20240620"

    def _build_call(self, request: GenerationRequest, prompt: str) -> Tuple:
        headers = {
            "x-api-key": self.config.credential,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        body = {
            "model": self.model_name,
            "system": request.system_directive,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": request.temperature,
        }
        return ANTHROPIC_URL, headers, body

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
        text = data["content"][0]["text"]
        usage = data.get("usage") or {}
        return text, usage.get("input_tokens"), usage.get("output_tokens")


class GoogleAdapter(HTTPProviderAdapter):
    kind = ProviderKind.GOOGLE
    default_model = "gemini-2.5-flash"

    def _build_call(self, request: GenerationRequest, prompt: str) -> Tuple:
        base = (self.config.endpoint or GOOGLE_API_BASE).rstrip("/")
        url = f"{base}/models/{self.model_name}:generateContent"
        headers = {"Content-Type": "application/json"}
        body = {
            "systemInstruction": {"parts": [{"text": request.system_directive}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": request.temperature},
        }
        return url, headers, body, {"key": self.config.credential}

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
        parts = data["candidates"][0]["content"]["parts"]
        text = "".join(part.get("text", "") for part in parts) or "Empty Response"
        usage = data.get("usageMetadata") or {}
        return text, usage.get("promptTokenCount"), usage.get("candidatesTokenCount")
