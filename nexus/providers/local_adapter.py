"""
Local model adapter backed by an Ollama server.
"""

from typing import Dict, List

import httpx
import ollama

from util.logging import logger
from .base import ProviderAdapter, GenerationRequest, GenerationResponse, RoutingMode, build_prompt, build_usage
from .simulation import SimulationAdapter
from ..core.errors import ProviderUnavailable
from ..core.schema import ProviderKind


class LocalAdapter(ProviderAdapter):
    """
    Talks to a self-hosted model via the ollama client.
    An unreachable server degrades to simulation; a server that answers with
    an error is reported as ProviderUnavailable.
    """

    kind = ProviderKind.CUSTOM_LOCAL
    default_model = "local-model"

    def _client(self) -> ollama.Client:
        return ollama.Client(host=self.config.endpoint, timeout=self.timeout)

    def _build_messages(self, request: GenerationRequest, prompt: str) -> List[Dict[str, str]]:
        messages = []
        if request.system_directive:
            messages.append({'role': 'system', 'content': request.system_directive})
        messages.append({'role': 'user', 'content': prompt})
        return messages

    def complete(self, request: GenerationRequest, mode: RoutingMode) -> GenerationResponse:
        prompt = build_prompt(request)
        kind = self.kind.value

        try:
            response = self._client().chat(
                model=self.model_name,
                messages=self._build_messages(request, prompt),
                options={'temperature': request.temperature}
            )
        except httpx.TimeoutException:
            raise ProviderUnavailable(kind, f"timed out after {self.timeout}s")
        except (ConnectionError, httpx.ConnectError) as e:
            logger.log_provider_call(kind, self.model_name, RoutingMode(mode).value, "degraded", {
                "endpoint": self.config.endpoint, "error": str(e)
            })
            return SimulationAdapter(self.config, self.timeout).complete(request, mode)
        except ollama.ResponseError as e:
            raise ProviderUnavailable(kind, f"model error: {e.error}")
        except httpx.HTTPError as e:
            raise ProviderUnavailable(kind, f"transport error: {e}")

        try:
            text = response['message']['content']
        except (KeyError, TypeError) as e:
            raise ProviderUnavailable(kind, f"malformed response payload: {e}")

        usage = build_usage(
            self.kind, self.model_name, mode,
            response.get('prompt_eval_count'), response.get('eval_count'),
            prompt, text
        )
        logger.log_provider_call(kind, self.model_name, RoutingMode(mode).value, "success", {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens
        })
        return GenerationResponse(text=text, usage=usage)

