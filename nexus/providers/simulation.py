"""
Simulation adapter: fabricates a response when no live backend can be reached.
Keeps the pipeline exercisable without credentials.
"""

from util.logging import logger
from .base import ProviderAdapter, GenerationRequest, GenerationResponse, RoutingMode, build_prompt, build_usage
from ..core.schema import ProviderKind

SIMULATION_MODEL = "simulation"


class SimulationAdapter(ProviderAdapter):
    """Echoes the request parameters back instead of calling a provider."""

    default_model = SIMULATION_MODEL

    def complete(self, request: GenerationRequest, mode: RoutingMode) -> GenerationResponse:
        kind = ProviderKind(self.config.kind)
        prompt = build_prompt(request)
        context_used = "YES" if len("\n---\n".join(request.retrieved_context)) > 10 else "NONE"

        text = (
            f"[SIMULATED {kind.value} RESPONSE]\n\n"
            f"I have processed your query with T={request.temperature} and "
            f"Strategy={request.injection_strategy.value}.\n\n"
            f"Mode: {RoutingMode(mode).value}\n\n"
            f"No usable credential or endpoint was configured, so this response is simulated. "
            f"A live configuration would send this request to {kind.value}.\n\n"
            f"Context used: {context_used}."
        )

        usage = build_usage(kind, self.model_name, mode, None, None, prompt, text)
        logger.log_provider_call(kind.value, self.model_name, RoutingMode(mode).value, "degraded", {
            "simulated": True
        })
        return GenerationResponse(text=text, usage=usage)
