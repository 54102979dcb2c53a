"""
LLM response generation service for the course tutor.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import google.generativeai as genai

from etl.error_handling import PipelineStage, ProviderError
from monitoring.metrics import observe as metrics_observe, inc as metrics_inc


class ResponseGenerator:
    """
    Gemini adapter: one non-streaming completion per call, no retries
    """

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = "gemini-2.0-flash",
        temperature: float = 0.3,
        max_output_tokens: int = 2048,
    ):
        self.logger = logging.getLogger(__name__)

        if not api_key:
            raise ValueError("Missing API key: set GEMINI_API_KEY or GOOGLE_API_KEY, or pass api_key param")
        genai.configure(api_key=api_key)
        self.model_name = model_name

        self.generation_config = genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            candidate_count=1
        )
        # Models are keyed by system instruction, which is fixed at construction
        self._models: Dict[str, Any] = {}

    def _model_for(self, system_role: str):
        if system_role not in self._models:
            self._models[system_role] = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=system_role or None,
            )
        return self._models[system_role]

    async def generate(self, system_role: str, prompt: str) -> str:
        """
        Generate an answer for ``prompt`` under ``system_role``

        Raises:
            ProviderError: If the call fails or no candidate text comes back
        """
        start_time = time.perf_counter()
        model = self._model_for(system_role)

        try:
            response = await asyncio.to_thread(
                model.generate_content,
                prompt,
                generation_config=self.generation_config
            )
        except Exception as e:
            self.logger.error(f"Error calling Gemini API: {e}")
            await metrics_inc("provider_errors_total", labels={"provider": "generation"})
            raise ProviderError(
                f"Language model call failed: {e}", stage=PipelineStage.GENERATE
            ) from e

        text = self._extract_text(response)
        if not text:
            self.logger.warning("No valid response generated by Gemini API")
            await metrics_inc("provider_errors_total", labels={"provider": "generation"})
            raise ProviderError("Language model returned no answer", stage=PipelineStage.GENERATE)

        await metrics_observe("generation_seconds", time.perf_counter() - start_time)
        return text

    @staticmethod
    def _extract_text(response) -> str:
        candidates = getattr(response, "candidates", None)
        if not candidates:
            return ""
        candidate = candidates[0]
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) if content else None
        if not parts:
            return ""
        return "".join(getattr(part, "text", "") or "" for part in parts).strip()

    def get_model_info(self):
        return {
            "model_name": self.model_name,
            "generation_config": {
                "temperature": self.generation_config.temperature,
                "max_output_tokens": self.generation_config.max_output_tokens
            },
        }
