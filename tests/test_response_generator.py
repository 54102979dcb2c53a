"""
Tests for the Gemini ResponseGenerator adapter.
"""

import pytest
from unittest.mock import Mock, patch

from etl.error_handling import PipelineStage, ProviderError
from rag.response_generator import ResponseGenerator


def _gemini_response(text):
    part = Mock()
    part.text = text
    candidate = Mock()
    candidate.content.parts = [part]
    response = Mock()
    response.candidates = [candidate]
    return response


class TestResponseGenerator:

    @pytest.fixture
    def mock_api_key(self):
        return "test_api_key_12345"

    @pytest.fixture
    def model(self):
        return Mock()

    @pytest.fixture
    def response_generator(self, mock_api_key, model):
        with patch('google.generativeai.configure'):
            with patch('google.generativeai.GenerativeModel', return_value=model) as model_cls:
                generator = ResponseGenerator(api_key=mock_api_key)
                generator._model_cls = model_cls
                yield generator

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            ResponseGenerator(api_key=None)

    def test_default_temperature(self, response_generator):
        assert response_generator.get_model_info()["generation_config"]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_generate_returns_text(self, response_generator, model):
        model.generate_content.return_value = _gemini_response("  Chloroplasts.  ")

        answer = await response_generator.generate("You are a tutor.", "prompt text")

        assert answer == "Chloroplasts."
        args, kwargs = model.generate_content.call_args
        assert args[0] == "prompt text"
        assert kwargs["generation_config"] is response_generator.generation_config
        response_generator._model_cls.assert_called_once_with(
            model_name="gemini-2.0-flash", system_instruction="You are a tutor."
        )

    @pytest.mark.asyncio
    async def test_model_reused_for_same_system_role(self, response_generator, model):
        model.generate_content.return_value = _gemini_response("ok")

        await response_generator.generate("role", "one")
        await response_generator.generate("role", "two")

        assert response_generator._model_cls.call_count == 1
        assert model.generate_content.call_count == 2

    @pytest.mark.asyncio
    async def test_empty_candidates_raise(self, response_generator, model):
        response = Mock()
        response.candidates = []
        model.generate_content.return_value = response

        with pytest.raises(ProviderError) as exc_info:
            await response_generator.generate("role", "prompt")
        assert exc_info.value.stage == PipelineStage.GENERATE

    @pytest.mark.asyncio
    async def test_api_error_not_retried(self, response_generator, model):
        model.generate_content.side_effect = RuntimeError("503 service unavailable")

        with pytest.raises(ProviderError) as exc_info:
            await response_generator.generate("role", "prompt")

        assert exc_info.value.stage == PipelineStage.GENERATE
        assert exc_info.value.status_code == 502
        assert model.generate_content.call_count == 1
