"""AI text-generation adapters.

Each adapter wraps one provider/model pair behind ``TextGenerator.generate``.
Identifiers use the form ``<provider>/<model>``:

    gemini/gemini-2.0-flash  → GeminiGenerator   (google-generativeai)
    openai/gpt-4o-mini       → OpenAIGenerator   (openai)

Adapters raise ``ProviderError`` for every failure mode (HTTP error, quota,
timeout, blocked or empty output) so the chain treats them identically.
"""

from typing import Dict, List, Optional

import google.generativeai as genai
from openai import OpenAI, OpenAIError

from market_intel.core.errors import ProviderError
from market_intel.core.logger import logger
from market_intel.providers.base import TextGenerator


class GeminiGenerator(TextGenerator):
    """Google Gemini model via ``google-generativeai``."""

    def __init__(self, model_name: str, api_key: str) -> None:
        self.identifier = f"gemini/{model_name}"
        self.model_name = model_name
        genai.configure(api_key=api_key)
        self._model = genai.GenerativeModel(model_name)

    def generate(self, prompt: str, timeout: float) -> str:
        try:
            response = self._model.generate_content(
                prompt, request_options={"timeout": timeout}
            )
            # .text raises ValueError when the candidate was blocked
            text = response.text
        except Exception as exc:
            raise ProviderError(self.identifier, str(exc)) from exc
        if not text or not text.strip():
            raise ProviderError(self.identifier, "empty response")
        return text


class OpenAIGenerator(TextGenerator):
    """OpenAI chat-completions model."""

    def __init__(self, model_name: str, api_key: str, client: Optional[OpenAI] = None) -> None:
        self.identifier = f"openai/{model_name}"
        self.model_name = model_name
        self.client = client or OpenAI(api_key=api_key)

    def generate(self, prompt: str, timeout: float) -> str:
        try:
            completion = self.client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except OpenAIError as exc:
            raise ProviderError(self.identifier, str(exc)) from exc
        if not completion.choices:
            raise ProviderError(self.identifier, "no choices returned")
        text = completion.choices[0].message.content
        if not text or not text.strip():
            raise ProviderError(self.identifier, "empty response")
        return text


_FACTORIES = {
    "gemini": GeminiGenerator,
    "openai": OpenAIGenerator,
}


def build_generators(model_ids: List[str], api_keys: Dict[str, str]) -> List[TextGenerator]:
    """Build adapters for ``model_ids`` in order, skipping any without a credential.

    Args:
        model_ids: Ordered ``provider/model`` identifiers from config.
        api_keys: Provider name → API key (blank or missing means unconfigured).

    Returns:
        Adapters in preference order; may be empty.
    """
    generators: List[TextGenerator] = []
    for model_id in model_ids:
        provider, _, model_name = model_id.partition("/")
        factory = _FACTORIES.get(provider)
        if factory is None or not model_name:
            logger.warning(f"AnalysisChain: unknown provider id {model_id!r}, skipped")
            continue
        api_key = (api_keys.get(provider) or "").strip()
        if not api_key:
            logger.info(f"AnalysisChain: no credential for {provider}; {model_id} skipped")
            continue
        generators.append(factory(model_name, api_key))
    return generators
