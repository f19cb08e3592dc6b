from abc import ABC, abstractmethod
from typing import Any, Dict, Literal

Provider = Literal["openai", "google"]


class BaseLLMModel(ABC):
    # Whether the provider accepts a response schema while search grounding is on
    supports_schema_with_search: bool = False

    def __init__(self, model_name: str):
        self._model_name = model_name

    @abstractmethod
    def get_litellm_model_name(self) -> str:
        pass

    @abstractmethod
    def get_langfuse_model_name(self) -> str:
        pass

    @abstractmethod
    def get_search_params(self) -> Dict[str, Any]:
        """Extra completion kwargs that switch on web-search grounding."""


class OpenAILLMModel(BaseLLMModel):
    def get_litellm_model_name(self) -> str:
        return f"openai/{self._model_name}"

    def get_langfuse_model_name(self) -> str:
        return f"openai/{self._model_name}"

    def get_search_params(self) -> Dict[str, Any]:
        return {"web_search_options": {"search_context_size": "high"}}


class GoogleLLMModel(BaseLLMModel):
    def __init__(self, model_name: str, *, supports_schema_with_search: bool = False):
        super().__init__(model_name)
        self.supports_schema_with_search = supports_schema_with_search

    def get_litellm_model_name(self) -> str:
        # LiteLLM uses 'gemini/' prefix specifically for Google Generative AI models
        return f"gemini/{self._model_name}"

    def get_langfuse_model_name(self) -> str:
        # Langfuse typically uses 'google/' or similar standardized provider names
        return f"google/{self._model_name}"

    def get_search_params(self) -> Dict[str, Any]:
        return {"tools": [{"googleSearch": {}}]}


ModelName = Literal[
    "gemini/gemini-3-flash-preview",
    "gemini/gemini-2.5-flash",
    "openai/gpt-4o-search-preview",
]

DEFAULT_MODEL: ModelName = "gemini/gemini-3-flash-preview"

MODELS: dict[ModelName, BaseLLMModel] = {
    "gemini/gemini-3-flash-preview": GoogleLLMModel(
        "gemini-3-flash-preview", supports_schema_with_search=True
    ),
    "gemini/gemini-2.5-flash": GoogleLLMModel("gemini-2.5-flash"),
    "openai/gpt-4o-search-preview": OpenAILLMModel("gpt-4o-search-preview"),
}


def get_model(model_name: ModelName) -> BaseLLMModel:
    return MODELS[model_name]
