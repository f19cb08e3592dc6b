import logging
from typing import Any, Dict, List, Optional, Type

import litellm
from langfuse import LangfuseSpan, get_client
from pydantic import BaseModel

from .errors import (
    RateLimitedError,
    ServiceCallError,
    ServiceTimeoutError,
    looks_like_rate_limit,
)
from .registry import DEFAULT_MODEL, ModelName, get_model

logger = logging.getLogger(__name__)


class GroundingSource(BaseModel):
    title: str
    uri: str


class CompletionResult(BaseModel):
    text: str
    sources: List[GroundingSource] = []


class LeadExtractionClient:
    """
    Search-grounded completion client over LiteLLM, traced as Langfuse generations.

    One instance is created per run (or shared by the caller) and passed into the
    pipeline explicitly. Provider failures are mapped onto RateLimitedError,
    ServiceTimeoutError and ServiceCallError so callers never see LiteLLM types.
    """

    def __init__(
        self,
        model: ModelName = DEFAULT_MODEL,
        *,
        temperature: float = 0.1,
        timeout: Optional[float] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._adapter = get_model(model)

    @property
    def supports_structured_output(self) -> bool:
        return self._adapter.supports_schema_with_search

    async def complete(
        self,
        *,
        system_prompt: Optional[str],
        prompt: str,
        generation_name: str,
        output_schema: Optional[Type[BaseModel]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        parent_span: LangfuseSpan | None = None,
    ) -> CompletionResult:
        """
        Run one grounded completion.

        Args:
            system_prompt: Optional system prompt.
            prompt: User prompt.
            generation_name: Name of the Langfuse generation.
            output_schema: Pydantic model for schema-constrained output. When None
                the model answers in free text.
            metadata: Optional metadata for the Langfuse generation.
            parent_span: Span to nest the generation under.

        Returns:
            CompletionResult with the raw text and the grounding sources.
        """
        if metadata is None:
            metadata = {}
        if output_schema is not None:
            metadata["output_schema"] = output_schema.model_json_schema()

        starter = parent_span if parent_span is not None else get_client()
        with starter.start_as_current_observation(
            name=generation_name,
            as_type="generation",
            model=self._adapter.get_langfuse_model_name(),
            model_parameters={"temperature": self.temperature},
            input={
                "system": system_prompt,
                "prompt": prompt,
            },
            metadata=metadata,
        ) as generation:
            try:
                messages = []
                if system_prompt:
                    messages.append({"role": "system", "content": system_prompt})
                messages.append({"role": "user", "content": prompt})

                kwargs: Dict[str, Any] = dict(self._adapter.get_search_params())
                if output_schema is not None:
                    kwargs["response_format"] = output_schema
                if self.timeout is not None:
                    kwargs["timeout"] = self.timeout

                response = await litellm.acompletion(
                    model=self._adapter.get_litellm_model_name(),
                    messages=messages,
                    temperature=self.temperature,
                    drop_params=True,
                    **kwargs,
                )

                if hasattr(response, "usage"):
                    usage = response.usage
                    generation.update(
                        usage_details={
                            "input": getattr(usage, "prompt_tokens", 0),
                            "output": getattr(usage, "completion_tokens", 0),
                            "total": getattr(usage, "total_tokens", 0),
                        }
                    )

                content = response.choices[0].message.content or ""
                result = CompletionResult(
                    text=content, sources=_extract_sources(response)
                )
                generation.update(
                    output={"text": content, "num_sources": len(result.sources)}
                )
                return result

            except litellm.RateLimitError as e:
                generation.update(status_message=str(e), level="ERROR")
                raise RateLimitedError(str(e)) from e
            except litellm.Timeout as e:
                generation.update(status_message=str(e), level="ERROR")
                raise ServiceTimeoutError(str(e)) from e
            except Exception as e:
                generation.update(status_message=str(e), level="ERROR")
                message = str(e) or "Search phase failed."
                if looks_like_rate_limit(message):
                    raise RateLimitedError(message) from e
                raise ServiceCallError(message) from e


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _extract_sources(response: Any) -> List[GroundingSource]:
    """Collect cited web pages from Gemini grounding metadata or OpenAI annotations."""
    sources: List[GroundingSource] = []

    hidden_params = getattr(response, "_hidden_params", None) or {}
    grounding = hidden_params.get("vertex_ai_grounding_metadata") or []
    if isinstance(grounding, dict):
        grounding = [grounding]
    for item in grounding:
        for chunk in _get(item, "groundingChunks") or []:
            web = _get(chunk, "web") or {}
            uri = _get(web, "uri") or ""
            if uri:
                sources.append(
                    GroundingSource(
                        title=_get(web, "title") or "Registry Source", uri=uri
                    )
                )

    try:
        message = response.choices[0].message
    except (AttributeError, IndexError):
        return sources
    for annotation in _get(message, "annotations") or []:
        citation = _get(annotation, "url_citation") or {}
        uri = _get(citation, "url") or ""
        if uri:
            sources.append(
                GroundingSource(title=_get(citation, "title") or uri, uri=uri)
            )

    return sources
