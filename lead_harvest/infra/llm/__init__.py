from .errors import RateLimitedError, ServiceCallError, ServiceTimeoutError
from .grounded_completion import (
    CompletionResult,
    GroundingSource,
    LeadExtractionClient,
)
from .registry import DEFAULT_MODEL, ModelName

__all__ = [
    "LeadExtractionClient",
    "CompletionResult",
    "GroundingSource",
    "ModelName",
    "DEFAULT_MODEL",
    "ServiceCallError",
    "RateLimitedError",
    "ServiceTimeoutError",
]
