class ServiceCallError(Exception):
    """The extraction service call failed for a reason other than rate limiting."""


class RateLimitedError(ServiceCallError):
    """The provider answered with a rate-limit / quota-exhausted signal (retryable)."""


class ServiceTimeoutError(ServiceCallError):
    """The call did not finish within the configured timeout."""


_QUOTA_MARKERS = ("429", "RESOURCE_EXHAUSTED")


def looks_like_rate_limit(message: str) -> bool:
    return any(marker in message for marker in _QUOTA_MARKERS)
