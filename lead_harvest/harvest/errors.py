QUOTA_GUIDANCE = (
    "Multi-phase scan requires more API capacity. "
    "Please use a personal API key or a higher quota tier."
)


class HarvestError(Exception):
    """Base class for lead harvest failures."""


class LeadParseError(HarvestError):
    """The service response did not contain a decodable lead list."""


class QuotaExceeded(HarvestError):
    def __init__(self, message: str = QUOTA_GUIDANCE, *, label: str = ""):
        super().__init__(f"QUOTA_EXHAUSTED: {message}")
        self.label = label


class ServiceFailure(HarvestError):
    def __init__(self, message: str, *, label: str = ""):
        super().__init__(message)
        self.label = label


class HarvestCancelled(HarvestError):
    """The run was cancelled at a phase boundary."""
