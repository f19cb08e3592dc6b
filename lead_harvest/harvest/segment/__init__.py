from .main import SegmentOutcome, apply_failure_policy, harvest_segment, run_segment
from .parse import LeadListSchema, parse_lead_array, parse_structured_leads

__all__ = [
    "run_segment",
    "harvest_segment",
    "apply_failure_policy",
    "SegmentOutcome",
    "LeadListSchema",
    "parse_lead_array",
    "parse_structured_leads",
]
