from .config import HarvestConfig, SegmentSpec
from .errors import (
    HarvestCancelled,
    HarvestError,
    LeadParseError,
    QuotaExceeded,
    ServiceFailure,
)
from .export import leads_to_csv, write_leads_csv
from .merge import merge_segment_leads
from .schema import (
    UNKNOWN,
    AggregationResult,
    LeadRecord,
    ProgressEvent,
    SearchRequest,
    SegmentFailure,
)
from .segment import run_segment
from .workflow import aggregate, run_lead_harvest_workflow

__all__ = [
    "aggregate",
    "run_segment",
    "run_lead_harvest_workflow",
    "merge_segment_leads",
    "leads_to_csv",
    "write_leads_csv",
    "HarvestConfig",
    "SegmentSpec",
    "LeadRecord",
    "SearchRequest",
    "AggregationResult",
    "ProgressEvent",
    "SegmentFailure",
    "UNKNOWN",
    "HarvestError",
    "LeadParseError",
    "QuotaExceeded",
    "ServiceFailure",
    "HarvestCancelled",
]
