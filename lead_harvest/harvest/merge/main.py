import logging
from typing import Iterable, List, Sequence

from lead_harvest.infra.llm import GroundingSource

from ..schema import LeadRecord, is_unknown

logger = logging.getLogger(__name__)


def merge_segment_leads(
    segment_leads: Sequence[Sequence[LeadRecord]],
    *,
    phone_required: bool = True,
) -> List[LeadRecord]:
    """
    Merge per-segment lead lists into one deduplicated list.

    - Segments are concatenated in the given (priority) order
    - Leads without a usable phone are dropped when phone_required is set
    - Two leads are the same business if their trimmed, lowercased names match
      or their phones match; the first one seen is kept unchanged
    - The phone filter runs before dedup on purpose, so a phone-less listing
      never shadows a later listing of the same business that has a phone

    Args:
        segment_leads: lead lists, one per segment, in segment order
        phone_required: apply the phone-mandatory filter

    Returns:
        List[LeadRecord]: deduplicated leads in first-seen order
    """
    candidates = [lead for leads in segment_leads for lead in leads]
    if phone_required:
        candidates = [lead for lead in candidates if lead.has_phone]
    return dedupe_leads(candidates)


def dedupe_leads(leads: Iterable[LeadRecord]) -> List[LeadRecord]:
    deduped: List[LeadRecord] = []
    seen_names: set[str] = set()
    seen_phones: set[str] = set()

    for lead in leads:
        name_key = _name_key(lead.name)
        phone_key = _phone_key(lead.phone)
        if name_key in seen_names:
            continue
        if phone_key and phone_key in seen_phones:
            continue

        seen_names.add(name_key)
        if phone_key:
            seen_phones.add(phone_key)
        deduped.append(lead)

    return deduped


def merge_sources(
    segment_sources: Sequence[Sequence[GroundingSource]],
) -> List[GroundingSource]:
    merged: List[GroundingSource] = []
    seen_uris: set[str] = set()
    for sources in segment_sources:
        for source in sources:
            if source.uri in seen_uris:
                continue
            seen_uris.add(source.uri)
            merged.append(source)
    return merged


def _name_key(name: str) -> str:
    return name.strip().lower()


def _phone_key(phone: str) -> str:
    return "" if is_unknown(phone) else phone.strip()
