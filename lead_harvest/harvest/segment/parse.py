import json
import logging
import re
from typing import Any, List

from pydantic import BaseModel, Field, ValidationError

from ..errors import LeadParseError
from ..schema import LeadRecord

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()

# Opening of the first array whose first element is an object
_ARRAY_START_PATTERN = re.compile(r"\[\s*\{")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([\]}])")


class LeadItemSchema(BaseModel):
    name: str = Field(..., description="Business name")
    phone: str = Field(..., description='Primary phone number, or "N/A"')
    email: str = Field(..., description='Email address, or "N/A"')
    website: str = Field(..., description='Website URL, or "N/A"')
    address: str = Field(..., description='Full address, or "N/A"')
    sourceUrl: str = Field(..., description="Page the record was read from")


class LeadListSchema(BaseModel):
    """Response schema sent to the provider in structured mode"""

    leads: List[LeadItemSchema]


def parse_lead_array(text: str) -> List[LeadRecord]:
    """
    Decode the first JSON array of lead objects embedded in free text.

    Only the first balanced array is read; anything after it (a sources
    list, a second batch, closing prose) is ignored. A strict decode is tried
    first, then one forgiving repair that strips trailing commas before
    closing brackets inside that array.

    Raises:
        LeadParseError: no array found, or it does not decode after repair.
    """
    text = text or ""
    match = _ARRAY_START_PATTERN.search(text)
    if not match:
        raise LeadParseError("no JSON array found in response")

    start = match.start()
    try:
        data, _ = _DECODER.raw_decode(text, start)
    except json.JSONDecodeError:
        end = _balanced_end(text, start)
        if end is None:
            raise LeadParseError("unterminated JSON array in response")
        sanitized = _TRAILING_COMMA_PATTERN.sub(r"\1", text[start:end])
        try:
            data = json.loads(sanitized)
        except json.JSONDecodeError as e:
            raise LeadParseError(f"JSON parsing error: {e}") from e
        logger.debug("Recovered lead array after stripping trailing commas")

    if not isinstance(data, list):
        raise LeadParseError("decoded JSON is not an array")
    return _validate_items(data)


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the bracket that closes the one at `start`, skipping strings."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def parse_structured_leads(content: str) -> List[LeadRecord]:
    """Decode a {"leads": [...]} object, falling back to the free-text decoder."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return parse_lead_array(content)

    if isinstance(data, dict) and isinstance(data.get("leads"), list):
        return _validate_items(data["leads"])
    if isinstance(data, list):
        return _validate_items(data)
    raise LeadParseError("structured response has no leads array")


def _validate_items(items: List[Any]) -> List[LeadRecord]:
    leads: List[LeadRecord] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            leads.append(LeadRecord.model_validate(item))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.debug("Skipped %d malformed lead entries", skipped)
    return leads
