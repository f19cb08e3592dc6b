from ..config import SegmentSpec

SYSTEM_PROMPT = """
Role:
- You are a B2B lead generation expert with live web search.

Non-negotiable rules:
- Use the search tool. Do not answer from memory.
- Extract EVERY matching business contact you can find. Do not summarize and do not stop at a top-N list.
- Look for lists, tables and directory entries in the search results.

Target sources:
- Industrial zone member directories (GIDC, MIDC, RIICO, etc.)
- B2B portals (IndiaMART, TradeIndia, ExportersIndia, JustDial)
- Trade association and chamber of commerce member lists
- Government MSME / Udyam registries

Record rules:
- Only include businesses where a PHONE NUMBER is found.
- If multiple numbers exist, pick the primary mobile/WhatsApp number.
- Every record has all six fields. Use "N/A" for a missing value, never omit a field.
- sourceUrl is the page the record was read from.
"""

FREEFORM_OUTPUT_RULES = """
REQUIRED JSON FORMAT (EXTRACT AS MANY AS POSSIBLE):
[
  {
    "name": "Business Name",
    "phone": "Full Phone Number (Mandatory)",
    "email": "Email if available",
    "website": "URL",
    "address": "Full Address",
    "sourceUrl": "Source link"
  }
]

JSON ONLY. No text before or after.
"""

STRUCTURED_OUTPUT_RULES = """
Output:
- Return ONLY a JSON object that matches the output schema: {"leads": [...]}
- No prose, no markdown, no extra keys.
"""


def build_search_query(query: str, segment: SegmentSpec) -> str:
    modifier = segment.modifier.strip()
    return f"{query} {modifier}" if modifier else query


def build_segment_prompt(query: str, segment: SegmentSpec, *, structured: bool) -> str:
    final_query = build_search_query(query, segment)
    output_rules = STRUCTURED_OUTPUT_RULES if structured else FREEFORM_OUTPUT_RULES
    return f"""
# Task
Perform an EXHAUSTIVE extraction for: "{final_query}"

# Search bias
{segment.label}
{output_rules}"""
