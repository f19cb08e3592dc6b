"""
Pytest configuration for the lead harvest test suite.
"""

import json
import os

# Tracing must be off before the Langfuse client is first created
os.environ.setdefault("LANGFUSE_PUBLIC_KEY", "pk-lf-test")
os.environ.setdefault("LANGFUSE_SECRET_KEY", "sk-lf-test")
os.environ["LANGFUSE_TRACING_ENABLED"] = "false"
# Use litellm's bundled model cost map instead of fetching it over the network
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from lead_harvest.harvest import HarvestConfig
from lead_harvest.infra.llm import CompletionResult


def lead(name, phone="N/A", **fields):
    """Build one raw lead dict as the service would return it."""
    record = {
        "name": name,
        "phone": phone,
        "email": "N/A",
        "website": "N/A",
        "address": "N/A",
        "sourceUrl": "N/A",
    }
    record.update(fields)
    return record


def leads_text(records, prose=True):
    """Wrap a list of raw lead dicts the way a chatty model answers."""
    body = json.dumps(records)
    if prose:
        return f"Here are the businesses I found:\n{body}\nLet me know if you need more."
    return body


class StubExtractionClient:
    """
    Stand-in for LeadExtractionClient.

    `responses` maps a segment label to a list of replies consumed one per call
    (the last one repeats). A reply is response text, a CompletionResult, or an
    exception instance to raise.
    """

    supports_structured_output = False

    def __init__(self, responses=None, default=""):
        self.responses = {
            label: list(replies) if isinstance(replies, list) else [replies]
            for label, replies in (responses or {}).items()
        }
        self.default = default
        self.calls = []

    def calls_for(self, label):
        return [call for call in self.calls if call["label"] == label]

    async def complete(
        self,
        *,
        system_prompt,
        prompt,
        generation_name,
        output_schema=None,
        metadata=None,
        parent_span=None,
    ):
        label = (metadata or {}).get("segment_label", "")
        self.calls.append(
            {"label": label, "prompt": prompt, "output_schema": output_schema}
        )
        replies = self.responses.get(label)
        if not replies:
            reply = self.default
        elif len(replies) > 1:
            reply = replies.pop(0)
        else:
            reply = replies[0]

        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, CompletionResult):
            return reply
        return CompletionResult(text=reply)


@pytest.fixture
def fast_config():
    """Parallel preset with no waiting between retries or phases."""
    return HarvestConfig.parallel(retry_backoff=0, inter_phase_delay=0)


@pytest.fixture
def deep_config():
    return HarvestConfig.deep(retry_backoff=0, inter_phase_delay=0)


@pytest.fixture
def clean_env(monkeypatch):
    for var in list(os.environ):
        if var.startswith("LEAD_HARVEST_"):
            monkeypatch.delenv(var, raising=False)
    return monkeypatch
