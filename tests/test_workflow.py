"""
Tests for the aggregation workflow across parallel and sequential modes.
"""

import asyncio

import pytest

from conftest import StubExtractionClient, lead, leads_text
from lead_harvest.harvest import (
    HarvestCancelled,
    HarvestConfig,
    QuotaExceeded,
    SearchRequest,
    ServiceFailure,
    aggregate,
    run_lead_harvest_workflow,
)
from lead_harvest.harvest import workflow
from lead_harvest.infra.llm import (
    CompletionResult,
    GroundingSource,
    RateLimitedError,
    ServiceCallError,
)


def numbered(prefix, count, phone_base):
    return [lead(f"{prefix} {i}", str(phone_base + i)) for i in range(count)]


class TestParallelAggregate:
    """Tests for the three-segment parallel mode."""

    def test_partial_failure_tolerance(self, fast_config):
        client = StubExtractionClient(
            {
                "major directories": "The search returned nothing useful.",
                "local sub-areas": leads_text(numbered("Local", 5, 1000)),
                "niche associations": leads_text(numbered("Assoc", 7, 2000)),
            }
        )

        result = asyncio.run(aggregate(client, "IT companies in Ahmedabad", fast_config))

        assert result.count == 12
        assert result.failures == []
        assert [item.name for item in result.leads][:2] == ["Local 0", "Local 1"]

    def test_segment_order_decides_duplicates(self, fast_config):
        client = StubExtractionClient(
            {
                "major directories": leads_text([lead("Acme", "1", email="dir@acme.in")]),
                "local sub-areas": leads_text([lead("acme", "2", email="local@acme.in")]),
                "niche associations": leads_text([lead("Beta", "1")]),
            }
        )

        result = asyncio.run(aggregate(client, "IT companies", fast_config))

        assert [item.email for item in result.leads] == ["dir@acme.in"]

    def test_rate_limited_segment_is_isolated(self, fast_config):
        client = StubExtractionClient(
            {
                "major directories": RateLimitedError("429 RESOURCE_EXHAUSTED"),
                "local sub-areas": leads_text(numbered("Local", 2, 1000)),
                "niche associations": leads_text(numbered("Assoc", 3, 2000)),
            }
        )

        result = asyncio.run(aggregate(client, "IT companies", fast_config))

        assert result.count == 5
        assert len(client.calls_for("major directories")) == 3
        assert [(f.label, f.kind) for f in result.failures] == [
            ("major directories", "rate_limited")
        ]
        assert result.summary == "5 leads from 2/3 segments"

    def test_fail_run_policy_raises_after_all_settle(self, fast_config):
        config = fast_config.model_copy(update={"failure_policy": "fail_run"})
        client = StubExtractionClient(
            {
                "major directories": leads_text(numbered("Dir", 2, 1000)),
                "local sub-areas": RateLimitedError("429"),
                "niche associations": leads_text(numbered("Assoc", 3, 2000)),
            }
        )

        with pytest.raises(QuotaExceeded):
            asyncio.run(aggregate(client, "IT companies", config))

        assert len(client.calls_for("niche associations")) == 1
        assert len(client.calls_for("local sub-areas")) == 3

    def test_zero_results_is_not_an_error(self, fast_config):
        client = StubExtractionClient(default="[]")

        result = asyncio.run(aggregate(client, "xyzzyqqqnonexistent", fast_config))

        assert result.count == 0
        assert result.leads == []
        assert result.failures == []

    def test_progress_events(self, fast_config):
        client = StubExtractionClient(
            {
                "major directories": leads_text(numbered("Dir", 2, 1000)),
                "local sub-areas": leads_text(numbered("Local", 3, 2000)),
                "niche associations": "[]",
            }
        )
        events = []

        asyncio.run(aggregate(client, "IT companies", fast_config, on_progress=events.append))

        started = [e for e in events if e.kind == "phase_started"]
        completed = [e for e in events if e.kind == "phase_completed"]
        assert [e.phase_index for e in started] == [1, 2, 3]
        assert all(e.phase_count == 3 for e in events)
        assert events[:3] == started
        assert len(completed) == 3
        assert max(e.running_total for e in completed) == 5

    def test_sources_are_merged(self, fast_config):
        source = GroundingSource(title="JustDial", uri="https://justdial.com/a")
        client = StubExtractionClient(
            {
                "major directories": CompletionResult(text="[]", sources=[source]),
                "local sub-areas": CompletionResult(text="[]", sources=[source]),
            },
            default="[]",
        )

        result = asyncio.run(aggregate(client, "IT companies", fast_config))

        assert result.sources == [source]

    def test_request_modifiers_replace_segments(self, fast_config):
        client = StubExtractionClient(
            {"GIDC Vatva": leads_text([lead("Acme", "1")])}, default="[]"
        )
        request = SearchRequest(query="Manufacturers", modifiers=["GIDC Vatva", "GIDC Naroda"])

        result = asyncio.run(aggregate(client, request, fast_config))

        assert sorted(call["label"] for call in client.calls) == ["GIDC Naroda", "GIDC Vatva"]
        assert result.count == 1

    def test_cancel_before_start(self, fast_config):
        client = StubExtractionClient(default="[]")

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            await aggregate(client, "IT companies", fast_config, cancel_event=cancel)

        with pytest.raises(HarvestCancelled):
            asyncio.run(scenario())
        assert client.calls == []

    def test_cancel_while_running(self, fast_config):
        started = []

        class HangingClient(StubExtractionClient):
            async def complete(self, **kwargs):
                started.append(kwargs["metadata"]["segment_label"])
                await asyncio.sleep(30)
                return CompletionResult(text="[]")

        async def scenario():
            cancel = asyncio.Event()
            task = asyncio.create_task(
                aggregate(HangingClient(), "IT companies", fast_config, cancel_event=cancel)
            )
            while len(started) < 3:
                await asyncio.sleep(0)
            cancel.set()
            await task

        with pytest.raises(HarvestCancelled):
            asyncio.run(asyncio.wait_for(scenario(), timeout=5))


class TestSequentialAggregate:
    """Tests for the four-phase sequential (deep) mode."""

    def test_phases_run_in_order_with_delays(self, monkeypatch):
        pauses = []

        async def fake_sleep(delay):
            pauses.append(delay)

        monkeypatch.setattr(workflow, "_sleep", fake_sleep)
        config = HarvestConfig.deep(retry_backoff=0, inter_phase_delay=2.0)
        client = StubExtractionClient(
            {
                "base query": leads_text(numbered("Base", 2, 100)),
                "major directories": leads_text(numbered("Dir", 1, 200)),
                "local sub-areas": "[]",
                "niche associations": leads_text([lead("Base 0", "999")]),
            }
        )
        events = []

        result = asyncio.run(aggregate(client, "IT companies", config, on_progress=events.append))

        assert [call["label"] for call in client.calls] == [
            "base query",
            "major directories",
            "local sub-areas",
            "niche associations",
        ]
        assert pauses == [2.0, 2.0, 2.0]
        assert result.count == 3
        assert [(e.kind, e.phase_index) for e in events] == [
            ("phase_started", 1),
            ("phase_completed", 1),
            ("phase_started", 2),
            ("phase_completed", 2),
            ("phase_started", 3),
            ("phase_completed", 3),
            ("phase_started", 4),
            ("phase_completed", 4),
        ]
        assert [e.running_total for e in events if e.kind == "phase_completed"] == [2, 3, 3, 3]

    def test_base_query_phase_is_unmodified(self, deep_config):
        client = StubExtractionClient(default="[]")

        asyncio.run(aggregate(client, "Textile exporters in Surat", deep_config))

        assert '"Textile exporters in Surat"' in client.calls[0]["prompt"]

    def test_fail_run_stops_at_failing_phase(self, deep_config):
        config = deep_config.model_copy(update={"failure_policy": "fail_run"})
        client = StubExtractionClient(
            {"major directories": ServiceCallError("permission denied")}, default="[]"
        )

        with pytest.raises(ServiceFailure, match="permission denied"):
            asyncio.run(aggregate(client, "IT companies", config))

        assert [call["label"] for call in client.calls] == ["base query", "major directories"]

    def test_cancel_during_pause(self):
        config = HarvestConfig.deep(retry_backoff=0, inter_phase_delay=30.0)
        client = StubExtractionClient(default="[]")

        async def scenario():
            cancel = asyncio.Event()

            def on_progress(event):
                if event.kind == "phase_completed":
                    cancel.set()

            await aggregate(
                client, "IT companies", config, on_progress=on_progress, cancel_event=cancel
            )

        with pytest.raises(HarvestCancelled):
            asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        assert len(client.calls) == 1


class TestRunLeadHarvestWorkflow:
    def test_sync_entry_point(self, fast_config):
        client = StubExtractionClient(
            {"major directories": leads_text([lead("Acme", "1"), lead("NoPhone")])},
            default="[]",
        )

        result = run_lead_harvest_workflow("IT companies", fast_config, client=client)

        assert result.query == "IT companies"
        assert [item.name for item in result.leads] == ["Acme"]
        assert result.model_dump()["count"] == 1

    def test_pipeline_is_reusable_after_failure(self, fast_config):
        config = fast_config.model_copy(update={"failure_policy": "fail_run"})
        failing = StubExtractionClient(default=ServiceCallError("boom"))

        with pytest.raises(ServiceFailure):
            run_lead_harvest_workflow("IT companies", config, client=failing)

        healthy = StubExtractionClient(default=leads_text([lead("Acme", "1")]))
        assert run_lead_harvest_workflow("IT companies", config, client=healthy).count == 1
