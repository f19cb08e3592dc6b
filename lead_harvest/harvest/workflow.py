import asyncio
import logging
from typing import Callable, Dict, List, Optional

from langfuse import LangfuseSpan

from lead_harvest.infra.langfuse_observation import WithSpanContext, with_langfuse_span
from lead_harvest.infra.llm import LeadExtractionClient

from .config import HarvestConfig, SegmentSpec
from .errors import HarvestCancelled
from .merge import merge_segment_leads, merge_sources
from .schema import AggregationResult, ProgressEvent, SearchRequest
from .segment import SegmentOutcome, apply_failure_policy, harvest_segment

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

_sleep = asyncio.sleep


async def aggregate(
    client: LeadExtractionClient,
    request: SearchRequest | str,
    config: HarvestConfig,
    *,
    on_progress: ProgressCallback | None = None,
    cancel_event: asyncio.Event | None = None,
    span_context: WithSpanContext | None = None,
) -> AggregationResult:
    """
    Run every segment for a query and merge the results.

    Args:
        client (LeadExtractionClient): extraction service client
        request (SearchRequest | str): query, optionally with its own modifiers
        config (HarvestConfig): segments, concurrency mode, retry and failure policy
        on_progress: called with a ProgressEvent at every phase boundary
        cancel_event: when set, the run stops at the next phase boundary

    Returns:
        AggregationResult: deduplicated leads; zero leads is a valid result

    Raises:
        QuotaExceeded / ServiceFailure: only with failure_policy="fail_run"
        HarvestCancelled: cancel_event was set during the run
    """
    if isinstance(request, str):
        request = SearchRequest(query=request)
    segments = _segments_for(request, config)

    with with_langfuse_span(
        span_name="aggregate_leads",
        span_context=span_context,
    ) as obs:
        obs.set_input(
            {
                "query": request.query,
                "segments": [segment.label for segment in segments],
                "mode": config.concurrency_mode,
                "failure_policy": config.failure_policy,
            }
        )
        runner = _Runner(
            client=client,
            query=request.query,
            segments=segments,
            config=config,
            on_progress=on_progress,
            cancel_event=cancel_event,
            parent_span=obs.span,
        )
        if config.concurrency_mode == "parallel":
            outcomes = await runner.run_parallel()
        else:
            outcomes = await runner.run_sequential()

        result = _build_result(request.query, outcomes, config)
        logger.info(f"Harvest finished for '{request.query}': {result.summary}")
        return obs.finish(result)


def run_lead_harvest_workflow(
    query: SearchRequest | str,
    config: Optional[HarvestConfig] = None,
    *,
    client: Optional[LeadExtractionClient] = None,
    on_progress: ProgressCallback | None = None,
    span_context: WithSpanContext | None = None,
) -> AggregationResult:
    """
    Lead Harvest Workflow entry point for synchronous callers (CLI, batch).

    Builds the client from the config when none is given and runs `aggregate`
    in a fresh event loop.
    """
    if config is None:
        config = HarvestConfig.from_env()
    if client is None:
        client = LeadExtractionClient(
            config.model,
            temperature=config.temperature,
            timeout=config.call_timeout,
        )
    return asyncio.run(
        aggregate(
            client,
            query,
            config,
            on_progress=on_progress,
            span_context=span_context,
        )
    )


class _Runner:
    def __init__(
        self,
        *,
        client: LeadExtractionClient,
        query: str,
        segments: List[SegmentSpec],
        config: HarvestConfig,
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
        parent_span: LangfuseSpan | None,
    ):
        self.client = client
        self.query = query
        self.segments = segments
        self.config = config
        self.on_progress = on_progress
        self.cancel_event = cancel_event
        self.parent_span = parent_span
        self._completed: Dict[int, SegmentOutcome] = {}

    async def run_sequential(self) -> List[SegmentOutcome]:
        outcomes: List[SegmentOutcome] = []
        last_index = len(self.segments) - 1
        for index, segment in enumerate(self.segments):
            self._check_cancelled()
            self._emit_started(index, segment)
            outcome = await self._harvest(index, segment)
            apply_failure_policy(outcome, self.config.failure_policy)
            outcomes.append(outcome)
            if index < last_index and self.config.inter_phase_delay > 0:
                await self._pause(self.config.inter_phase_delay)
        return outcomes

    async def run_parallel(self) -> List[SegmentOutcome]:
        self._check_cancelled()
        for index, segment in enumerate(self.segments):
            self._emit_started(index, segment)

        tasks = [
            asyncio.create_task(self._harvest(index, segment))
            for index, segment in enumerate(self.segments)
        ]
        gathered = asyncio.gather(*tasks, return_exceptions=True)

        if self.cancel_event is not None:
            waiter = asyncio.create_task(self.cancel_event.wait())
            await asyncio.wait({gathered, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if not gathered.done():
                for task in tasks:
                    task.cancel()
                await gathered
                raise HarvestCancelled("harvest cancelled while segments were running")
            waiter.cancel()

        results = await gathered
        outcomes: List[SegmentOutcome] = []
        for result in results:
            if isinstance(result, BaseException):
                raise result
            outcomes.append(result)

        # All segments have settled; the policy is applied in segment order
        for outcome in outcomes:
            apply_failure_policy(outcome, self.config.failure_policy)
        return outcomes

    async def _harvest(self, index: int, segment: SegmentSpec) -> SegmentOutcome:
        outcome = await harvest_segment(
            self.client,
            self.query,
            segment,
            self.config,
            parent_span=self.parent_span,
        )
        self._completed[index] = outcome
        running_total = len(
            merge_segment_leads(
                [self._completed[i].leads for i in sorted(self._completed)],
                phone_required=self.config.phone_required,
            )
        )
        logger.info(
            "Phase %d/%d (%s) done: %d leads so far",
            index + 1,
            len(self.segments),
            segment.label,
            running_total,
        )
        self._emit(
            ProgressEvent(
                kind="phase_completed",
                phase_index=index + 1,
                phase_count=len(self.segments),
                label=segment.label,
                running_total=running_total,
            )
        )
        return outcome

    async def _pause(self, delay: float) -> None:
        if self.cancel_event is None:
            await _sleep(delay)
            return
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise HarvestCancelled("harvest cancelled between phases")

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise HarvestCancelled("harvest cancelled before the next phase")

    def _emit_started(self, index: int, segment: SegmentSpec) -> None:
        logger.info(
            "Phase %d/%d started: %s", index + 1, len(self.segments), segment.label
        )
        self._emit(
            ProgressEvent(
                kind="phase_started",
                phase_index=index + 1,
                phase_count=len(self.segments),
                label=segment.label,
            )
        )

    def _emit(self, event: ProgressEvent) -> None:
        if self.on_progress is not None:
            self.on_progress(event)


def _segments_for(request: SearchRequest, config: HarvestConfig) -> List[SegmentSpec]:
    if request.modifiers:
        return [
            SegmentSpec(label=modifier, modifier=modifier)
            for modifier in request.modifiers
        ]
    return list(config.segments)


def _build_result(
    query: str, outcomes: List[SegmentOutcome], config: HarvestConfig
) -> AggregationResult:
    leads = merge_segment_leads(
        [outcome.leads for outcome in outcomes],
        phone_required=config.phone_required,
    )
    failures = [outcome.failure for outcome in outcomes if outcome.failure]
    succeeded = len(outcomes) - len(failures)
    return AggregationResult(
        query=query,
        leads=leads,
        summary=f"{len(leads)} leads from {succeeded}/{len(outcomes)} segments",
        sources=merge_sources([outcome.sources for outcome in outcomes]),
        failures=failures,
    )
