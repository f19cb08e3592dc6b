import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from langfuse import LangfuseSpan
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from lead_harvest.infra.langfuse_observation import with_langfuse_span
from lead_harvest.infra.llm import (
    CompletionResult,
    GroundingSource,
    LeadExtractionClient,
    RateLimitedError,
    ServiceCallError,
    ServiceTimeoutError,
)

from ..config import FailurePolicy, HarvestConfig, SegmentSpec
from ..errors import LeadParseError, QuotaExceeded, ServiceFailure
from ..schema import LeadRecord, SegmentFailure
from .parse import LeadListSchema, parse_lead_array, parse_structured_leads
from .prompt import SYSTEM_PROMPT, build_search_query, build_segment_prompt

logger = logging.getLogger(__name__)


@dataclass
class SegmentOutcome:
    label: str
    leads: List[LeadRecord] = field(default_factory=list)
    sources: List[GroundingSource] = field(default_factory=list)
    failure: Optional[SegmentFailure] = None
    attempts: int = 0
    error: Optional[BaseException] = field(default=None, repr=False)


async def harvest_segment(
    client: LeadExtractionClient,
    query: str,
    segment: SegmentSpec,
    config: HarvestConfig,
    *,
    parent_span: LangfuseSpan | None = None,
) -> SegmentOutcome:
    """
    Run one segment against the extraction service and parse its leads.

    Rate limiting is retried with linear backoff; timeouts and other service
    errors are not. A response that cannot be parsed yields zero leads. Service
    failures are reported on the outcome instead of raised, so the caller can
    apply its failure policy.
    """
    structured = config.structured_output and client.supports_structured_output
    prompt = build_segment_prompt(query, segment, structured=structured)
    outcome = SegmentOutcome(label=segment.label)

    with with_langfuse_span(
        span_name="harvest_segment",
        span_context={"parent_span": parent_span} if parent_span else None,
    ) as obs:
        obs.set_input(
            {
                "label": segment.label,
                "search_query": build_search_query(query, segment),
                "structured": structured,
            }
        )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_retries + 1),
            wait=wait_incrementing(
                start=config.retry_backoff, increment=config.retry_backoff
            ),
            retry=retry_if_exception_type(RateLimitedError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        async def attempt_call() -> CompletionResult:
            outcome.attempts += 1
            return await _complete_with_timeout(
                client,
                prompt=prompt,
                structured=structured,
                config=config,
                segment=segment,
                parent_span=obs.span,
            )

        try:
            completion = await retrying(attempt_call)
        except RateLimitedError as e:
            _record_failure(outcome, "rate_limited", e)
            obs.error(e)
            return outcome
        except ServiceTimeoutError as e:
            _record_failure(outcome, "timeout", e)
            obs.error(e)
            return outcome
        except ServiceCallError as e:
            _record_failure(outcome, "service_error", e)
            obs.error(e)
            return outcome

        outcome.sources = completion.sources
        try:
            if structured:
                outcome.leads = parse_structured_leads(completion.text)
            else:
                outcome.leads = parse_lead_array(completion.text)
        except LeadParseError as e:
            logger.warning(
                f"Segment '{segment.label}' returned no parsable leads: {e}"
            )

        obs.set_output(
            {
                "num_leads": len(outcome.leads),
                "num_sources": len(outcome.sources),
                "attempts": outcome.attempts,
            }
        )
        return outcome


async def run_segment(
    client: LeadExtractionClient,
    query: str,
    segment: SegmentSpec | str,
    config: HarvestConfig,
    *,
    parent_span: LangfuseSpan | None = None,
) -> List[LeadRecord]:
    """
    Run one segment and return its leads under the configured failure policy.

    Args:
        client (LeadExtractionClient): extraction service client
        query (str): base search query
        segment (SegmentSpec | str): segment, or a bare modifier string
        config (HarvestConfig): retry / timeout / policy settings

    Returns:
        List[LeadRecord]: parsed leads; empty on parse failure, and on service
        failure when the policy is "isolated"

    Raises:
        QuotaExceeded: rate limiting persisted through every retry ("fail_run")
        ServiceFailure: any other service failure ("fail_run")
    """
    if isinstance(segment, str):
        segment = SegmentSpec(label=segment or "base query", modifier=segment)
    outcome = await harvest_segment(
        client, query, segment, config, parent_span=parent_span
    )
    return apply_failure_policy(outcome, config.failure_policy)


def apply_failure_policy(
    outcome: SegmentOutcome, policy: FailurePolicy
) -> List[LeadRecord]:
    if outcome.failure is None or policy == "isolated":
        return outcome.leads
    if outcome.failure.kind == "rate_limited":
        raise QuotaExceeded(label=outcome.label) from outcome.error
    raise ServiceFailure(outcome.failure.message, label=outcome.label) from outcome.error


async def _complete_with_timeout(
    client: LeadExtractionClient,
    *,
    prompt: str,
    structured: bool,
    config: HarvestConfig,
    segment: SegmentSpec,
    parent_span: LangfuseSpan | None,
) -> CompletionResult:
    try:
        return await asyncio.wait_for(
            client.complete(
                system_prompt=SYSTEM_PROMPT,
                prompt=prompt,
                generation_name="extract_segment_leads",
                output_schema=LeadListSchema if structured else None,
                metadata={"segment_label": segment.label},
                parent_span=parent_span,
            ),
            timeout=config.call_timeout,
        )
    except asyncio.TimeoutError as e:
        raise ServiceTimeoutError(
            f"no response within {config.call_timeout}s"
        ) from e


def _record_failure(
    outcome: SegmentOutcome, kind: str, error: ServiceCallError
) -> None:
    logger.warning(
        "Segment '%s' failed after %d attempt(s) (%s): %s",
        outcome.label,
        outcome.attempts,
        kind,
        error,
    )
    outcome.failure = SegmentFailure(
        label=outcome.label, kind=kind, message=str(error)  # type: ignore[arg-type]
    )
    outcome.error = error
