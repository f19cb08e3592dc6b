from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, TypedDict, TypeVar

from langfuse import LangfuseSpan, get_client


class TraceInit(TypedDict, total=False):
    name: str
    session_id: str | None
    metadata: dict[str, Any] | None


class WithSpanContext(TypedDict, total=False):
    """
    Where a harvest span attaches in Langfuse.

    - `trace_init`: the span opens a new trace (one per CLI search or batch row)
    - `parent_span`: the span nests under a running one (segments under the run)
    """

    parent_span: LangfuseSpan | None
    trace_init: TraceInit | None


T = TypeVar("T")


def trace_context(
    name: str,
    *,
    session_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> WithSpanContext:
    """Span context that starts a new trace for one harvest run."""
    trace_init: TraceInit = {"name": name}
    if session_id is not None:
        trace_init["session_id"] = session_id
    if metadata:
        trace_init["metadata"] = metadata
    return {"trace_init": trace_init}


@dataclass(frozen=True)
class ObservationHandle:
    span: LangfuseSpan
    is_trace_root: bool

    def set_input(self, input: Any) -> None:
        self._record(input=input)

    def set_output(self, output: Any) -> None:
        self._record(output=output)

    def error(self, exc: BaseException) -> None:
        self.span.update(level="ERROR", status_message=f"{type(exc).__name__}: {exc}")

    def finish(self, value: T) -> T:
        self.set_output(value)
        return value

    def _record(self, **fields: Any) -> None:
        # The run span mirrors its input/output onto the trace it opened
        self.span.update(**fields)
        if self.is_trace_root:
            self.span.update_trace(**fields)


@contextmanager
def with_langfuse_span(
    span_name: str,
    span_context: WithSpanContext | None = None,
) -> Iterator[ObservationHandle]:
    """
    Open a Langfuse span for a harvest run or segment.

    Exceptions escaping the block are recorded on the span at ERROR level and
    re-raised. Each asyncio task carries its own current-observation context,
    so segments running in parallel become sibling spans.
    """
    span_context = span_context or {}
    parent_span = span_context.get("parent_span")
    trace_init = span_context.get("trace_init")

    opener = parent_span if parent_span is not None else get_client()
    with opener.start_as_current_observation(name=span_name, as_type="span") as span:
        if trace_init:
            span.update_trace(**trace_init)
        handle = ObservationHandle(span=span, is_trace_root=bool(trace_init))
        try:
            yield handle
        except Exception as e:
            handle.error(e)
            raise
