import os
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from lead_harvest.infra.llm import DEFAULT_MODEL, ModelName

ConcurrencyMode = Literal["parallel", "sequential"]
FailurePolicy = Literal["isolated", "fail_run"]
Preset = Literal["parallel", "deep", "single"]


class SegmentSpec(BaseModel):
    label: str
    modifier: str = Field("", description="Appended to the query; empty = base query")


BASE_QUERY_SEGMENT = SegmentSpec(label="base query", modifier="")

PARALLEL_SEGMENTS: List[SegmentSpec] = [
    SegmentSpec(
        label="major directories",
        modifier="site listings from IndiaMART, JustDial, TradeIndia, ExportersIndia with phone numbers",
    ),
    SegmentSpec(
        label="local sub-areas",
        modifier="across local sub-areas, industrial estates and neighbourhood listings with contact numbers",
    ),
    SegmentSpec(
        label="niche associations",
        modifier="trade association and chamber of commerce member directories with phone",
    ),
]

DEEP_PHASE_SEGMENTS: List[SegmentSpec] = [BASE_QUERY_SEGMENT, *PARALLEL_SEGMENTS]


class HarvestConfig(BaseModel):
    segments: List[SegmentSpec] = Field(
        default_factory=lambda: list(PARALLEL_SEGMENTS), min_length=1
    )
    concurrency_mode: ConcurrencyMode = "parallel"
    inter_phase_delay: float = Field(2.0, ge=0)
    max_retries: int = Field(2, ge=0)
    retry_backoff: float = Field(5.0, ge=0)
    call_timeout: Optional[float] = Field(120.0, gt=0)
    failure_policy: FailurePolicy = "isolated"
    phone_required: bool = True
    model: ModelName = DEFAULT_MODEL
    temperature: float = 0.1
    structured_output: bool = False

    @classmethod
    def parallel(cls, **overrides) -> "HarvestConfig":
        """Three concurrent segments, failures isolated per segment."""
        return cls(
            **{
                "segments": list(PARALLEL_SEGMENTS),
                "concurrency_mode": "parallel",
                **overrides,
            }
        )

    @classmethod
    def deep(cls, **overrides) -> "HarvestConfig":
        """Four sequential phases with a pause between them."""
        return cls(
            **{
                "segments": list(DEEP_PHASE_SEGMENTS),
                "concurrency_mode": "sequential",
                "inter_phase_delay": 2.0,
                **overrides,
            }
        )

    @classmethod
    def single(cls, **overrides) -> "HarvestConfig":
        """One unmodified call; quota exhaustion is reported to the caller."""
        return cls(
            **{
                "segments": [BASE_QUERY_SEGMENT],
                "concurrency_mode": "sequential",
                "max_retries": 1,
                "retry_backoff": 10.0,
                "failure_policy": "fail_run",
                **overrides,
            }
        )

    @classmethod
    def from_env(cls, preset: Optional[Preset] = None) -> "HarvestConfig":
        """
        Build a config from a preset plus LEAD_HARVEST_* environment overrides.

        Note:
            - LEAD_HARVEST_MODE picks the preset when none is given (default: parallel)
            - Unset variables keep the preset's values
        """
        preset = preset or os.environ.get("LEAD_HARVEST_MODE", "parallel")  # type: ignore[assignment]
        factories = {"parallel": cls.parallel, "deep": cls.deep, "single": cls.single}
        if preset not in factories:
            raise ValueError(f"Unknown LEAD_HARVEST_MODE: {preset}")

        env_fields = {
            "LEAD_HARVEST_MODEL": "model",
            "LEAD_HARVEST_CALL_TIMEOUT": "call_timeout",
            "LEAD_HARVEST_MAX_RETRIES": "max_retries",
            "LEAD_HARVEST_RETRY_BACKOFF": "retry_backoff",
            "LEAD_HARVEST_INTER_PHASE_DELAY": "inter_phase_delay",
            "LEAD_HARVEST_FAILURE_POLICY": "failure_policy",
            "LEAD_HARVEST_PHONE_REQUIRED": "phone_required",
            "LEAD_HARVEST_STRUCTURED_OUTPUT": "structured_output",
        }
        overrides = {
            field: os.environ[var] for var, field in env_fields.items() if var in os.environ
        }
        # pydantic coerces the string values ("3", "false", "1.5") on validation
        return factories[preset](**overrides)
