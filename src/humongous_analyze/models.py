"""Pydantic models shared by the parser, the aggregator and the renderers."""

from __future__ import annotations

from typing import Annotated, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

# ============================================================
# TYPE ALIASES & CONSTANTS
# ============================================================

BytesValue: TypeAlias = int
EngineName: TypeAlias = Literal["manual", "regex"]

KB = 1024
MB = 1024 * KB
GB = 1024 * MB

# G1 never picks a region smaller than 1 MB
MIN_G1_REGION_SIZE_BYTES: BytesValue = 1 * MB

# Allocation sizes are unsigned 64-bit in the JVM log
MAX_ALLOCATION_BYTES: BytesValue = 2**64 - 1

PERCENTILE_RANKS: tuple[int, ...] = (50, 75, 90, 99)


def format_region_size(size_bytes: BytesValue) -> str:
    """Format a power-of-two region size as a compact label ('16MB')."""
    if size_bytes >= GB and size_bytes % GB == 0:
        return f"{size_bytes // GB}GB"
    if size_bytes >= MB and size_bytes % MB == 0:
        return f"{size_bytes // MB}MB"
    if size_bytes >= KB and size_bytes % KB == 0:
        return f"{size_bytes // KB}KB"
    return f"{size_bytes}B"


# ============================================================
# LINE CLASSIFICATION
# ============================================================


class Irrelevant(BaseModel):
    """A line that contributes nothing to the analysis."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["irrelevant"] = "irrelevant"


class RegionAnnouncement(BaseModel):
    """A line announcing the G1 heap region size."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["region"] = "region"
    region_size_bytes: BytesValue = Field(gt=0)


class HumongousAllocation(BaseModel):
    """A line recording one humongous allocation request."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["humongous"] = "humongous"
    size_bytes: BytesValue = Field(gt=0)


Classification: TypeAlias = Annotated[
    Irrelevant | RegionAnnouncement | HumongousAllocation, Field(discriminator="kind")
]

IRRELEVANT = Irrelevant()


# ============================================================
# CONFIGURATION
# ============================================================


class AnalyzerSettings(BaseModel):
    """Tunable knobs for a single analysis run."""

    model_config = ConfigDict(frozen=True)

    min_region_size_bytes: BytesValue = Field(default=MIN_G1_REGION_SIZE_BYTES, gt=0)
    engine: EngineName = "manual"


# ============================================================
# REPORT
# ============================================================


class Bucket(BaseModel):
    """One row of the region size histogram.

    ``region_size_bytes`` is ``None`` for the Overflow bucket, which takes
    every allocation larger than the discovered region size.
    """

    model_config = ConfigDict(frozen=True)

    region_size_bytes: BytesValue | None
    max_allocation_bytes: BytesValue
    count: int = Field(default=0, ge=0)

    @property
    def is_overflow(self) -> bool:
        return self.region_size_bytes is None

    @property
    def label(self) -> str:
        """Region size that would hold the bucket's allocations without them being humongous.

        The bucket whose threshold is 16 MB is labelled "32MB".
        """
        if self.region_size_bytes is None:
            return "Overflow"
        return format_region_size(self.region_size_bytes)


class PercentileReport(BaseModel):
    """Nearest-rank percentiles over raw allocation sizes, in bytes."""

    model_config = ConfigDict(frozen=True)

    min: BytesValue
    p50: BytesValue
    p75: BytesValue
    p90: BytesValue
    p99: BytesValue
    max: BytesValue

    def as_rows(self) -> list[tuple[str, BytesValue]]:
        return [
            ("min", self.min),
            ("p50", self.p50),
            ("p75", self.p75),
            ("p90", self.p90),
            ("p99", self.p99),
            ("max", self.max),
        ]


class HumongousReport(BaseModel):
    """Complete result of analysing one GC log."""

    model_config = ConfigDict(frozen=True)

    source: str
    region_size_bytes: BytesValue | None = None
    buckets: list[Bucket] = Field(default_factory=list)
    percentiles: PercentileReport | None = None

    allocation_count: int = 0
    lines_read: int = 0
    region_size_changes: int = 0

    warnings: list[str] = Field(default_factory=list)

    @property
    def has_allocations(self) -> bool:
        return self.allocation_count > 0

    @property
    def region_size_label(self) -> str:
        if self.region_size_bytes is None:
            return "Unknown"
        return format_region_size(self.region_size_bytes)
