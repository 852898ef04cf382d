"""Bucketing and percentile engine for humongous allocations."""

from __future__ import annotations

import math
from bisect import bisect_left
from collections.abc import Callable, Iterable
from pathlib import Path

from humongous_analyze.models import (
    MAX_ALLOCATION_BYTES,
    MIN_G1_REGION_SIZE_BYTES,
    AnalyzerSettings,
    Bucket,
    BytesValue,
    Classification,
    HumongousAllocation,
    HumongousReport,
    PercentileReport,
    RegionAnnouncement,
)
from humongous_analyze.parsing import get_classifier

# ============================================================
# BUCKET LADDER
# ============================================================


def build_region_ladder(
    region_size_bytes: BytesValue, min_region_size_bytes: BytesValue = MIN_G1_REGION_SIZE_BYTES
) -> list[BytesValue]:
    """Return the power-of-two region sizes whose 50% threshold fits the region size.

    A region of size ``r`` holds allocations up to ``r // 2`` without treating
    them as humongous. The ladder starts at ``min_region_size_bytes`` and stops
    at the first region size whose threshold would exceed ``region_size_bytes``,
    so the largest threshold is the region size itself for power-of-two values.
    The smallest region size is always present.

    G1 always settles on a power-of-two region size. For any other value the
    largest threshold is the biggest power of two not above it, and Overflow
    starts there: a 3 MB region gives thresholds up to 2 MB, so a 2.5 MB
    allocation counts as Overflow.
    """
    if region_size_bytes <= 0:
        raise ValueError(f"Region size must be positive, got {region_size_bytes}")
    if min_region_size_bytes <= 0:
        raise ValueError(f"Minimum region size must be positive, got {min_region_size_bytes}")

    ladder = [min_region_size_bytes]
    candidate = min_region_size_bytes * 2
    while candidate // 2 <= region_size_bytes:
        ladder.append(candidate)
        candidate *= 2
    return ladder


def assign_bucket(size_bytes: BytesValue, thresholds: list[BytesValue]) -> int:
    """Index of the bucket holding ``size_bytes``.

    ``thresholds`` are the ascending inclusive upper bounds of the finite
    buckets. A size equal to a threshold stays in that bucket; anything above
    the last threshold gets ``len(thresholds)``, the Overflow bucket.
    """
    return bisect_left(thresholds, size_bytes)


# ============================================================
# PERCENTILES
# ============================================================


def nearest_rank(sorted_sizes: list[BytesValue], pct: float) -> BytesValue:
    """Nearest-rank percentile of a pre-sorted, non-empty list."""
    if not sorted_sizes:
        raise ValueError("Cannot compute a percentile of an empty sequence")
    n = len(sorted_sizes)
    index = math.ceil(pct * n / 100) - 1
    index = max(0, min(n - 1, index))
    return sorted_sizes[index]


def compute_percentiles(sorted_sizes: list[BytesValue]) -> PercentileReport:
    """Compute min/p50/p75/p90/p99/max from ascending allocation sizes.

    Raises:
        ValueError: If ``sorted_sizes`` is empty
    """
    if not sorted_sizes:
        raise ValueError("Cannot compute percentiles without allocations")

    return PercentileReport(
        min=sorted_sizes[0],
        p50=nearest_rank(sorted_sizes, 50),
        p75=nearest_rank(sorted_sizes, 75),
        p90=nearest_rank(sorted_sizes, 90),
        p99=nearest_rank(sorted_sizes, 99),
        max=sorted_sizes[-1],
    )


# ============================================================
# AGGREGATOR
# ============================================================


class HumongousAggregator:
    """Accumulates region size announcements and humongous allocations.

    Every allocation size is retained. Bucket counts are derived from the
    current region size; when it changes (or first appears after some
    allocations were already seen) all retained sizes are bucketed again,
    so the final counts do not depend on line order.
    """

    def __init__(self, settings: AnalyzerSettings | None = None) -> None:
        self.settings = settings or AnalyzerSettings()
        self.region_size_bytes: BytesValue | None = None
        self.region_size_changes = 0
        self._sizes: list[BytesValue] = []
        self._ladder: list[BytesValue] = []
        self._thresholds: list[BytesValue] = []
        self._counts: list[int] = []

    @property
    def allocation_count(self) -> int:
        return len(self._sizes)

    @property
    def bucket_counts(self) -> list[int]:
        return list(self._counts)

    def observe(self, classification: Classification) -> None:
        """Route a classifier result to the matching observer."""
        if isinstance(classification, HumongousAllocation):
            self.observe_allocation(classification.size_bytes)
        elif isinstance(classification, RegionAnnouncement):
            self.observe_region_size(classification.region_size_bytes)

    def observe_region_size(self, region_size_bytes: BytesValue) -> None:
        """Set the region size (last one wins) and rebucket everything seen so far."""
        if region_size_bytes == self.region_size_bytes:
            return
        if self.region_size_bytes is not None:
            self.region_size_changes += 1

        self.region_size_bytes = region_size_bytes
        self._ladder = build_region_ladder(
            region_size_bytes, self.settings.min_region_size_bytes
        )
        self._thresholds = [region // 2 for region in self._ladder]
        self._counts = [0] * (len(self._ladder) + 1)
        for size_bytes in self._sizes:
            self._counts[assign_bucket(size_bytes, self._thresholds)] += 1

    def observe_allocation(self, size_bytes: BytesValue) -> None:
        """Record one allocation; bucketing waits until a region size is known."""
        self._sizes.append(size_bytes)
        if self._counts:
            self._counts[assign_bucket(size_bytes, self._thresholds)] += 1

    def buckets(self) -> list[Bucket]:
        """Current bucket table, Overflow last. Empty while no region size is known."""
        if not self._counts:
            return []
        rows = [
            Bucket(region_size_bytes=region, max_allocation_bytes=threshold, count=count)
            for region, threshold, count in zip(self._ladder, self._thresholds, self._counts)
        ]
        rows.append(
            Bucket(
                region_size_bytes=None,
                max_allocation_bytes=MAX_ALLOCATION_BYTES,
                count=self._counts[-1],
            )
        )
        return rows

    def finalize(self, source: str, lines_read: int = 0) -> HumongousReport:
        """Sort the retained sizes and build the immutable report."""
        self._sizes.sort()
        percentiles = compute_percentiles(self._sizes) if self._sizes else None

        return HumongousReport(
            source=source,
            region_size_bytes=self.region_size_bytes,
            buckets=self.buckets(),
            percentiles=percentiles,
            allocation_count=len(self._sizes),
            lines_read=lines_read,
            region_size_changes=self.region_size_changes,
            warnings=self._collect_warnings(),
        )

    def _collect_warnings(self) -> list[str]:
        warnings: list[str] = []

        if self.region_size_bytes is None:
            warnings.append(
                "WARNING: No G1 region size found in the log; bucket table unavailable. "
                "Percentiles are computed from raw allocation sizes only."
            )

        if not self._sizes:
            warnings.append(
                "WARNING: No humongous allocations found. On JDK 8 allocation sizes are only "
                "logged with -XX:+PrintAdaptiveSizePolicy."
            )

        if self.region_size_changes:
            warnings.append(
                f"WARNING: Region size changed {self.region_size_changes} time(s) during the "
                "log; all allocations were bucketed against the last value."
            )

        if self.region_size_bytes is not None and self._sizes:
            half_region = self.region_size_bytes // 2
            not_humongous = bisect_left(self._sizes, half_region + 1)
            if not_humongous:
                warnings.append(
                    f"WARNING: {not_humongous} allocation(s) at or below half the region size "
                    f"({half_region} bytes) are not humongous for the reported region size."
                )

        return warnings


# ============================================================
# DRIVER
# ============================================================


def analyze_lines(
    lines: Iterable[str],
    source: str,
    settings: AnalyzerSettings | None = None,
    classifier: Callable[[str], Classification] | None = None,
) -> HumongousReport:
    """Run a single pass over ``lines`` and return the report."""
    settings = settings or AnalyzerSettings()
    classify_line = classifier or get_classifier(settings.engine)
    aggregator = HumongousAggregator(settings)

    lines_read = 0
    for line in lines:
        lines_read += 1
        aggregator.observe(classify_line(line))

    return aggregator.finalize(source, lines_read=lines_read)


def analyze_file(log_file: Path, settings: AnalyzerSettings | None = None) -> HumongousReport:
    """Analyze one GC log file.

    Raises:
        OSError: If the file cannot be opened or read
    """
    with log_file.open(encoding="utf-8", errors="replace") as f:
        return analyze_lines(f, str(log_file), settings)
