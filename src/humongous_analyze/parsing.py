"""GC log line classification.

Two lines matter:

- the humongous allocation request printed by JDK 8 with
  ``-XX:+PrintAdaptiveSizePolicy``::

    [G1Ergonomics (Concurrent Cycles) request concurrent cycle initiation,
     reason: occupancy higher than threshold, occupancy: 0 bytes,
     allocation request: 8388624 bytes, threshold: 241591905 bytes (45.00 %),
     source: concurrent humongous allocation]

- a region size announcement, either from the command line flags
  (``-XX:G1HeapRegionSize=16777216``), unified logging
  (``Heap region size: 16M``) or the legacy heap printout
  (``region size 16384K,``).

Numeric fields longer than 20 digits (beyond unsigned 64-bit) are treated as
malformed.

``classify`` scans with ``str.find`` and slicing only. ``classify_with_regex``
produces the same results with compiled patterns and is kept as a slower
fallback.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from humongous_analyze.models import (
    GB,
    IRRELEVANT,
    KB,
    MB,
    Classification,
    EngineName,
    HumongousAllocation,
    RegionAnnouncement,
)

# ============================================================
# MARKERS
# ============================================================

ALLOCATION_MARKER = "allocation request: "
ALLOCATION_UNIT = " bytes,"
HUMONGOUS_SOURCE_SUFFIX = "source: concurrent humongous allocation]"

# (marker, unit assumed when the token carries none), checked in order
REGION_SIZE_MARKERS: tuple[tuple[str, str], ...] = (
    ("-XX:G1HeapRegionSize=", "B"),
    ("Heap region size: ", "M"),
    ("Heap Region Size: ", "M"),
    (" region size ", "B"),
)
REGION_MARKER_GUARD = "egion"

# Sizes are unsigned 64-bit, at most 20 decimal digits
MAX_SIZE_DIGITS = 20

_UNIT_MULTIPLIERS: dict[str, int] = {
    "B": 1,
    "K": KB,
    "KB": KB,
    "M": MB,
    "MB": MB,
    "G": GB,
    "GB": GB,
}
_UNIT_CHARS = "BbKkMmGg"


def parse_jvm_size_to_bytes(size_text: str, default_unit: str = "B") -> int:
    """Convert JVM size notation to bytes.

    Args:
        size_text: Size token such as ``16777216``, ``16M``, ``1024K`` or ``2GB``
        default_unit: Unit applied when the token has no suffix

    Returns:
        Size in bytes

    Raises:
        ValueError: If the token is not a number with a known unit suffix
    """
    size_text = size_text.strip()
    digits = size_text.rstrip(_UNIT_CHARS)
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"Unrecognized size token: {size_text!r}")
    if len(digits) > MAX_SIZE_DIGITS:
        raise ValueError(f"Size token too long: {len(digits)} digits")

    unit = size_text[len(digits) :].upper() or default_unit.upper()
    multiplier = _UNIT_MULTIPLIERS.get(unit)
    if multiplier is None:
        raise ValueError(f"Unsupported size unit: {unit}")
    return int(digits) * multiplier


# ============================================================
# MANUAL SCANNER
# ============================================================


def classify(line: str) -> Classification:
    """Classify one raw log line without regular expressions.

    Irrelevant lines cost two ``str.find`` scans and no copies; the line is
    only sliced once a marker has been found.
    """
    marker_at = line.find(ALLOCATION_MARKER)
    if marker_at != -1:
        return _classify_allocation(line, marker_at + len(ALLOCATION_MARKER))

    # Shared by every region size marker
    if line.find(REGION_MARKER_GUARD) == -1:
        return IRRELEVANT

    for marker, default_unit in REGION_SIZE_MARKERS:
        marker_at = line.find(marker)
        if marker_at != -1:
            return _classify_region_size(line, marker_at + len(marker), default_unit)

    return IRRELEVANT


def _classify_allocation(line: str, start: int) -> Classification:
    # Other allocation request sources (e.g. end of GC) are not humongous
    if not line.rstrip().endswith(HUMONGOUS_SOURCE_SUFFIX):
        return IRRELEVANT

    end = line.find(ALLOCATION_UNIT, start)
    if end == -1 or end - start > MAX_SIZE_DIGITS:
        return IRRELEVANT

    size_text = line[start:end]
    if not (size_text.isascii() and size_text.isdigit()):
        return IRRELEVANT

    size_bytes = int(size_text)
    if size_bytes <= 0:
        return IRRELEVANT
    return HumongousAllocation(size_bytes=size_bytes)


def _classify_region_size(line: str, start: int, default_unit: str) -> Classification:
    end = _token_end(line, start)
    try:
        size_bytes = parse_jvm_size_to_bytes(line[start:end], default_unit)
    except ValueError:
        return IRRELEVANT

    if size_bytes <= 0:
        return IRRELEVANT
    return RegionAnnouncement(region_size_bytes=size_bytes)


def _token_end(line: str, start: int) -> int:
    """Index of the first space or comma after ``start``, or the line length."""
    end = len(line)
    for delimiter in (" ", ","):
        found = line.find(delimiter, start, end)
        if found != -1:
            end = found
    return end


# ============================================================
# REGEX FALLBACK
# ============================================================

ALLOCATION_PATTERN: re.Pattern[str] = re.compile(
    r"allocation request: (?P<size>[0-9]{1,20}) bytes,"
    r".*source: concurrent humongous allocation\]$"
)

REGION_SIZE_PATTERNS: tuple[tuple[str, re.Pattern[str], str], ...] = tuple(
    (
        marker,
        re.compile(re.escape(marker) + r"(?P<value>[0-9]{1,20})(?P<unit>[A-Za-z]*)(?=[ ,]|$)"),
        default_unit,
    )
    for marker, default_unit in REGION_SIZE_MARKERS
)


def classify_with_regex(line: str) -> Classification:
    """Classify one raw log line using regular expressions."""
    line = line.rstrip()

    if ALLOCATION_MARKER in line:
        match = ALLOCATION_PATTERN.search(line)
        if match is None:
            return IRRELEVANT
        size_bytes = int(match.group("size"))
        if size_bytes <= 0:
            return IRRELEVANT
        return HumongousAllocation(size_bytes=size_bytes)

    for marker, pattern, default_unit in REGION_SIZE_PATTERNS:
        if marker in line:
            match = pattern.search(line)
            if match is None:
                return IRRELEVANT
            multiplier = _UNIT_MULTIPLIERS.get(match.group("unit").upper() or default_unit)
            size_bytes = int(match.group("value")) * (multiplier or 0)
            if size_bytes <= 0:
                return IRRELEVANT
            return RegionAnnouncement(region_size_bytes=size_bytes)

    return IRRELEVANT


def get_classifier(engine: EngineName) -> Callable[[str], Classification]:
    """Return the line classifier for the requested engine."""
    if engine == "manual":
        return classify
    if engine == "regex":
        return classify_with_regex
    raise ValueError(f"Unknown classifier engine: {engine}")
