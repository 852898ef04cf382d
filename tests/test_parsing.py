import pytest

from conftest import END_OF_GC_REQUEST, UNRELATED_LINES, flags_line, humongous_line
from humongous_analyze.analysis import analyze_lines
from humongous_analyze.models import (
    IRRELEVANT,
    HumongousAllocation,
    Irrelevant,
    RegionAnnouncement,
)
from humongous_analyze.parsing import (
    classify,
    classify_with_regex,
    get_classifier,
    parse_jvm_size_to_bytes,
)

SIXTEEN_MB = 16 * 1024 * 1024

REGION_LINES = [
    flags_line(16777216),
    flags_line("16m"),
    flags_line("16M"),
    flags_line("16384k"),
    "[0.005s][info][gc,heap] Heap region size: 16M",
    "[0.005s][info][gc,heap] Heap region size: 16",
    "[2023-01-10T09:00:00.123+0000][info][gc,init] Heap Region Size: 16M",
    "  region size 16384K, 3 young (49152K), 0 survivors (0K)",
]

MALFORMED_LINES = [
    "allocation request: abc bytes, source: concurrent humongous allocation]",
    "allocation request: 12 34 bytes, source: concurrent humongous allocation]",
    "allocation request: 0 bytes, source: concurrent humongous allocation]",
    "allocation request: 8388624 source: concurrent humongous allocation]",
    "allocation request: -8388624 bytes, source: concurrent humongous allocation]",
    "CommandLine flags: -XX:G1HeapRegionSize= -XX:+UseG1GC",
    "CommandLine flags: -XX:G1HeapRegionSize=16Q -XX:+UseG1GC",
    "CommandLine flags: -XX:G1HeapRegionSize=0 -XX:+UseG1GC",
    "[0.005s][info][gc,heap] Heap region size: lots",
    "  region size 16MiB, 3 young",
]


# ============================================================
# SIZE TOKENS
# ============================================================


@pytest.mark.parametrize(
    "size_text,expected",
    [
        ("16777216", SIXTEEN_MB),
        ("16M", SIXTEEN_MB),
        ("16m", SIXTEEN_MB),
        ("16MB", SIXTEEN_MB),
        ("16384K", SIXTEEN_MB),
        ("16384kb", SIXTEEN_MB),
        ("1G", 1024**3),
        ("512B", 512),
        (" 32M ", 32 * 1024 * 1024),
    ],
)
def test_parse_jvm_size_to_bytes(size_text, expected):
    assert parse_jvm_size_to_bytes(size_text) == expected


def test_parse_jvm_size_uses_default_unit_without_suffix():
    assert parse_jvm_size_to_bytes("16", default_unit="M") == SIXTEEN_MB
    assert parse_jvm_size_to_bytes("16K", default_unit="M") == 16 * 1024


@pytest.mark.parametrize("size_text", ["", "M", "sixteen", "16Q", "16BK", "1.5M", "-16M"])
def test_parse_jvm_size_rejects_bad_tokens(size_text):
    with pytest.raises(ValueError):
        parse_jvm_size_to_bytes(size_text)


# ============================================================
# CLASSIFICATION
# ============================================================


def test_classify_humongous_allocation():
    assert classify(humongous_line(8388624)) == HumongousAllocation(size_bytes=8388624)


def test_classify_strips_line_endings():
    assert classify(humongous_line(44929385) + "\r\n") == HumongousAllocation(
        size_bytes=44929385
    )


@pytest.mark.parametrize("line", REGION_LINES)
def test_region_notations_agree(line):
    assert classify(line) == RegionAnnouncement(region_size_bytes=SIXTEEN_MB)


@pytest.mark.parametrize("line", MALFORMED_LINES)
def test_malformed_marker_lines_are_irrelevant(line):
    assert classify(line) == IRRELEVANT


def test_other_allocation_sources_are_irrelevant():
    assert classify(END_OF_GC_REQUEST) == IRRELEVANT


@pytest.mark.parametrize("line", [*UNRELATED_LINES, "", "\n"])
def test_unrelated_lines_are_irrelevant(line):
    assert isinstance(classify(line), Irrelevant)


@pytest.mark.parametrize(
    "line", [humongous_line(8388609), REGION_LINES[0], UNRELATED_LINES[0], MALFORMED_LINES[0]]
)
def test_classify_is_pure(line):
    assert classify(line) == classify(line)


@pytest.mark.parametrize(
    "line",
    [
        humongous_line(8388609),
        humongous_line(1048577),
        END_OF_GC_REQUEST,
        *REGION_LINES,
        *MALFORMED_LINES,
        *UNRELATED_LINES,
    ],
)
def test_regex_fallback_matches_manual_scanner(line):
    assert classify_with_regex(line) == classify(line)


def test_get_classifier():
    assert get_classifier("manual") is classify
    assert get_classifier("regex") is classify_with_regex
    with pytest.raises(ValueError, match="Unknown classifier engine"):
        get_classifier("pcre")  # type: ignore[arg-type]


OVERSIZED_LINES = [
    humongous_line("9" * 5000),
    humongous_line("1" * 21),
    "CommandLine flags: -XX:G1HeapRegionSize=" + "9" * 5000 + " -XX:+UseG1GC",
    "[0.005s][info][gc,heap] Heap region size: " + "1" * 21 + "M",
]


@pytest.mark.parametrize("line", OVERSIZED_LINES)
@pytest.mark.parametrize("classifier", [classify, classify_with_regex])
def test_oversized_numeric_fields_are_irrelevant(classifier, line):
    assert classifier(line) == IRRELEVANT


def test_twenty_digit_allocation_is_accepted():
    size = 2**64 - 1
    assert classify(humongous_line(size)) == HumongousAllocation(size_bytes=size)
    assert classify_with_regex(humongous_line(size)) == HumongousAllocation(size_bytes=size)


def test_analyze_lines_survives_oversized_allocation():
    report = analyze_lines([flags_line(), *OVERSIZED_LINES, humongous_line(8388609)], "gc.log")

    assert report.allocation_count == 1
    assert report.region_size_bytes == SIXTEEN_MB


@pytest.mark.parametrize("line_ending", ["\n", "\r\n", "  \n"])
def test_region_line_endings(line_ending):
    line = "[0.005s][info][gc,heap] Heap region size: 16M" + line_ending
    assert classify(line) == RegionAnnouncement(region_size_bytes=SIXTEEN_MB)
    assert classify_with_regex(line) == classify(line)
