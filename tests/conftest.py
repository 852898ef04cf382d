from collections.abc import Callable
from pathlib import Path

import pytest

COMMAND_LINE_FLAGS = (
    "CommandLine flags: -XX:G1HeapRegionSize={region} -XX:InitialHeapSize=2147483648 "
    "-XX:MaxHeapSize=2147483648 -XX:+PrintAdaptiveSizePolicy -XX:+PrintGCDetails -XX:+UseG1GC"
)

HUMONGOUS_REQUEST = (
    "2020-05-18T10:15:32.123+0000: 12.345: [G1Ergonomics (Concurrent Cycles) request "
    "concurrent cycle initiation, reason: occupancy higher than threshold, "
    "occupancy: 1234173952 bytes, allocation request: {size} bytes, "
    "threshold: 966367620 bytes (45.00 %), source: concurrent humongous allocation]"
)

END_OF_GC_REQUEST = (
    "2020-05-18T10:15:33.001+0000: 13.001: [G1Ergonomics (Concurrent Cycles) do not request "
    "concurrent cycle initiation, reason: still doing mixed collections, "
    "occupancy: 1400897536 bytes, allocation request: 0 bytes, "
    "threshold: 966367620 bytes (45.00 %), source: end of GC]"
)

UNRELATED_LINES = [
    "Java HotSpot(TM) 64-Bit Server VM (25.212-b10) for linux-amd64 JRE (1.8.0_212-b10)",
    "Memory: 4k page, physical 16318540k(9128380k free), swap 0k(0k free)",
    "2020-05-18T10:15:31.000+0000: 11.000: [GC pause (G1 Evacuation Pause) (young), "
    "0.0123456 secs]",
    "   [Eden: 24.0M(24.0M)->0.0B(23.0M) Survivors: 0.0B->1024.0K Heap: 24.0M(2048.0M)->"
    "1538.0K(2048.0M)]",
]


def flags_line(region: str | int = 16777216) -> str:
    return COMMAND_LINE_FLAGS.format(region=region)


def humongous_line(size: int | str) -> str:
    return HUMONGOUS_REQUEST.format(size=size)


@pytest.fixture
def make_log(tmp_path: Path) -> Callable[[list[str]], Path]:
    """Write the given lines to a GC log file and return its path."""

    def _make_log(lines: list[str], name: str = "gc.log") -> Path:
        log_file = tmp_path / name
        log_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return log_file

    return _make_log


@pytest.fixture
def scenario_lines() -> list[str]:
    """16 MB region with allocations landing in the 32MB and Overflow buckets."""
    return [
        *UNRELATED_LINES[:2],
        flags_line(16777216),
        UNRELATED_LINES[2],
        humongous_line(8388609),
        UNRELATED_LINES[3],
        humongous_line(16777216),
        END_OF_GC_REQUEST,
        humongous_line(44929385),
    ]
