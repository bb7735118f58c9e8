"""
Parse ffmpeg's `-progress pipe:1` stream and draw a live progress bar.

ffmpeg emits blocks of key=value lines, each block closed by
`progress=continue` (or `progress=end` for the last one). Only the keys the
bar needs are tracked; the rest are ignored.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console
from rich.live import Live
from rich.text import Text

BAR_WIDTH = 38
FPS_UNKNOWN = "--"
SPEED_UNKNOWN = "?"
ETA_UNKNOWN = "--"


# ----------------------------
# Formatting helpers
# ----------------------------


def parse_clock(value: str) -> int | None:
    """HH:MM:SS[.ffffff] -> whole seconds, or None for N/A, negative or junk."""
    value = value.strip()
    if not value or value == "N/A" or value.startswith("-"):
        return None
    hms = value.split(".", 1)[0].split(":")
    if len(hms) != 3:
        return None
    try:
        h, m, s = (int(x) for x in hms)
    except ValueError:
        return None
    if h < 0 or m < 0 or s < 0:
        return None
    return h * 3600 + m * 60 + s


def format_duration(seconds: int) -> str:
    """Compact duration: '1h 04m 32s', '4m 32s' or '32s'."""
    seconds = max(0, int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}h {m:02d}m {s:02d}s"
    if m > 0:
        return f"{m}m {s:02d}s"
    return f"{s}s"


def draw_bar(percent: int, width: int = BAR_WIDTH) -> str:
    percent = min(max(percent, 0), 100)
    filled = percent * width // 100
    return "█" * filled + "░" * (width - filled)


def estimate_eta(percent: int, elapsed: int) -> str:
    """Linear ETA from wall-clock elapsed; '--' at 0% and 100%."""
    if 0 < percent < 100 and elapsed > 0:
        return format_duration(elapsed * (100 - percent) // percent)
    return ETA_UNKNOWN


# ----------------------------
# Parser
# ----------------------------


@dataclass
class ProgressState:
    position: int = 0
    fps: str = FPS_UNKNOWN
    speed: str = SPEED_UNKNOWN
    percent: int = 0
    finished: bool = False


def _is_zero(value: str) -> bool:
    try:
        return float(value) == 0
    except ValueError:
        return False


class ProgressParser:
    """Accumulates progress fields; `feed` returns True at each sync marker."""

    def __init__(self, total_seconds: int) -> None:
        self.total_seconds = max(0, int(total_seconds))
        self.state = ProgressState()

    def reset(self) -> None:
        self.state = ProgressState()

    def feed(self, line: str) -> bool:
        key, sep, value = line.strip().partition("=")
        if not sep:
            return False
        value = value.strip()

        if key == "out_time":
            secs = parse_clock(value)
            if secs is not None:
                self.state.position = secs
        elif key == "fps":
            self.state.fps = FPS_UNKNOWN if not value or _is_zero(value) else value
        elif key == "speed":
            self.state.speed = SPEED_UNKNOWN if not value or value == "N/A" else value
        elif key == "progress":
            # Without a usable duration the percent stays where it was.
            if self.total_seconds > 0:
                pct = self.state.position * 100 // self.total_seconds
                self.state.percent = min(max(pct, 0), 100)
            if value == "end":
                self.state.finished = True
            return True
        return False


# ----------------------------
# Renderer
# ----------------------------


def render_line(
    state: ProgressState, elapsed: int, width: int = BAR_WIDTH, known_total: bool = True
) -> str:
    eta = estimate_eta(state.percent, elapsed)
    line = (
        f"  [{draw_bar(state.percent, width)}] {state.percent:3d}%  "
        f"fps:{state.fps:<5}  speed:{state.speed:<7}  ETA:{eta:<9}"
    )
    if not known_total:
        line += f"  at {format_duration(state.position)}"
    return line


class ProgressRenderer:
    """Single-line progress bar redrawn in place with rich.live."""

    def __init__(
        self,
        console: Console,
        total_seconds: int,
        width: int = BAR_WIDTH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.console = console
        self.known_total = total_seconds > 0
        self.width = width
        self._clock = clock
        self._started_at = 0.0
        self._live: Live | None = None
        self.last_line = ""

    def elapsed(self) -> int:
        return int(self._clock() - self._started_at)

    def start(self) -> None:
        self._started_at = self._clock()
        self._live = Live(Text(""), console=self.console, auto_refresh=False, transient=False)
        self._live.start()

    def _draw(self, line: str) -> None:
        self.last_line = line
        if self._live is not None:
            self._live.update(Text(line), refresh=True)

    def update(self, state: ProgressState) -> None:
        self._draw(render_line(state, self.elapsed(), self.width, self.known_total))

    def finish(self) -> None:
        """Draw a full bar whatever was parsed last, then release the line."""
        self._draw(f"  [{draw_bar(100, self.width)}] 100%")
        if self._live is not None:
            self._live.stop()
            self._live = None

    def abort(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None
