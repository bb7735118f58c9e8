"""
Run one ffmpeg encode per title and report how it went.

Multi-part titles go through ffmpeg's concat demuxer so the whole title is a
single continuous encode producing one output file. Progress is read from
ffmpeg's stdout while it runs; its stderr goes to a per-job log that is only
shown when the encode fails.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.filesize import decimal
from rich.markup import escape
from rich.theme import Theme

from ffmpeg_progress import BAR_WIDTH, ProgressParser, ProgressRenderer, format_duration
from vob_titles import STUB_THRESHOLD, TitleGroup

logger = logging.getLogger(__name__)

X264_PRESETS = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
    "placebo",
)
LOG_TAIL_LINES = 5

THEME = Theme(
    {
        "title": "bold cyan",
        "ok": "bold green",
        "warn": "bold yellow",
        "err": "bold red",
        "dim": "dim",
    }
)

PathNormalizer = Callable[[Path], str]


@dataclass(frozen=True)
class EncodeSettings:
    video_codec: str = "libx264"  # libx265 is ~40% smaller but much slower
    audio_codec: str = "aac"
    crf: int = 23  # 18 near-lossless, 28 smaller/lower quality
    preset: str = "medium"
    audio_bitrate: str = "128k"
    output_ext: str = "mp4"
    bar_width: int = BAR_WIDTH
    stub_threshold: int = STUB_THRESHOLD
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class JobResult:
    group: TitleGroup
    output: Path
    status: JobStatus = JobStatus.PENDING
    total_seconds: int = 0
    returncode: int | None = None
    input_size: int = 0
    output_size: int = 0
    encode_seconds: int = 0
    log_tail: list[str] = field(default_factory=list)


# ----------------------------
# Duration probe
# ----------------------------


def probe_duration(path: Path, ffprobe: str = "ffprobe") -> int:
    """Container duration in whole seconds; 0 when ffprobe can't tell."""
    cmd = [
        ffprobe,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        logger.debug("ffprobe failed for %s: %s", path, e)
        return 0
    raw = (r.stdout or "").strip()
    if r.returncode != 0 or not raw or raw == "N/A":
        logger.debug("no duration for %s (rc=%s, out=%r)", path, r.returncode, raw)
        return 0
    try:
        secs = int(float(raw.splitlines()[0]))
    except ValueError:
        logger.debug("unparsable duration for %s: %r", path, raw)
        return 0
    return max(secs, 0)


def total_duration(paths: Sequence[Path], ffprobe: str = "ffprobe") -> int:
    return sum(probe_duration(p, ffprobe) for p in paths)


# ----------------------------
# Concat manifest + path translation
# ----------------------------


def identity_path(path: Path) -> str:
    return str(path)


def cygpath_path(path: Path) -> str:
    """Windows-style path for a native ffmpeg.exe run from Git Bash/MSYS."""
    r = subprocess.run(["cygpath", "-w", str(path)], capture_output=True, text=True, check=False)
    out = r.stdout.strip()
    return out if r.returncode == 0 and out else str(path)


def pick_path_normalizer() -> PathNormalizer:
    if shutil.which("cygpath"):
        return cygpath_path
    return identity_path


def _quote_concat(path: str) -> str:
    return "'" + path.replace("'", "'\\''") + "'"


def write_concat_manifest(
    parts: Sequence[Path], manifest: Path, normalize: PathNormalizer = identity_path
) -> None:
    """One `file '...'` line per part, in playback order. Overwrites stale manifests."""
    lines = [f"file {_quote_concat(normalize(p))}\n" for p in parts]
    manifest.write_text("".join(lines), encoding="utf-8")


# ----------------------------
# Job artifacts
# ----------------------------


@dataclass(frozen=True)
class JobArtifacts:
    """Temporary files named after the output so jobs never collide."""

    manifest: Path
    log: Path
    # Never written; the exit status comes from Popen.wait(). Only removed if stale.
    exit_marker: Path

    @classmethod
    def for_output(cls, output: Path) -> JobArtifacts:
        base = output.with_suffix("")
        return cls(
            manifest=base.with_name(f"{base.name}._concat.txt"),
            log=base.with_name(f"{base.name}._log.txt"),
            exit_marker=base.with_name(f"{base.name}._exit.txt"),
        )

    def all(self) -> tuple[Path, ...]:
        return (self.manifest, self.log, self.exit_marker)

    def cleanup(self) -> None:
        for p in self.all():
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("could not remove %s: %s", p, e)


def log_tail(path: Path, lines: int = LOG_TAIL_LINES) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    return [ln for ln in text.splitlines() if ln.strip()][-lines:]


# ----------------------------
# Command building
# ----------------------------


def input_args_for(
    group: TitleGroup, artifacts: JobArtifacts, normalize: PathNormalizer = identity_path
) -> list[str]:
    if not group.is_multipart:
        return ["-i", str(group.parts[0].path)]
    write_concat_manifest([p.path for p in group.parts], artifacts.manifest, normalize)
    return ["-f", "concat", "-safe", "0", "-i", normalize(artifacts.manifest)]


def build_ffmpeg_cmd(settings: EncodeSettings, input_args: list[str], output: Path) -> list[str]:
    return [
        settings.ffmpeg,
        *input_args,
        "-c:v",
        settings.video_codec,
        "-crf",
        str(settings.crf),
        "-preset",
        settings.preset,
        "-c:a",
        settings.audio_codec,
        "-b:a",
        settings.audio_bitrate,
        "-movflags",
        "+faststart",
        "-progress",
        "pipe:1",
        "-nostats",
        "-y",
        str(output),
    ]


# ----------------------------
# Encode
# ----------------------------


def _discard_partial(output: Path) -> None:
    # A half-written output would make the next run skip this title.
    try:
        output.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("could not remove partial output %s: %s", output, e)


def _stream_progress(
    proc: subprocess.Popen[str], parser: ProgressParser, renderer: ProgressRenderer
) -> None:
    if proc.stdout is None:
        return
    with proc.stdout:
        for line in proc.stdout:
            if parser.feed(line):
                renderer.update(parser.state)


def encode_title(
    group: TitleGroup,
    output: Path,
    total_seconds: int,
    settings: EncodeSettings,
    console: Console,
    normalize: PathNormalizer | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> JobResult:
    """Encode one title to output, drawing progress; temp files never outlive the call."""
    result = JobResult(group=group, output=output, total_seconds=total_seconds)
    artifacts = JobArtifacts.for_output(output)
    normalize = normalize or pick_path_normalizer()
    parser = ProgressParser(total_seconds)
    renderer = ProgressRenderer(console, total_seconds, settings.bar_width, clock=clock)

    console.print(f"  Started:  {datetime.now():%H:%M:%S}")
    console.print()
    started = clock()

    try:
        try:
            cmd = build_ffmpeg_cmd(settings, input_args_for(group, artifacts, normalize), output)
            log_fh = open(artifacts.log, "w", encoding="utf-8")
        except OSError as e:
            result.status = JobStatus.FAILED
            result.log_tail = [str(e)]
            console.print(f"[err]  ✗ Failed: {escape(output.name)} (could not prepare job)[/]")
            console.print(f"    {e}", markup=False, highlight=False)
            console.print()
            logger.error("encode %s: job setup failed: %s", group.label, e)
            return result

        logger.info("encode %s: %s", group.label, " ".join(cmd))
        result.status = JobStatus.RUNNING

        proc: subprocess.Popen[str] | None
        with log_fh:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=log_fh,
                    stdin=subprocess.DEVNULL,
                    text=True,
                    errors="replace",
                    bufsize=1,
                )
            except OSError as e:
                log_fh.write(f"{e}\n")
                proc = None

            if proc is not None:
                renderer.start()
                try:
                    _stream_progress(proc, parser, renderer)
                    result.returncode = proc.wait()
                except BaseException:
                    renderer.abort()
                    proc.terminate()
                    proc.wait()
                    _discard_partial(output)
                    raise
                renderer.finish()
            else:
                result.returncode = 127

        result.encode_seconds = int(clock() - started)
        console.print(
            f"  Ended:    {datetime.now():%H:%M:%S}  |  "
            f"Encode time: [bold]{format_duration(result.encode_seconds)}[/]"
        )

        if result.returncode == 0:
            result.status = JobStatus.SUCCEEDED
            result.input_size = group.total_size
            result.output_size = output.stat().st_size if output.exists() else 0
            console.print(
                f"[ok]  ✓ Done: Input: {decimal(result.input_size)}  →  "
                f"Output: {decimal(result.output_size)}[/]"
            )
            logger.info("encode %s succeeded -> %s", group.label, output)
        else:
            result.status = JobStatus.FAILED
            result.log_tail = log_tail(artifacts.log)
            _discard_partial(output)
            console.print(f"[err]  ✗ Failed: {escape(output.name)} (exit {result.returncode})[/]")
            console.print("[err]  Last ffmpeg output:[/]")
            for ln in result.log_tail:
                console.print(f"    {ln}", markup=False, highlight=False)
            logger.error(
                "encode %s failed with exit %s: %s",
                group.label,
                result.returncode,
                " | ".join(result.log_tail),
            )
    finally:
        artifacts.cleanup()

    console.print()
    return result


def process_title(
    group: TitleGroup,
    output: Path,
    settings: EncodeSettings,
    console: Console,
    normalize: PathNormalizer | None = None,
) -> JobResult:
    """Skip existing outputs, probe the title's duration, then encode it."""
    if output.exists():
        console.print("[warn]  Skipping (output already exists)[/]")
        console.print()
        logger.info("skip %s: %s exists", group.label, output)
        return JobResult(group=group, output=output, status=JobStatus.SKIPPED)

    total = total_duration([p.path for p in group.parts], settings.ffprobe)
    if total > 0:
        console.print(f"  Duration: {format_duration(total)}")
    else:
        console.print("[warn]  Duration: unknown (progress will show position only)[/]")
    return encode_title(group, output, total, settings, console, normalize)
