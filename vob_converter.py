#!/usr/bin/env python3
"""
Convert DVD VOB files to compressed MP4 (H.264/AAC) with ffmpeg.

Multi-part titles (VTS_02_1.VOB, VTS_02_2.VOB, ...) are joined into a single
encode per title, so each video becomes one output file.

Usage:
    vob_converter.py                        # all VOBs in the current directory
    vob_converter.py /path/to/vobs          # all VOBs in a directory
    vob_converter.py /input/dir /output/dir # explicit output directory
    vob_converter.py movie.vob              # a single file, output next to it

Encoding settings default to the values in EncodeSettings and can be
overridden from a YAML file (--config, or ./vob-converter.yaml if present).
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, cast

try:
    import yaml
except ImportError as e:
    print("❌ PyYAML is not installed. Install it with:\n   pip install pyyaml")
    raise SystemExit(1) from e

try:
    from rich import box
    from rich.console import Console
    from rich.filesize import decimal
    from rich.markup import escape
    from rich.panel import Panel
    from rich.table import Table
    from rich.traceback import install as install_rich_traceback

    install_rich_traceback(show_locals=False)
except ImportError as e:
    print("❌ rich is not installed. Install it with:\n   pip install rich")
    raise SystemExit(1) from e

from vob_encoder import (
    THEME,
    X264_PRESETS,
    EncodeSettings,
    JobResult,
    JobStatus,
    process_title,
)
from vob_titles import (
    TitleGroup,
    discover_titles,
    group_titles,
    is_media_file,
    single_file_group,
)

DEFAULT_CONFIG = Path("vob-converter.yaml")
DEFAULT_LOG_DIR = Path.home() / ".local" / "share" / "vob-converter"

console = Console(theme=THEME, highlight=False)
logger = logging.getLogger("vob_converter")


# ----------------------------
# Logging
# ----------------------------


def setup_logging(log_dir: Path = DEFAULT_LOG_DIR, verbose: bool = False) -> Path | None:
    """Log to a timestamped file; the console is reserved for the rich UI.

    Returns the log file path, or None if the directory isn't writable.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"vob_converter_{timestamp}.log"

        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            handlers=[
                logging.FileHandler(log_file, encoding="utf-8"),
            ],
        )
        return log_file
    except OSError:
        return None


# ----------------------------
# Config
# ----------------------------


def load_settings(path: Path | None) -> EncodeSettings:
    """Defaults overlaid with the YAML mapping at path (if any)."""
    if path is None:
        return EncodeSettings()
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    if loaded is None:
        return EncodeSettings()
    if not isinstance(loaded, dict):
        raise ValueError("config root must be a mapping")
    raw = cast(dict[str, Any], loaded)

    known = {f.name for f in fields(EncodeSettings)} - {"stub_threshold"}
    unknown = set(raw) - known - {"stub_threshold_mb"}
    if unknown:
        raise ValueError(f"unknown config key(s): {', '.join(sorted(unknown))}")

    overrides: dict[str, Any] = {k: raw[k] for k in known if k in raw}
    for k in ("video_codec", "audio_codec", "preset", "audio_bitrate", "ffmpeg", "ffprobe"):
        if k in overrides:
            overrides[k] = str(overrides[k]).strip()
    if "output_ext" in overrides:
        overrides["output_ext"] = str(overrides["output_ext"]).strip().lstrip(".")
    for k in ("crf", "bar_width"):
        if k in overrides:
            try:
                overrides[k] = int(overrides[k])
            except (TypeError, ValueError) as e:
                raise ValueError(f"{k} must be a number") from e
    if "stub_threshold_mb" in raw:
        try:
            threshold_mb = float(raw["stub_threshold_mb"])
        except (TypeError, ValueError) as e:
            raise ValueError("stub_threshold_mb must be a number") from e
        overrides["stub_threshold"] = int(threshold_mb * 1024 * 1024)

    settings = replace(EncodeSettings(), **overrides)

    if not 0 <= settings.crf <= 51:
        raise ValueError("crf must be between 0 and 51")
    if settings.preset not in X264_PRESETS:
        raise ValueError(f"preset must be one of: {', '.join(X264_PRESETS)}")
    if settings.bar_width <= 0:
        raise ValueError("bar_width must be positive")
    if settings.stub_threshold < 0:
        raise ValueError("stub_threshold_mb must not be negative")
    if not settings.output_ext:
        raise ValueError("output_ext must not be empty")
    return settings


# ----------------------------
# Environment
# ----------------------------


def ffmpeg_available(binary: str) -> bool:
    return shutil.which(binary) is not None


def print_install_help(binary: str) -> None:
    console.print(f"[err]❌ {binary} is not installed (or not on PATH).[/]")
    console.print("Install it with:")
    console.print("  macOS:   brew install ffmpeg")
    console.print("  Ubuntu:  sudo apt install ffmpeg")
    console.print("  Windows: https://ffmpeg.org/download.html")


# ----------------------------
# Run
# ----------------------------


@dataclass
class RunSummary:
    output_dir: Path
    results: list[JobResult] = field(default_factory=list)

    def count(self, status: JobStatus) -> int:
        return sum(1 for r in self.results if r.status is status)


def collect_groups(input_path: Path, settings: EncodeSettings) -> tuple[list[TitleGroup], Path]:
    """Title groups to encode plus the default output directory."""
    if input_path.is_dir():
        return group_titles(input_path, settings.stub_threshold), input_path / "converted"
    if input_path.is_file():
        return [single_file_group(input_path)], input_path.parent
    raise FileNotFoundError(f"'{input_path}' is not a valid file or directory")


def render_header(input_path: Path, output_dir: Path, settings: EncodeSettings, n: int) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("key", style="cyan")
    table.add_column("val")
    table.add_row("Input", str(input_path))
    table.add_row("Output", str(output_dir))
    table.add_row(
        "Settings",
        f"codec={settings.video_codec}, crf={settings.crf}, preset={settings.preset}, "
        f"audio={settings.audio_codec} {settings.audio_bitrate}",
    )

    console.rule("[title]VOB Converter[/]")
    console.print(f"[title]Found {n} video title(s) in: {escape(str(input_path))}[/]")
    console.print(Panel(table, title="🎞  Config", border_style="magenta", box=box.ROUNDED))


def render_group(group: TitleGroup, output: Path) -> None:
    console.print()
    if group.title is None:
        console.print(f"[title]File {escape(group.label)}[/]")
    else:
        console.print(f"[title]Title {group.label}[/]: {len(group.parts)} part(s):")
    for part in group.parts:
        console.print(f"    {part.path.name}  ({part.size_mb} MB)", markup=False)
    console.print(f"  Output:   {output}", markup=False)


def render_summary(summary: RunSummary) -> None:
    table = Table(title="Summary", box=box.SIMPLE_HEAVY)
    table.add_column("Title", style="cyan")
    table.add_column("Status")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    styles = {
        JobStatus.SUCCEEDED: "ok",
        JobStatus.FAILED: "err",
        JobStatus.SKIPPED: "warn",
    }
    for r in summary.results:
        style = styles.get(r.status, "dim")
        done = r.status is JobStatus.SUCCEEDED
        table.add_row(
            escape(r.group.label),
            f"[{style}]{r.status.value}[/]",
            decimal(r.input_size) if done else "-",
            decimal(r.output_size) if done else "-",
        )
    console.print(table)
    console.print(
        f"[ok]✓ {summary.count(JobStatus.SUCCEEDED)} done[/]  "
        f"[warn]{summary.count(JobStatus.SKIPPED)} skipped[/]  "
        f"[err]{summary.count(JobStatus.FAILED)} failed[/]"
    )


def run(
    input_path: str | Path = ".",
    output_path: str | Path | None = None,
    settings: EncodeSettings | None = None,
) -> RunSummary:
    """Encode every title under input_path, one after another."""
    settings = settings or EncodeSettings()
    src = Path(input_path)
    groups, default_out = collect_groups(src, settings)
    output_dir = Path(output_path) if output_path else default_out
    summary = RunSummary(output_dir=output_dir)

    if not groups:
        if src.is_dir() and discover_titles(src):
            console.print(
                f"[warn]Only menu/stub VOBs (under {decimal(settings.stub_threshold)}) "
                f"found in: {escape(str(src))}[/]"
            )
        else:
            console.print(f"[warn]No VTS_XX_Y.VOB files found in: {escape(str(src))}[/]")
        logger.info("nothing to do in %s", src)
        return summary

    output_dir.mkdir(parents=True, exist_ok=True)
    render_header(src, output_dir, settings, len(groups))
    logger.info("%d title(s) in %s -> %s", len(groups), src, output_dir)

    for group in groups:
        output = group.output_path(output_dir, settings.output_ext)
        render_group(group, output)
        summary.results.append(process_title(group, output, settings, console))

    console.rule(style="dim")
    render_summary(summary)
    console.print(f"[ok]All done! Files are in: {escape(str(output_dir))}[/]")
    return summary


# ----------------------------
# Main
# ----------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Convert DVD VOB files (multi-part titles joined) to compressed MP4",
    )
    ap.add_argument(
        "input", nargs="?", default=".", help="VOB directory or single file (default: .)"
    )
    ap.add_argument(
        "output",
        nargs="?",
        default=None,
        help="Output directory (default: <input>/converted, or the file's directory)",
    )
    ap.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"YAML settings file (default: ./{DEFAULT_CONFIG} if present)",
    )
    ap.add_argument(
        "--log-dir",
        type=Path,
        default=DEFAULT_LOG_DIR,
        help=f"Directory for run logs (default: {DEFAULT_LOG_DIR})",
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug-level logging")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    log_file = setup_logging(args.log_dir, args.verbose)
    if log_file:
        console.print(f"[dim]Log: {escape(str(log_file))}[/]")

    config_path = args.config
    if config_path is None and DEFAULT_CONFIG.exists():
        config_path = DEFAULT_CONFIG
    try:
        settings = load_settings(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[err]❌ Bad config: {escape(str(e))}[/]")
        return 1

    if not ffmpeg_available(settings.ffmpeg):
        print_install_help(settings.ffmpeg)
        return 1

    src = Path(args.input)
    if not src.is_dir() and not (src.is_file() and is_media_file(src)):
        console.print(f"[err]❌ '{escape(str(src))}' is not a valid directory or media file.[/]")
        console.print("[dim]Usage: vob_converter.py [input] [output][/]")
        return 1

    try:
        run(src, args.output, settings)
    except KeyboardInterrupt:
        console.print("\n[dim]⏹ Interrupted. Temporary files removed.[/]")
        logger.warning("interrupted by operator")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
