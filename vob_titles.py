"""
Title discovery for DVD VOB rips.

A DVD title is split across VTS_XX_Y.VOB files, where XX is the title number
and Y the part number. Parts must be joined in part order; part 0 is usually
the title menu and is only kept when it is large enough to be real content.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

STUB_THRESHOLD = 1024 * 1024  # menu fragments are smaller than 1 MiB
VOB_NAME_RE = re.compile(r"^vts_(\d+)_(\d+)\.vob$", re.IGNORECASE)
MEDIA_EXTS = {".vob", ".mpg", ".mpeg"}


class VobName(NamedTuple):
    title: int
    part: int


@dataclass(frozen=True)
class MediaFile:
    path: Path
    size: int

    @property
    def size_mb(self) -> int:
        return self.size // (1024 * 1024)


@dataclass(frozen=True)
class TitleGroup:
    """One logical video: a DVD title (ordered parts) or a standalone file."""

    label: str
    parts: tuple[MediaFile, ...]
    title: int | None = None

    @property
    def total_size(self) -> int:
        return sum(p.size for p in self.parts)

    @property
    def is_multipart(self) -> bool:
        return len(self.parts) > 1

    def output_path(self, output_dir: Path, ext: str) -> Path:
        if self.title is None:
            return output_dir / f"{self.label}.{ext}"
        return output_dir / f"video_{self.label}.{ext}"


# ----------------------------
# Name parsing
# ----------------------------


def parse_vob_name(name: str) -> VobName | None:
    """Extract (title, part) from a VTS_XX_Y.VOB filename, any case."""
    m = VOB_NAME_RE.match(name)
    if not m:
        return None
    return VobName(int(m.group(1)), int(m.group(2)))


def title_label(title: int) -> str:
    return f"{title:02d}"


def is_media_file(path: Path) -> bool:
    return path.suffix.lower() in MEDIA_EXTS


# ----------------------------
# Directory scanning
# ----------------------------


def scan_media_files(directory: Path) -> list[MediaFile]:
    """List *.vob files directly inside directory (not recursive)."""
    found: list[MediaFile] = []
    for entry in directory.iterdir():
        if entry.suffix.lower() != ".vob":
            continue
        try:
            st = entry.stat()
        except OSError:
            continue
        if not entry.is_file():
            continue
        found.append(MediaFile(entry, st.st_size))
    return found


def discover_titles(directory: Path) -> list[int]:
    """Unique title numbers in numeric order (2 sorts before 10)."""
    titles: set[int] = set()
    for media in scan_media_files(directory):
        name = parse_vob_name(media.path.name)
        if name is not None:
            titles.add(name.title)
    return sorted(titles)


def parts_for_title(
    directory: Path, title: int, min_size: int = STUB_THRESHOLD
) -> list[MediaFile]:
    """Parts of one title sorted by part number, stubs below min_size dropped.

    Order matters: the list becomes the concat manifest as-is, and a
    misplaced part corrupts playback.
    """
    keyed: list[tuple[int, str, MediaFile]] = []
    for media in scan_media_files(directory):
        name = parse_vob_name(media.path.name)
        if name is None or name.title != title:
            continue
        if media.size < min_size:
            continue
        keyed.append((name.part, media.path.name, media))
    keyed.sort(key=lambda k: (k[0], k[1]))
    return [m for _, _, m in keyed]


def group_titles(directory: Path, min_size: int = STUB_THRESHOLD) -> list[TitleGroup]:
    """Build one group per title; titles made only of stubs are skipped."""
    groups: list[TitleGroup] = []
    for title in discover_titles(directory):
        parts = parts_for_title(directory, title, min_size)
        if not parts:
            continue
        groups.append(TitleGroup(label=title_label(title), parts=tuple(parts), title=title))
    return groups


def single_file_group(path: Path) -> TitleGroup:
    """Wrap one explicitly chosen file; no grouping or stub filtering."""
    return TitleGroup(label=path.stem, parts=(MediaFile(path, path.stat().st_size),))
