"""
Pytest configuration and fixtures for vob-converter tests.
"""

import io
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console  # noqa: E402

import vob_converter as _vob_converter  # noqa: E402
from vob_encoder import THEME  # noqa: E402


@pytest.fixture
def vob_converter():
    """Fixture providing access to the vob_converter module."""
    return _vob_converter


@pytest.fixture
def console() -> Console:
    """Themed console writing into a buffer (read it back with console.file.getvalue())."""
    return Console(file=io.StringIO(), theme=THEME, width=200, highlight=False)


@pytest.fixture
def make_vob(tmp_path: Path) -> Callable[..., Path]:
    """Create a sparse file of the given size (bytes) under tmp_path."""

    def _make(name: str, size: int, directory: Path | None = None) -> Path:
        p = (directory or tmp_path) / name
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "wb") as f:
            f.truncate(size)
        return p

    return _make


class FakePopen:
    """Stand-in for subprocess.Popen that replays a canned ffmpeg run.

    Class attributes configure the next runs; every instance is recorded in
    `calls`.
    """

    progress: list[str] = []
    stderr_text: str = ""
    returncode: int = 0
    returncodes: list[int] = []
    write_output: bool = True
    calls: list["FakePopen"] = []

    def __init__(self, cmd: list[str], stdout: Any = None, stderr: Any = None, **kwargs: Any):
        self.cmd = cmd
        self.kwargs = kwargs
        self.terminated = False
        if self.returncodes:
            self.returncode = self.returncodes.pop(0)
        self.stdout = io.StringIO("".join(f"{ln}\n" for ln in self.progress))
        if stderr is not None and self.stderr_text:
            stderr.write(self.stderr_text)
        if self.write_output:
            Path(cmd[-1]).write_bytes(b"\0" * 1024)
        type(self).calls.append(self)

    def wait(self) -> int:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True


@pytest.fixture
def fake_popen(monkeypatch: Any) -> type[FakePopen]:
    import vob_encoder

    class _Fake(FakePopen):
        progress = [
            "fps=0.00",
            "speed=N/A",
            "out_time=N/A",
            "progress=continue",
            "fps=120.5",
            "speed=4.01x",
            "out_time=00:00:30.500000",
            "progress=continue",
            "out_time=00:01:00.000000",
            "progress=end",
        ]
        stderr_text = ""
        returncode = 0
        returncodes: list[int] = []
        write_output = True
        calls: list[FakePopen] = []

    monkeypatch.setattr(vob_encoder.subprocess, "Popen", _Fake)
    return _Fake
