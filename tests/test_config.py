"""Tests for vob-converter settings loading."""

from __future__ import annotations

from pathlib import Path
from types import ModuleType

import pytest  # type: ignore[import-untyped]


class TestLoadSettings:
    """Tests for load_settings function."""

    def test_no_config_uses_defaults(self, vob_converter: ModuleType) -> None:
        settings = vob_converter.load_settings(None)
        assert settings == vob_converter.EncodeSettings()
        assert settings.video_codec == "libx264"
        assert settings.audio_codec == "aac"
        assert settings.crf == 23
        assert settings.preset == "medium"
        assert settings.audio_bitrate == "128k"
        assert settings.output_ext == "mp4"
        assert settings.bar_width == 38
        assert settings.stub_threshold == 1024 * 1024

    def test_missing_config_raises(self, vob_converter: ModuleType) -> None:
        with pytest.raises(FileNotFoundError):
            vob_converter.load_settings(Path("/nonexistent/vob-converter.yaml"))

    def test_empty_file_uses_defaults(self, vob_converter: ModuleType, tmp_path: Path) -> None:
        cfg = tmp_path / "c.yaml"
        cfg.write_text("")
        assert vob_converter.load_settings(cfg) == vob_converter.EncodeSettings()

    def test_full_config(self, vob_converter: ModuleType, tmp_path: Path) -> None:
        cfg = tmp_path / "c.yaml"
        cfg.write_text(
            """
video_codec: libx265
audio_codec: libopus
crf: 28
preset: slow
audio_bitrate: 96k
output_ext: .mkv
bar_width: 20
stub_threshold_mb: 2
ffmpeg: /opt/ffmpeg/bin/ffmpeg
ffprobe: /opt/ffmpeg/bin/ffprobe
"""
        )
        settings = vob_converter.load_settings(cfg)

        assert settings.video_codec == "libx265"
        assert settings.audio_codec == "libopus"
        assert settings.crf == 28
        assert settings.preset == "slow"
        assert settings.audio_bitrate == "96k"
        assert settings.output_ext == "mkv"
        assert settings.bar_width == 20
        assert settings.stub_threshold == 2 * 1024 * 1024
        assert settings.ffmpeg == "/opt/ffmpeg/bin/ffmpeg"
        assert settings.ffprobe == "/opt/ffmpeg/bin/ffprobe"

    def test_partial_config_keeps_defaults(
        self, vob_converter: ModuleType, tmp_path: Path
    ) -> None:
        cfg = tmp_path / "c.yaml"
        cfg.write_text("crf: 18\n")
        settings = vob_converter.load_settings(cfg)
        assert settings.crf == 18
        assert settings.preset == "medium"

    @pytest.mark.parametrize(
        "body",
        [
            "- just\n- a list\n",
            "crf: 60\n",
            "crf: -1\n",
            "preset: turbo\n",
            "bar_width: 0\n",
            "output_ext: ''\n",
            "stub_threshold_mb: -1\n",
            "codec: libx264\n",
            "crf: ~\n",
            "crf: fast\n",
            "bar_width: [3]\n",
            "stub_threshold_mb: null\n",
        ],
    )
    def test_invalid_values_raise(
        self, vob_converter: ModuleType, tmp_path: Path, body: str
    ) -> None:
        cfg = tmp_path / "c.yaml"
        cfg.write_text(body)
        with pytest.raises(ValueError):
            vob_converter.load_settings(cfg)
