"""Tests for FFmpeg command construction and stream key masking."""

import pytest

from app.domain.live.stream._command import (
    build_destination_url,
    build_ffmpeg_args,
    detect_source_type,
    is_rtmp_url,
    mask_args,
    mask_destination_url,
    normalize_input_source,
    stream_key_redactor,
)


class TestBuildFfmpegArgs:
    """Tests for build_ffmpeg_args."""

    def test_exact_argument_list(self):
        """Should emit the fixed encoder settings in order, destination last."""
        args = build_ffmpeg_args("/videos/sample.mp4", "rtmp://live.example.com/app/abc123")

        assert args == [
            "-re",
            "-i", "/videos/sample.mp4",
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-maxrate", "3000k",
            "-bufsize", "6000k",
            "-pix_fmt", "yuv420p",
            "-g", "50",
            "-c:a", "aac",
            "-b:a", "128k",
            "-ac", "2",
            "-ar", "44100",
            "-f", "flv",
            "rtmp://live.example.com/app/abc123",
        ]

    def test_loop_inserts_stream_loop_before_input(self):
        """Should place -stream_loop -1 between -re and -i."""
        args = build_ffmpeg_args("in.mp4", "rtmp://h/app/k", loop=True)

        assert args[:5] == ["-re", "-stream_loop", "-1", "-i", "in.mp4"]

    def test_no_loop_has_no_stream_loop(self):
        """Should not mention -stream_loop when looping is off."""
        assert "-stream_loop" not in build_ffmpeg_args("in.mp4", "rtmp://h/app/k")

    def test_windows_path_is_normalized(self):
        """Should convert backslashes to forward slashes in local paths."""
        args = build_ffmpeg_args(r"C:\videos\my clip.mp4", "rtmp://h/app/k")

        assert args[args.index("-i") + 1] == "C:/videos/my clip.mp4"

    def test_same_inputs_same_args(self):
        """Should be deterministic."""
        first = build_ffmpeg_args("in.mp4", "rtmp://h/app/k", loop=True)
        second = build_ffmpeg_args("in.mp4", "rtmp://h/app/k", loop=True)

        assert first == second


class TestSourceHelpers:
    """Tests for input source classification and normalization."""

    @pytest.mark.parametrize(
        "source,expected",
        [
            ("/videos/a.mp4", "file"),
            (r"C:\videos\a.mp4", "file"),
            ("https://cdn.example.com/a.mp4", "url"),
            ("HTTP://cdn.example.com/a.mp4", "url"),
            ("rtsp://camera.local/stream", "url"),
        ],
    )
    def test_detect_source_type(self, source: str, expected: str):
        assert detect_source_type(source) == expected

    def test_url_backslashes_untouched(self):
        """Should leave remote URLs exactly as given."""
        url = "https://cdn.example.com/a%5Cb.mp4?sig=x\\y"
        assert normalize_input_source(url) == url


class TestDestination:
    """Tests for destination URL joining and validation."""

    def test_joins_with_single_slash(self):
        assert build_destination_url("rtmp://h/app", "key") == "rtmp://h/app/key"

    def test_trailing_slash_is_not_doubled(self):
        assert build_destination_url("rtmp://h/app/", "key") == "rtmp://h/app/key"
        assert build_destination_url("rtmp://h/app//", "key") == "rtmp://h/app/key"

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("rtmp://a.rtmp.youtube.com/live2", True),
            ("rtmps://global-live.mux.com:443/app", True),
            ("RTMP://host/app", True),
            ("http://host/app", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_rtmp_url(self, url, expected: bool):
        assert is_rtmp_url(url) is expected


class TestMasking:
    """Tests for hiding the stream key in loggable values."""

    def test_mask_destination_url(self):
        assert mask_destination_url("rtmp://h/app/secret-key") == "rtmp://h/app/****"

    def test_mask_without_key_is_unchanged(self):
        assert mask_destination_url("rtmp://host") == "rtmp://host"

    def test_mask_args_only_masks_destination(self):
        """Should mask the trailing destination and leave the rest intact."""
        args = build_ffmpeg_args("in.mp4", "rtmp://h/app/secret-key")

        masked = mask_args(args)

        assert masked[:-1] == args[:-1]
        assert masked[-1] == "rtmp://h/app/****"
        assert "secret-key" not in " ".join(masked)
        assert args[-1] == "rtmp://h/app/secret-key"


class TestStreamKeyRedactor:
    """Tests for stream_key_redactor."""

    def test_masks_url_and_bare_key(self):
        redact = stream_key_redactor("rtmp://h/app/secret-key")

        assert redact("Output #0, flv, to 'rtmp://h/app/secret-key':") == (
            "Output #0, flv, to 'rtmp://h/app/****':"
        )
        assert redact("key secret-key rejected") == "key **** rejected"

    def test_other_lines_untouched(self):
        redact = stream_key_redactor("rtmp://h/app/secret-key")

        assert redact("Stream mapping:") == "Stream mapping:"

    def test_destination_without_key(self):
        redact = stream_key_redactor("rtmp://host")

        assert redact("rtmp://host: Connection refused") == "rtmp://host: Connection refused"
