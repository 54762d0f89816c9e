import asyncio

import pytest

from app.errors import TranscodeError
from app.pipeline.transcode import TranscodeStage, seekable_temp_path

from fakes import FakeTranscoder


def test_remux_replaces_original(video_file):
    transcoder = FakeTranscoder()
    size = asyncio.run(TranscodeStage(transcoder).make_seekable(str(video_file)))

    assert video_file.read_bytes() == b"seekable:original-video"
    assert size == len(b"seekable:original-video")
    assert not video_file.with_name("video-1-seekable.webm").exists()
    assert transcoder.remux_calls == [
        (str(video_file), str(video_file.with_name("video-1-seekable.webm")))
    ]


def test_failed_remux_leaves_original_untouched(video_file):
    transcoder = FakeTranscoder()
    transcoder.fail_remux = True

    with pytest.raises(TranscodeError):
        asyncio.run(TranscodeStage(transcoder).make_seekable(str(video_file)))

    assert video_file.read_bytes() == b"original-video"
    assert sorted(p.name for p in video_file.parent.iterdir()) == ["video-1.webm"]


def test_seekable_temp_path():
    assert seekable_temp_path("/data/video-1.mp4") == "/data/video-1-seekable.mp4"
    assert seekable_temp_path("/data/recording") == "/data/recording-seekable.webm"
