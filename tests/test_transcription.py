import asyncio

import pytest

from app.errors import TranscriptionError, TranscriptionTimeout
from app.pipeline.protocols import JOB_COMPLETED, JOB_ERROR, JOB_PENDING, TranscriptJob
from app.pipeline.transcription import EMPTY_TRANSCRIPT, TranscriptionStage, normalize_path

from fakes import FakeSpeechToText


def _stage(provider: FakeSpeechToText, **kwargs) -> TranscriptionStage:
    kwargs.setdefault("poll_interval_seconds", 0)
    return TranscriptionStage(provider, **kwargs)


def test_polls_until_completed(audio_file):
    provider = FakeSpeechToText(
        [
            TranscriptJob(status=JOB_PENDING),
            TranscriptJob(status=JOB_PENDING),
            TranscriptJob(status=JOB_COMPLETED, text="Welcome to week three."),
        ]
    )
    text = asyncio.run(_stage(provider).transcribe(str(audio_file)))

    assert text == "Welcome to week three."
    assert provider.polls == 3
    assert provider.uploaded == b"original-audio"


def test_empty_transcript_uses_sentinel(audio_file):
    provider = FakeSpeechToText([TranscriptJob(status=JOB_COMPLETED, text="")])
    assert asyncio.run(_stage(provider).transcribe(str(audio_file))) == EMPTY_TRANSCRIPT


def test_provider_error_raises_with_detail(audio_file):
    provider = FakeSpeechToText([TranscriptJob(status=JOB_ERROR, error="audio too short")])
    with pytest.raises(TranscriptionError, match="audio too short"):
        asyncio.run(_stage(provider).transcribe(str(audio_file)))


def test_wait_is_bounded(audio_file):
    provider = FakeSpeechToText([TranscriptJob(status=JOB_PENDING)])
    stage = _stage(provider, poll_interval_seconds=0.01, timeout_seconds=0.05)

    with pytest.raises(TranscriptionTimeout):
        asyncio.run(stage.transcribe(str(audio_file)))
    assert provider.polls >= 1
    assert provider.discarded == ["job-1"]


def test_cancelled_wait_discards_the_job(audio_file):
    provider = FakeSpeechToText([TranscriptJob(status=JOB_PENDING)])
    stage = _stage(provider, poll_interval_seconds=0.01)

    async def _go():
        task = asyncio.create_task(stage.transcribe(str(audio_file)))
        while provider.polls == 0:
            await asyncio.sleep(0.005)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(_go())
    assert provider.discarded == ["job-1"]


def test_completed_job_is_not_discarded(audio_file):
    provider = FakeSpeechToText()
    asyncio.run(_stage(provider).transcribe(str(audio_file)))
    assert provider.discarded == []


def test_aclose_closes_the_provider():
    provider = FakeSpeechToText()
    asyncio.run(_stage(provider).aclose())
    assert provider.closed is True


def test_missing_file_is_a_transcription_error(tmp_path):
    with pytest.raises(TranscriptionError):
        asyncio.run(_stage(FakeSpeechToText()).transcribe(str(tmp_path / "gone.mp3")))


def test_normalize_path():
    assert normalize_path("uploads\\42\\video-1.webm") == "uploads/42/video-1.webm"
    assert normalize_path("/already/fine.mp3") == "/already/fine.mp3"
