import asyncio
import json
import threading
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
import pytesseract

from app.clients import AssemblyAIClient, FFmpegTranscoder, GroqClient, TesseractRecognizer
from app.clients.whisper_client import LocalWhisperClient
from app.errors import OCRError, TranscodeError, TranscriptionError
from app.pipeline.protocols import JOB_COMPLETED, JOB_ERROR, JOB_PENDING
from app.services.storage import StorageService

# ---------------------------------------------------------------------------
# AssemblyAI
# ---------------------------------------------------------------------------


def _assemblyai(handler) -> AssemblyAIClient:
    return AssemblyAIClient(
        "test-key",
        base_url="https://stt.test/v2",
        transport=httpx.MockTransport(handler),
    )


async def _chunks():
    yield b"abc"
    yield b"def"


def test_assemblyai_upload_and_create_job():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/v2/upload":
            return httpx.Response(200, json={"upload_url": "https://cdn.test/a1"})
        return httpx.Response(200, json={"id": "tr-1", "status": "queued"})

    async def _go():
        client = _assemblyai(handler)
        try:
            url = await client.upload(_chunks())
            job_id = await client.create_job(url)
        finally:
            await client.aclose()
        return url, job_id

    url, job_id = asyncio.run(_go())

    assert (url, job_id) == ("https://cdn.test/a1", "tr-1")
    assert seen[0].headers["authorization"] == "test-key"
    assert seen[0].content == b"abcdef"
    assert json.loads(seen[1].content) == {"audio_url": "https://cdn.test/a1"}


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"status": "queued"}, (JOB_PENDING, None, None)),
        ({"status": "processing"}, (JOB_PENDING, None, None)),
        ({"status": "completed", "text": "hi"}, (JOB_COMPLETED, "hi", None)),
        ({"status": "error", "error": "bad audio"}, (JOB_ERROR, None, "bad audio")),
    ],
)
def test_assemblyai_job_status_mapping(payload, expected):
    client = _assemblyai(lambda request: httpx.Response(200, json=payload))
    job = asyncio.run(client.get_job("tr-1"))
    assert (job.status, job.text, job.error) == expected


def test_assemblyai_http_error_is_transcription_error():
    client = _assemblyai(lambda request: httpx.Response(401, text="Invalid API key"))
    with pytest.raises(TranscriptionError, match="401"):
        asyncio.run(client.get_job("tr-1"))


def test_assemblyai_requires_key():
    with pytest.raises(ValueError):
        AssemblyAIClient("")


# ---------------------------------------------------------------------------
# Tesseract
# ---------------------------------------------------------------------------


def test_tesseract_averages_word_confidence(monkeypatch):
    data = {
        "text": ["", "", "Linear", "", "maps"],
        "conf": ["-1", "-1", "90", "-1", "70"],
    }
    monkeypatch.setattr(pytesseract, "image_to_data", lambda *args, **kwargs: data)

    reading = asyncio.run(TesseractRecognizer().recognize("frame.png"))

    assert reading.text == "Linear maps"
    assert reading.confidence_percent == pytest.approx(80.0)


def test_tesseract_failure_is_ocr_error(monkeypatch):
    def boom(*args, **kwargs):
        raise pytesseract.TesseractError(1, "cannot read image")

    monkeypatch.setattr(pytesseract, "image_to_data", boom)
    with pytest.raises(OCRError):
        asyncio.run(TesseractRecognizer().recognize("frame.png"))


# ---------------------------------------------------------------------------
# Storage helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 Bytes"), (512, "512 Bytes"), (1536, "1.5 KB"), (5 * 1024**2, "5 MB")],
)
def test_format_file_size(size, expected):
    assert StorageService.format_file_size(size) == expected


def test_extension_checks():
    assert StorageService.is_valid_video_file("Lecture.MKV")
    assert StorageService.is_valid_audio_file("memo.m4a")
    assert not StorageService.is_valid_audio_file("deck.pdf")
    assert not StorageService.is_valid_video_file("noext")


def test_upload_filename_keeps_extension():
    name = StorageService.upload_filename("video", "My Class.WebM")
    assert name.startswith("video-")
    assert name.endswith(".webm")


def test_upload_dir_is_per_session(tmp_path):
    path = StorageService.upload_dir(7, str(tmp_path))
    assert path == str(tmp_path / "7")
    assert (tmp_path / "7").is_dir()


# ---------------------------------------------------------------------------
# Groq
# ---------------------------------------------------------------------------


def test_groq_chat_passes_generation_settings():
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        message = SimpleNamespace(content=None)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = GroqClient("llama-test", "gsk_test")
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    content = asyncio.run(
        client.chat([{"role": "user", "content": "hi"}], temperature=0.3, max_tokens=1500)
    )

    assert content == ""
    assert calls == [
        {
            "model": "llama-test",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0.3,
            "max_tokens": 1500,
        }
    ]


def test_groq_aclose_closes_sdk_client():
    closed = []

    async def close():
        closed.append(True)

    client = GroqClient("llama-test", "gsk_test")
    client._client = SimpleNamespace(close=close)
    asyncio.run(client.aclose())

    assert closed == [True]


# ---------------------------------------------------------------------------
# Local Whisper
# ---------------------------------------------------------------------------


def _whisper(tmp_path, transcribe) -> LocalWhisperClient:
    client = LocalWhisperClient(scratch_dir=str(tmp_path))
    client._transcribe = transcribe
    return client


def test_whisper_job_runs_and_removes_spool(tmp_path):
    client = _whisper(tmp_path, lambda path: f"read {len(Path(path).read_bytes())} bytes")

    async def _go():
        reference = await client.upload(_chunks())
        job_id = await client.create_job(reference)
        job = await client.get_job(job_id)
        while job.status == JOB_PENDING:
            await asyncio.sleep(0.01)
            job = await client.get_job(job_id)
        return job

    job = asyncio.run(_go())
    assert (job.status, job.text) == (JOB_COMPLETED, "read 6 bytes")
    assert list(tmp_path.iterdir()) == []


def test_whisper_discarded_job_is_dropped_and_its_failure_logged(tmp_path, caplog):
    gate = threading.Event()

    def transcribe(path):
        gate.wait(5)
        raise RuntimeError("model crashed")

    client = _whisper(tmp_path, transcribe)

    async def _go():
        reference = await client.upload(_chunks())
        job_id = await client.create_job(reference)
        task = client._jobs[job_id]
        client.discard_job(job_id)
        assert job_id not in client._jobs
        gate.set()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(_go())
    assert "Abandoned Whisper job failed: model crashed" in caplog.text
    assert list(tmp_path.iterdir()) == []


def test_whisper_failed_upload_leaves_no_spool(tmp_path):
    async def broken_stream():
        yield b"abc"
        raise OSError("disk went away")

    client = _whisper(tmp_path, lambda path: "")
    with pytest.raises(OSError):
        asyncio.run(client.upload(broken_stream()))
    assert list(tmp_path.iterdir()) == []


def test_whisper_aclose_removes_unclaimed_uploads(tmp_path):
    client = _whisper(tmp_path, lambda path: "")

    async def _go():
        await client.upload(_chunks())
        await client.aclose()

    asyncio.run(_go())
    assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# ffmpeg
# ---------------------------------------------------------------------------


class FakeProcess:
    def __init__(self, returncode=0, stdout=b"", stderr=b"", hang=False) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.hang = hang
        self.started = asyncio.Event()
        self.killed = False
        self.waited = False

    async def communicate(self):
        self.started.set()
        if self.hang:
            await asyncio.Event().wait()
        return self.stdout, self.stderr

    def kill(self) -> None:
        self.killed = True

    async def wait(self) -> int:
        self.waited = True
        return -9


def _patch_exec(monkeypatch, make_process):
    calls = []
    processes = []

    async def fake_exec(*args, **kwargs):
        calls.append(args)
        process = make_process()
        processes.append(process)
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    return calls, processes


def _ffmpeg() -> FFmpegTranscoder:
    return FFmpegTranscoder("ffmpeg", "ffprobe")


def test_remux_copies_streams(monkeypatch):
    calls, _ = _patch_exec(monkeypatch, FakeProcess)
    asyncio.run(_ffmpeg().remux("in.webm", "out.webm"))

    args = calls[0]
    assert args[0] == "ffmpeg"
    assert args[args.index("-i") + 1] == "in.webm"
    assert args[args.index("-c") + 1] == "copy"
    assert args[-1] == "out.webm"


def test_extract_frame_grabs_one_frame_at_timestamp(monkeypatch):
    calls, _ = _patch_exec(monkeypatch, FakeProcess)
    asyncio.run(_ffmpeg().extract_frame("in.webm", 90.0, "frame_90.png"))

    args = calls[0]
    assert args[args.index("-ss") + 1] == "90"
    assert args.index("-ss") < args.index("-i")
    assert args[args.index("-frames:v") + 1] == "1"
    assert args[-1] == "frame_90.png"


def test_duration_is_read_from_ffprobe_output(monkeypatch):
    calls, _ = _patch_exec(monkeypatch, lambda: FakeProcess(stdout=b"63.2\n"))
    assert asyncio.run(_ffmpeg().probe_duration("in.webm")) == pytest.approx(63.2)
    assert calls[0][0] == "ffprobe"
    assert "format=duration" in calls[0]


def test_unreadable_duration_is_transcode_error(monkeypatch):
    _patch_exec(monkeypatch, lambda: FakeProcess(stdout=b"N/A\n"))
    with pytest.raises(TranscodeError, match="Unreadable duration"):
        asyncio.run(_ffmpeg().probe_duration("in.webm"))


def test_nonzero_exit_is_transcode_error(monkeypatch):
    _patch_exec(monkeypatch, lambda: FakeProcess(returncode=1, stderr=b"moov atom not found"))
    with pytest.raises(TranscodeError, match="moov atom not found"):
        asyncio.run(_ffmpeg().remux("in.mp4", "out.mp4"))


def test_launch_failure_is_transcode_error(monkeypatch):
    async def missing_binary(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", missing_binary)
    with pytest.raises(TranscodeError, match="Could not launch"):
        asyncio.run(_ffmpeg().remux("in.mp4", "out.mp4"))


def test_cancel_kills_the_subprocess(monkeypatch):
    _, processes = _patch_exec(monkeypatch, lambda: FakeProcess(hang=True))

    async def _go():
        task = asyncio.create_task(_ffmpeg().remux("in.mp4", "out.mp4"))
        while not processes:
            await asyncio.sleep(0)
        await processes[0].started.wait()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return task

    task = asyncio.run(_go())
    assert task.cancelled()
    assert processes[0].killed is True
    assert processes[0].waited is True
