import asyncio
import logging
import shutil

from app.errors import TranscodeError

LOGGER = logging.getLogger(__name__)


class FFmpegTranscoder:
    """Drive the ``ffmpeg`` / ``ffprobe`` binaries as asyncio subprocesses."""

    def __init__(self, ffmpeg_path: str | None = None, ffprobe_path: str | None = None) -> None:
        self.ffmpeg_path = ffmpeg_path or shutil.which("ffmpeg") or "ffmpeg"
        self.ffprobe_path = ffprobe_path or shutil.which("ffprobe") or "ffprobe"

    async def _run(self, *args: str) -> bytes:
        LOGGER.debug("Running %s", " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TranscodeError(f"Could not launch {args[0]}: {exc}") from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise TranscodeError(
                f"{args[0]} exited with {process.returncode}: {detail[-500:]}"
            )
        return stdout

    async def remux(self, input_path: str, output_path: str) -> None:
        """Copy all streams into a fresh container (no re-encode)."""
        await self._run(
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", input_path,
            "-c", "copy",
            output_path,
        )

    async def probe_duration(self, input_path: str) -> float:
        stdout = await self._run(
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            input_path,
        )
        raw = stdout.decode("utf-8", errors="replace").strip()
        try:
            return float(raw)
        except ValueError as exc:
            raise TranscodeError(f"Unreadable duration {raw!r} for {input_path}") from exc

    async def extract_frame(self, input_path: str, timestamp: float, output_path: str) -> None:
        await self._run(
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-ss", f"{timestamp:g}",
            "-i", input_path,
            "-frames:v", "1",
            output_path,
        )
