import logging
import os

from app.errors import TranscodeError
from app.pipeline.protocols import Transcoder

LOGGER = logging.getLogger(__name__)


def seekable_temp_path(path: str) -> str:
    root, ext = os.path.splitext(path)
    return f"{root}-seekable{ext or '.webm'}"


class TranscodeStage:
    """Remux a recorded video (stream copy) so byte-range seeking works.

    The remux is written next to the original and only swapped in once the
    transcoder reports success. On failure the original is left as it was.
    """

    def __init__(self, transcoder: Transcoder) -> None:
        self.transcoder = transcoder

    async def make_seekable(self, path: str) -> int:
        """Remux *path* in place and return the new file size."""
        temp_path = seekable_temp_path(path)
        LOGGER.info("Remuxing %s for seekable playback", path)
        try:
            await self.transcoder.remux(path, temp_path)
        except TranscodeError:
            self._discard(temp_path)
            raise

        try:
            os.replace(temp_path, path)
        except OSError as exc:
            self._discard(temp_path)
            raise TranscodeError(f"Could not replace {path}: {exc}") from exc

        size = os.path.getsize(path)
        LOGGER.info("Video remux complete for %s (%d bytes)", path, size)
        return size

    @staticmethod
    def _discard(temp_path: str) -> None:
        try:
            os.remove(temp_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("Could not delete partial remux %s: %s", temp_path, exc)
