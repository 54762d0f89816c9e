import math
import os

from app.pipeline.protocols import Transcoder


class FrameSampler:
    """Pick evenly spaced timestamps in a video and grab one still per timestamp."""

    def __init__(self, transcoder: Transcoder, interval_seconds: float = 30) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.transcoder = transcoder
        self.interval_seconds = interval_seconds

    def timestamps(self, duration: float) -> list[float]:
        """``floor(duration / interval)`` samples starting at 0s."""
        count = math.floor(duration / self.interval_seconds) if duration > 0 else 0
        return [i * self.interval_seconds for i in range(count)]

    def frame_path(self, scratch_dir: str, timestamp: float) -> str:
        return os.path.join(scratch_dir, f"frame_{timestamp:g}.png")

    async def extract(self, video_path: str, timestamp: float, scratch_dir: str) -> str:
        """Write the frame at *timestamp* into *scratch_dir* and return its path."""
        output_path = self.frame_path(scratch_dir, timestamp)
        await self.transcoder.extract_frame(video_path, timestamp, output_path)
        return output_path
