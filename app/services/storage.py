import os
import random
import time

from app.config import settings

AUDIO_EXTENSIONS = (".mp3", ".wav", ".webm", ".ogg", ".m4a")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".avi", ".mov", ".mkv")


class StorageService:
    @staticmethod
    def upload_dir(session_id: int, root: str | None = None) -> str:
        """Return (and create) the upload directory for a session."""
        path = os.path.join(root or settings.uploads_root, str(session_id))
        os.makedirs(path, exist_ok=True)
        return path

    @staticmethod
    def upload_filename(field_name: str, original_name: str) -> str:
        """``<field>-<millis>-<random><ext>``, unique enough for concurrent uploads."""
        suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
        return f"{field_name}-{suffix}{StorageService.extension(original_name)}"

    @staticmethod
    def extension(filename: str) -> str:
        return os.path.splitext(filename)[1].lower()

    @staticmethod
    def is_valid_audio_file(filename: str) -> bool:
        return StorageService.extension(filename) in AUDIO_EXTENSIONS

    @staticmethod
    def is_valid_video_file(filename: str) -> bool:
        return StorageService.extension(filename) in VIDEO_EXTENSIONS

    @staticmethod
    def format_file_size(size: int) -> str:
        if size == 0:
            return "0 Bytes"
        units = ("Bytes", "KB", "MB", "GB")
        value = float(size)
        i = 0
        while value >= 1024 and i < len(units) - 1:
            value /= 1024
            i += 1
        return f"{round(value, 2):g} {units[i]}"
