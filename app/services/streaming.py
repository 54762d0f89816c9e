import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable

import aiofiles

LOGGER = logging.getLogger(__name__)

_RANGE = re.compile(r"^bytes=(\d+)-(\d*)$")


class MediaNotFound(Exception):
    pass


class InvalidRange(Exception):
    def __init__(self, header: str, file_size: int) -> None:
        super().__init__(f"Unsatisfiable range {header!r} for {file_size} bytes")
        self.file_size = file_size


class StreamError(Exception):
    pass


@dataclass
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass
class MediaStream:
    status_code: int
    headers: dict[str, str]
    body: AsyncIterator[bytes] = field(repr=False)
    close: Callable[[], Awaitable[None]] | None = field(default=None, repr=False)

    async def aclose(self) -> None:
        """Release the file handle if the body was never drained."""
        if self.close is not None:
            await self.close()


def parse_range(header: str, file_size: int) -> ByteRange:
    """Parse ``bytes=<start>-<end>``; a missing end means the last byte.

    An end past the file is clamped to the last byte. Anything else that
    cannot be served raises ``InvalidRange``.
    """
    match = _RANGE.match(header.strip())
    if not match:
        raise InvalidRange(header, file_size)
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else file_size - 1
    end = min(end, file_size - 1)
    if start >= file_size or start > end:
        raise InvalidRange(header, file_size)
    return ByteRange(start, end)


def guess_mimetype(path: str, stored: str | None = None) -> str:
    if stored and stored != "application/octet-stream":
        return stored
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


class RangeStreamer:
    """Serve a stored media file, honouring single byte-range requests.

    ``open`` acquires the file handle and reads the size from that handle
    before a status is chosen, so a file replaced or removed afterwards is
    still served whole from the inode that was opened. Each call has its own
    handle; concurrent readers never share state.
    """

    def __init__(self, chunk_size: int = 64 * 1024) -> None:
        self.chunk_size = chunk_size

    async def open(
        self, path: str, range_header: str | None = None, mimetype: str | None = None
    ) -> MediaStream:
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError as exc:
            raise MediaNotFound(path) from exc
        except OSError as exc:
            raise StreamError(f"Cannot open {path}: {exc}") from exc

        try:
            file_size = os.fstat(handle.fileno()).st_size
        except OSError as exc:
            await handle.close()
            raise StreamError(f"Cannot stat {path}: {exc}") from exc

        span = None
        if range_header:
            try:
                span = parse_range(range_header, file_size)
            except InvalidRange:
                await handle.close()
                raise

        content_type = guess_mimetype(path, mimetype)
        if span is None:
            return MediaStream(
                status_code=200,
                headers={
                    "Content-Length": str(file_size),
                    "Content-Type": content_type,
                    "Accept-Ranges": "bytes",
                },
                body=self._read(handle, path, 0, file_size),
                close=handle.close,
            )

        return MediaStream(
            status_code=206,
            headers={
                "Content-Range": f"bytes {span.start}-{span.end}/{file_size}",
                "Accept-Ranges": "bytes",
                "Content-Length": str(span.length),
                "Content-Type": content_type,
            },
            body=self._read(handle, path, span.start, span.length),
            close=handle.close,
        )

    async def _read(self, handle, path: str, offset: int, length: int) -> AsyncIterator[bytes]:
        remaining = length
        try:
            await handle.seek(offset)
            while remaining > 0:
                chunk = await handle.read(min(self.chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
        except OSError:
            LOGGER.exception("Streaming error for %s at offset %d", path, offset)
            raise
        finally:
            await handle.close()
        if remaining:
            LOGGER.warning("%s ended %d byte(s) early", path, remaining)
