"""Chunked upload through a Dropbox upload session.

Dropbox accepts at most 150 MiB in a single ``files/upload`` request. Larger
payloads go through three phases:

1. ``upload_session/start`` with an empty body opens a session at offset 0,
2. ``upload_session/append_v2`` is called once per chunk, in source order,
   each time at the session's current offset,
3. ``upload_session/finish`` commits the session at the final offset.

Dropbox rejects a finish whose offset differs from the number of bytes it has
received, so the offset is only advanced after an append succeeds. Any
failure abandons the session; there is no resume.
"""

import logging
from typing import TYPE_CHECKING, BinaryIO

import httpx

from dropbox_mcp.api.models import CommitInfo, FileMetadata
from dropbox_mcp.exceptions import ApiError, UploadError

if TYPE_CHECKING:
    from dropbox_mcp.api.client import DropboxClient

logger = logging.getLogger(__name__)

UPLOAD_SIZE_THRESHOLD = 150 * 1024 * 1024
CHUNK_SIZE = 4 * 1024 * 1024


async def upload_large(
    client: "DropboxClient",
    commit: CommitInfo,
    source: BinaryIO,
    chunk_size: int = CHUNK_SIZE,
) -> FileMetadata:
    """Upload ``source`` through a single upload session.

    Args:
        client: API client providing the session start/append/finish calls.
        commit: Target path and write policy for the finished file.
        source: Binary stream, read sequentially until EOF.
        chunk_size: Maximum bytes per append call.

    Returns:
        Metadata of the committed file.

    Raises:
        UploadError: If reading the source or any session call fails.
    """
    try:
        session = await client.upload_session_start()
    except (ApiError, httpx.HTTPError) as e:
        raise UploadError(f"failed to start upload session: {e}") from e

    logger.info(f"Started upload session for {commit.path}")

    appended = 0
    while True:
        try:
            chunk = source.read(chunk_size)
        except OSError as e:
            raise UploadError(f"failed to read chunk at offset {session.offset}: {e}") from e
        if not chunk:
            break

        try:
            await client.upload_session_append(session, chunk)
        except (ApiError, httpx.HTTPError) as e:
            raise UploadError(f"failed to append chunk at offset {session.offset}: {e}") from e
        session.advance(len(chunk))
        appended += 1

    logger.info(
        f"Finishing upload session for {commit.path}: "
        f"{appended} chunk(s), {session.offset} bytes"
    )
    try:
        return await client.upload_session_finish(session, commit)
    except (ApiError, httpx.HTTPError) as e:
        raise UploadError(f"failed to finish upload session: {e}") from e

