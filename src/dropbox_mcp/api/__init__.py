"""Dropbox HTTP API client, payload models and chunked uploads."""

from dropbox_mcp.api.client import DropboxClient
from dropbox_mcp.api.models import (
    CommitInfo,
    DeletedMetadata,
    FileLinkMetadata,
    FileMetadata,
    FolderLinkMetadata,
    FolderMetadata,
    TransferSession,
    WriteMode,
)
from dropbox_mcp.api.upload import CHUNK_SIZE, UPLOAD_SIZE_THRESHOLD, upload_large

__all__ = [
    "CHUNK_SIZE",
    "UPLOAD_SIZE_THRESHOLD",
    "CommitInfo",
    "DeletedMetadata",
    "DropboxClient",
    "FileLinkMetadata",
    "FileMetadata",
    "FolderLinkMetadata",
    "FolderMetadata",
    "TransferSession",
    "WriteMode",
    "upload_large",
]
