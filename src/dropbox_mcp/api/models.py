"""Pydantic models for Dropbox API payloads.

Dropbox encodes union members with a ``.tag`` field. Entries returned by
listing, search, move, copy and delete are one of :class:`FileMetadata`,
:class:`FolderMetadata` or :class:`DeletedMetadata`; the :data:`Metadata`
annotated union selects the variant from the tag, so callers branch on the
concrete class instead of probing dictionary keys.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# Dropbox timestamps are second-precision UTC with a literal "Z"
DROPBOX_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_dropbox_time(value: datetime) -> str:
    """Format a datetime the way the Dropbox API expects."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(DROPBOX_TIME_FORMAT)


class _DropboxModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FileMetadata(_DropboxModel):
    """A file entry."""

    tag: Literal["file"] = Field("file", alias=".tag")
    name: str
    id: str = ""
    path_lower: str | None = None
    path_display: str | None = None
    size: int = 0
    rev: str = ""
    client_modified: datetime | None = None
    server_modified: datetime | None = None
    content_hash: str | None = None


class FolderMetadata(_DropboxModel):
    """A folder entry."""

    tag: Literal["folder"] = Field("folder", alias=".tag")
    name: str
    id: str = ""
    path_lower: str | None = None
    path_display: str | None = None


class DeletedMetadata(_DropboxModel):
    """A deleted entry (only returned when deleted entries are requested)."""

    tag: Literal["deleted"] = Field("deleted", alias=".tag")
    name: str
    path_lower: str | None = None
    path_display: str | None = None


AnyMetadata = FileMetadata | FolderMetadata | DeletedMetadata
Metadata = Annotated[AnyMetadata, Field(discriminator="tag")]
METADATA_ADAPTER: TypeAdapter[AnyMetadata] = TypeAdapter(Metadata)


class FileLinkMetadata(_DropboxModel):
    """Shared link pointing at a file."""

    tag: Literal["file"] = Field("file", alias=".tag")
    url: str
    name: str = ""
    path_lower: str | None = None
    expires: datetime | None = None


class FolderLinkMetadata(_DropboxModel):
    """Shared link pointing at a folder."""

    tag: Literal["folder"] = Field("folder", alias=".tag")
    url: str
    name: str = ""
    path_lower: str | None = None
    expires: datetime | None = None


AnyLinkMetadata = FileLinkMetadata | FolderLinkMetadata
SharedLinkMetadata = Annotated[AnyLinkMetadata, Field(discriminator="tag")]
SHARED_LINK_ADAPTER: TypeAdapter[AnyLinkMetadata] = TypeAdapter(SharedLinkMetadata)


class WriteMode(str, Enum):
    """Policy when the upload target path already exists."""

    ADD = "add"
    OVERWRITE = "overwrite"


class CommitInfo(BaseModel):
    """Where and how an upload is committed.

    Shared unchanged by the single-request upload and by the finish phase of
    a chunked upload session.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    mode: WriteMode = WriteMode.ADD
    autorename: bool = True
    client_modified: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(microsecond=0)
    )

    def to_api_arg(self) -> dict[str, Any]:
        """Return the ``commit`` argument object for the Dropbox API."""
        return {
            "path": self.path,
            "mode": self.mode.value,
            "autorename": self.autorename,
            "client_modified": format_dropbox_time(self.client_modified),
            "mute": False,
        }


class TransferSession(BaseModel):
    """An open upload session and the number of bytes appended so far."""

    session_id: str
    offset: int = 0

    def cursor(self) -> dict[str, Any]:
        """Return the ``cursor`` argument for append and finish calls."""
        return {"session_id": self.session_id, "offset": self.offset}

    def advance(self, length: int) -> None:
        """Record ``length`` more bytes as committed to the session."""
        self.offset += length
