####################################
# --- Request/response schemas --- #
####################################

from datetime import datetime
from enum import Enum
from typing import Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
)
from pydantic.alias_generators import to_camel

UPLOADS_URL_PREFIX = "/uploads"


def format_size(size_bytes: int) -> str:
    """Render a byte count in kilobytes with two decimals, e.g. ``"37.00 KB"``."""
    return f"{size_bytes / 1024:.2f} KB"


class WireModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class FileRecord(WireModel):
    """One stored file as reported by the registry."""
    storage_key: str = Field(
        description="Server generated key, used as the file name on disk and in URLs.",
        json_schema_extra={"example": "1700000000123-123456789.pdf"},
    )
    display_name: str = Field(
        description="Original file name supplied by the uploader. Cosmetic only.",
        json_schema_extra={"example": "report.pdf"},
    )
    size_bytes: int = Field(ge=0, description="Size of the stored file in bytes.")
    created_at: datetime = Field(description="Modification time reported by storage.")

    @computed_field
    @property
    def size(self) -> str:
        return format_size(self.size_bytes)

    @computed_field
    @property
    def path(self) -> str:
        return f"{UPLOADS_URL_PREFIX}/{self.storage_key}"

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "storageKey": "1700000000123-123456789.pdf",
                "displayName": "report.pdf",
                "sizeBytes": 37888,
                "createdAt": "2023-11-14T22:13:20Z",
                "size": "37.00 KB",
                "path": "/uploads/1700000000123-123456789.pdf",
            }
        }
    )


class UploadResponse(WireModel):
    """Response model for `POST /upload`."""
    success: bool = True
    file: FileRecord


class DeleteResponse(WireModel):
    """Response model for `DELETE /file/:storageKey`."""
    success: bool = True


class ErrorResponse(WireModel):
    error: str


class EventType(str, Enum):
    """Names of the realtime events pushed to connected sessions."""
    FILE_ADDED = "newFile"
    FILE_REMOVED = "fileDeleted"


class FileEvent(WireModel):
    """A registry change delivered to every connected session."""
    event: EventType
    data: Union[FileRecord, str]

    @classmethod
    def file_added(cls, record: FileRecord) -> "FileEvent":
        return cls(event=EventType.FILE_ADDED, data=record)

    @classmethod
    def file_removed(cls, storage_key: str) -> "FileEvent":
        return cls(event=EventType.FILE_REMOVED, data=storage_key)

    @property
    def storage_key(self) -> str:
        if isinstance(self.data, FileRecord):
            return self.data.storage_key
        return self.data

    def to_message(self) -> dict:
        """JSON-ready payload for the realtime channel."""
        return self.model_dump(mode="json", by_alias=True)
