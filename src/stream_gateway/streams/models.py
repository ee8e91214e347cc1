"""Stream data models."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StreamEntry(BaseModel):
    """Registered stream, immutable once created (re-registration replaces it)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: str = Field(min_length=1, description="Registry key derived from the secret")
    resource_id: str = Field(min_length=1, description="Parent resource id, e.g. info hash")
    sub_index: int = Field(ge=0, description="File index within the resource")
    file_path: Path = Field(description="Absolute location on disk")
    display_name: str = Field(min_length=1, description="Suggested client filename")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Registration time"
    )

    @field_validator("file_path")
    @classmethod
    def validate_file_path(cls, v: Path) -> Path:
        """Require an absolute path so lookups never depend on the cwd."""
        if not v.is_absolute():
            raise ValueError("file_path must be absolute")
        return v

    def age(self, now: datetime | None = None) -> timedelta:
        """Time elapsed since registration."""
        return (now or datetime.now(UTC)) - self.created_at


class StreamFile(BaseModel):
    """One file of a resource, as described by the torrent client."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    index: int = Field(ge=0, description="File index within the resource")
    path: Path = Field(description="Absolute location on disk")
    display_name: str = Field(min_length=1, description="Suggested client filename")
    size: int = Field(default=0, ge=0, description="Expected final size in bytes")
