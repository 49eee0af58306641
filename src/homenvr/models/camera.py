"""Camera model as read from the camera registry."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Camera(BaseModel):
    """Camera definition (owned by the registry; read-only to the engine)."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    address: str
    username: str | None = None
    password_env: str | None = None
    enabled: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if "/" in value or "\\" in value or value in (".", ".."):
                raise ValueError(f"camera id must be a single path segment, got {value!r}")
        return value
