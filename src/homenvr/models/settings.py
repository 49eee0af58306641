"""Runtime settings read by the retention policy on every tick."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class Settings(BaseModel):
    """Hot-reloadable node settings (owned by the settings store)."""

    clean_threshold_percent: int = Field(default=80, gt=0, le=100)
    target_threshold_percent: int = Field(default=70, gt=0, le=100)
    node_name: str = "homenvr"
    storage_cap_bytes: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _validate_thresholds(self) -> Settings:
        if self.target_threshold_percent > self.clean_threshold_percent:
            raise ValueError(
                "target_threshold_percent must be <= clean_threshold_percent "
                f"(got {self.target_threshold_percent} > {self.clean_threshold_percent})"
            )
        return self


class SettingsUpdate(BaseModel):
    """Partial settings update (only non-None fields are applied)."""

    model_config = {"extra": "forbid"}

    clean_threshold_percent: int | None = Field(default=None, gt=0, le=100)
    target_threshold_percent: int | None = Field(default=None, gt=0, le=100)
    node_name: str | None = None
    storage_cap_bytes: int | None = Field(default=None, gt=0)

    def apply(self, current: Settings) -> Settings:
        """Merge this update onto `current` and re-validate."""
        merged = {
            **current.model_dump(),
            **self.model_dump(exclude_none=True),
        }
        return Settings.model_validate(merged)
