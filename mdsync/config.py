from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Timing and sizing knobs. Override with MDSYNC_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="MDSYNC_", extra="ignore")

    chunk_size: int = Field(3, ge=1, description="Characters revealed per streaming tick.")
    chunk_interval: float = Field(0.02, ge=0, description="Seconds between streaming ticks.")
    highlight_dwell: float = Field(0.5, ge=0, description="Seconds targets stay 'pending' before editing.")
    edit_pause: float = Field(0.2, ge=0, description="Seconds between consecutive node edits.")
    max_history: int = Field(50, ge=1)
    history_debounce: float = Field(0.3, ge=0, description="Idle seconds before a history push.")
    context_chars: int = Field(50, ge=0, description="Context captured on each side of a selection.")
    pending_class: str = "ai-highlight-pending"
    active_class: str = "ai-editing-active"


settings = SyncSettings()
