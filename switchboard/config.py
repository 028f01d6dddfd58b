# switchboard/config.py
"""
Configuration for Switchboard.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. Every component receives
its settings explicitly from a SwitchboardConfig; nothing reads the environment
on its own.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

# Resolve .env relative to the project root (one level above switchboard/),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class ModelConfig(BaseSettings):
    """Connection settings for the Anthropic Messages API."""

    api_key: Optional[str] = Field(None, alias="ANTHROPIC_API_KEY")
    base_url: Optional[str] = Field(None, alias="ANTHROPIC_BASE_URL")
    default_model: str = Field("claude-sonnet-4-5-20250929", alias="SWITCHBOARD_MODEL")
    request_timeout_seconds: float = Field(60.0, alias="SWITCHBOARD_REQUEST_TIMEOUT_SECONDS")
    # SDK-level transport retries. The agent itself never retries a message.
    max_retries: int = Field(0, alias="SWITCHBOARD_MODEL_MAX_RETRIES")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "ModelConfig":
        if isinstance(self.api_key, str):
            self.api_key = self.api_key.strip() or None
        self.request_timeout_seconds = max(1.0, float(self.request_timeout_seconds))
        self.max_retries = max(0, int(self.max_retries))
        return self


class StorageConfig(BaseSettings):
    """Where agent profiles and conversation history live."""

    data_dir: Path = Field(Path("./switchboard_data"), alias="SWITCHBOARD_DATA_DIR")
    db_path: Optional[Path] = Field(None, alias="SWITCHBOARD_DB_PATH")
    operation_timeout_seconds: float = Field(10.0, alias="SWITCHBOARD_STORE_TIMEOUT_SECONDS")
    retention_days: int = Field(30, alias="SWITCHBOARD_RETENTION_DAYS")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def derive_paths_from_data_dir(self) -> "StorageConfig":
        if self.db_path is None:
            self.db_path = self.data_dir / "switchboard.db"
        self.operation_timeout_seconds = max(0.1, float(self.operation_timeout_seconds))
        self.retention_days = max(1, int(self.retention_days))
        return self


class RouterConfig(BaseSettings):
    """Routing policy and per-message handling limits."""

    history_limit: int = Field(10, alias="SWITCHBOARD_HISTORY_LIMIT")
    fallback_agent_id: Optional[str] = Field(None, alias="SWITCHBOARD_FALLBACK_AGENT")
    bootstrap_builtin_agents: bool = Field(True, alias="SWITCHBOARD_BOOTSTRAP_BUILTINS")
    serialize_per_sender: bool = Field(True, alias="SWITCHBOARD_SERIALIZE_PER_SENDER")
    sender_lock_cache_size: int = Field(512, alias="SWITCHBOARD_SENDER_LOCK_CACHE_SIZE")
    apology_message: str = Field(
        "Sorry, I encountered an error processing your message. Please try again.",
        alias="SWITCHBOARD_APOLOGY_MESSAGE",
    )

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "RouterConfig":
        self.history_limit = max(1, int(self.history_limit))
        self.sender_lock_cache_size = max(1, int(self.sender_lock_cache_size))
        if isinstance(self.fallback_agent_id, str):
            self.fallback_agent_id = self.fallback_agent_id.strip() or None
        return self


class ToolConfig(BaseSettings):
    """Limits applied by the tool executor."""

    default_timeout: float = Field(30.0, alias="SWITCHBOARD_TOOL_TIMEOUT_SECONDS")
    max_output_length: int = Field(25000, alias="SWITCHBOARD_TOOL_MAX_OUTPUT")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "ToolConfig":
        self.default_timeout = max(0.1, float(self.default_timeout))
        self.max_output_length = max(200, int(self.max_output_length))
        return self


class LoggingConfig(BaseSettings):
    level: str = Field("WARNING", alias="SWITCHBOARD_LOG_LEVEL")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}


class SwitchboardConfig:
    """
    Master configuration that composes all subsystem configs.

    This is the single source of truth. Every component receives its config
    from here.
    """

    def __init__(self):
        self.model = ModelConfig()
        self.storage = StorageConfig()
        self.router = RouterConfig()
        self.tools = ToolConfig()
        self.logging = LoggingConfig()

        self._resolve_paths()
        self.storage.data_dir.mkdir(parents=True, exist_ok=True)

    def _resolve_paths(self) -> None:
        """Resolve relative Path fields against the project root (where .env lives),
        not the current working directory."""
        def _resolve(p: Path) -> Path:
            if p.is_absolute():
                return p
            return (_PROJECT_ROOT / p).resolve()

        self.storage.data_dir = _resolve(self.storage.data_dir)
        self.storage.db_path = _resolve(self.storage.db_path)

    def __repr__(self) -> str:
        return (
            f"SwitchboardConfig(model={self.model.default_model}, "
            f"db={self.storage.db_path}, "
            f"history_limit={self.router.history_limit}, "
            f"fallback={self.router.fallback_agent_id})"
        )
