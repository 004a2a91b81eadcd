"""Service configuration loaded from VIRTUALCO_* environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class VirtualCoSettings(BaseSettings):
    """Virtual company runtime settings.

    All fields are read from environment variables with the ``VIRTUALCO_``
    prefix.  For example, ``VIRTUALCO_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Provider keys for the built-in backends (ANTHROPIC_API_KEY,
    OPENAI_API_KEY, GLM_API_KEY, OPENROUTER_API_KEY) are **not** managed here
    -- they are read by the gateway as fallbacks when the active profile has
    no key of its own.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIRTUALCO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit serialized JSON lines instead of the coloured text format."""

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Root directory for the company snapshot (local store)."""

    data_prefix: str | None = None
    """Optional namespace inserted into the snapshot path / S3 key."""

    state_store: Literal["local", "s3", "memory"] = "local"

    flush_delay: float = 0.5
    """Debounce window (seconds) between the last mutation and the snapshot write."""

    # S3 (only when state_store = "s3")
    s3_endpoint: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_path_style: bool = False
    """Use path-style addressing (required by MinIO and some S3-compatible services)."""

    # -- Active profile --------------------------------------------------------
    profile_name: str = "default"
    profile_url: str | None = None
    """Custom base URL (proxy / self-hosted endpoint).  Enables protocol fallback."""

    profile_api_key: SecretStr | None = None

    # -- Agents ----------------------------------------------------------------
    default_model: str = "claude-sonnet-4"
    max_tool_rounds: int = 5
    max_tokens: int = 4096
    history_window: int = 20
    """Number of recent group messages used to seed each transcript."""

    resume_on_start: bool = False
    """Restart runners of every active workspace when the server starts."""

    # -- Timeouts --------------------------------------------------------------
    llm_timeout: float = 120.0
    cli_timeout: float = 300.0
    claude_command: str = "claude"

    # -- bash tool -------------------------------------------------------------
    bash_timeout: float = 30.0
    bash_workdir: str | None = None
    """Working directory for agent shell commands (default: process CWD)."""

    bash_stdout_limit: int = 5000
    bash_stderr_limit: int = 2000

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 8000
    graceful_shutdown_timeout: int = 30
    """Seconds to wait for runners to finish their current cycle on shutdown."""


def get_settings() -> VirtualCoSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> VirtualCoSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return VirtualCoSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
