"""Configuration module for noteboxMCP.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

SETTINGS_FILENAME = "settings.json"


@dataclass
class Config:
    """Application configuration."""

    state_dir: Path
    workspace: Path | None
    port: int
    read_only: bool
    debounce_ms: int
    sync_interval: int

    @property
    def settings_path(self) -> Path:
        """File holding app-level settings such as the last workspace."""
        return self.state_dir / SETTINGS_FILENAME

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @classmethod
    def from_env(
        cls,
        read_only_override: bool | None = None,
        workspace_override: Path | str | None = None,
    ) -> "Config":
        """Load configuration from environment variables.

        Args:
            read_only_override: If provided, overrides the NOTEBOX_READ_ONLY env var.
            workspace_override: If provided, overrides the NOTEBOX_WORKSPACE env var.
        """
        default_state = str(Path.home() / ".notebox")
        state_dir = Path(os.getenv("NOTEBOX_STATE_DIR", default_state)).expanduser()

        workspace_str = workspace_override or os.getenv("NOTEBOX_WORKSPACE")
        workspace = Path(workspace_str).expanduser() if workspace_str else None

        port_str = os.getenv("NOTEBOX_PORT", "8080")
        try:
            port = int(port_str)
            if not 1 <= port <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {port}")
        except ValueError as e:
            raise ValueError(f"Invalid NOTEBOX_PORT value '{port_str}': {e}") from e

        # Read-only mode - CLI flag takes precedence over env var
        if read_only_override is not None:
            read_only = read_only_override
        else:
            read_only = os.getenv("NOTEBOX_READ_ONLY", "").lower() in ("1", "true", "yes")

        debounce_str = os.getenv("NOTEBOX_DEBOUNCE_MS", "250")
        try:
            debounce_ms = int(debounce_str)
            if debounce_ms < 0:
                raise ValueError(f"Debounce must be >= 0, got {debounce_ms}")
        except ValueError as e:
            raise ValueError(f"Invalid NOTEBOX_DEBOUNCE_MS value '{debounce_str}': {e}") from e

        # Sync interval - 0 disables the background sync thread
        interval_str = os.getenv("NOTEBOX_SYNC_INTERVAL", "30")
        try:
            sync_interval = int(interval_str)
        except ValueError as e:
            raise ValueError(f"Invalid NOTEBOX_SYNC_INTERVAL value '{interval_str}': {e}") from e
        if sync_interval < 0:
            raise ValueError(f"Sync interval must be >= 0, got {sync_interval}")

        return cls(
            state_dir=state_dir,
            workspace=workspace,
            port=port,
            read_only=read_only,
            debounce_ms=debounce_ms,
            sync_interval=sync_interval,
        )
