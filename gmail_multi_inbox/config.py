from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONFIG_DIR = Path.home() / ".gmail-multi-mcp"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Root of accounts.json and the per-account credential/token files
    GMAIL_MCP_CONFIG_DIR: Optional[str] = None

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # Set to True for JSON output in production

    # Transport Configuration
    MCP_TRANSPORT: Literal["stdio", "streamable-http"] = "stdio"
    MCP_HOST: str = "127.0.0.1"
    MCP_PORT: int = 8003


def expand_home(input_path: str) -> Path:
    """Expand a leading ``~`` and return an absolute path."""
    return Path(input_path).expanduser().resolve()


def get_config_root(settings: Optional[Settings] = None) -> Path:
    """Return the configuration root, honouring GMAIL_MCP_CONFIG_DIR."""
    settings = settings or Settings()
    env_path = (settings.GMAIL_MCP_CONFIG_DIR or "").strip()
    if not env_path:
        return DEFAULT_CONFIG_DIR
    return expand_home(env_path)
