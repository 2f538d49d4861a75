"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (prefix L4YERCAK3_) or a local .env file.

Two things are NOT configured here:
- The session token. It lives in the credential store (~/.l4yercak3/config.json),
  written by `l4yercak3 login` and read fresh on every MCP request.
- The backend URL override stored in that same file. CredentialStore.backend_url()
  layers the file value over `backend_url` below.
"""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the L4YERCAK3_ prefix.
    For example, `backend_url` reads from L4YERCAK3_BACKEND_URL and
    `config_dir` reads from L4YERCAK3_CONFIG_DIR.
    """

    # --- Backend settings ---

    # Base URL of the L4YERCAK3 backend. Used for session validation and by
    # every tool handler that forwards to the business API.
    backend_url: str = "https://backend.l4yercak3.com"

    # Seconds before a backend call is abandoned. A timed-out validation makes
    # the request unauthenticated (fail closed).
    request_timeout: float = 10.0

    # --- Credential store ---

    # Directory holding config.json with the persisted CLI session.
    config_dir: Path = Path.home() / ".l4yercak3"

    # --- Server settings ---

    # "stdio" when spawned by an MCP client (the usual case), or
    # "streamable-http" to serve over HTTP on host:port.
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 8080

    # Logging verbosity. Maps to Python's logging levels.
    log_level: str = "info"

    model_config = {
        "env_prefix": "L4YERCAK3_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance: import this from other modules.
settings = Settings()
