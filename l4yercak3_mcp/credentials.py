"""
Persisted CLI session storage (~/.l4yercak3/config.json).

The login command writes a session here; the MCP server reads it on every
request; organization tools, application registration and `logout` rewrite
it. File layout:

    {
        "session": {
            "token": "cli_session_...",
            "expiresAt": 1738800000000,      # epoch milliseconds
            "userId": "user_123",
            "email": "alice@example.com",
            "organizationId": "org_456",
            "organizationName": "Acme"
        },
        "organizations": [],
        "settings": {"backendUrl": "https://backend.l4yercak3.com"},
        "projects": {"/abs/project/path": {"applicationId": "...", "updatedAt": ...}},
        "revision": 7
    }

The file is shared across processes (a running server and a concurrent CLI
command), with no locking. Writes go through a temp file and os.replace so
readers never see a half-written file, and `revision` gives optimistic
concurrency: a writer that finds the revision moved underneath it re-reads
and retries instead of silently overwriting the other write.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
MAX_WRITE_ATTEMPTS = 3


class CredentialStoreError(Exception):
    """The config file could not be written."""


class ConcurrentModificationError(CredentialStoreError):
    """Another process kept changing the config file while we tried to write it."""


class Session(BaseModel):
    """
    Persisted proof of login.

    Immutable: use `model_copy(update=...)` to derive a modified session.
    Keys the CLI writes that this model doesn't know about are kept
    (extra="allow") so a round trip through the server never drops them.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    token: str | None = None
    expires_at: int | None = None
    user_id: str | None = None
    email: str | None = None
    organization_id: str | None = None
    organization_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def now_ms() -> int:
    return int(time.time() * 1000)


class CredentialStore:
    """
    Reads and writes the CLI config file.

    Args:
        config_dir: Directory holding config.json (created with mode 0700 on
                    first write)
    """

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir).expanduser()
        self.config_file = self.config_dir / CONFIG_FILENAME

    # ----- Reading -----

    def read_config(self) -> dict[str, Any]:
        """
        Return the whole config object.

        A missing or unreadable file yields an empty config rather than an
        error: to the server that simply means "not logged in".
        """
        if not self.config_file.exists():
            return {"session": None, "organizations": [], "settings": {}}

        try:
            data = json.loads(self.config_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read config file %s: %s", self.config_file, e)
            return {"session": None, "organizations": [], "settings": {}}

        if not isinstance(data, dict):
            logger.warning("Config file %s is not a JSON object", self.config_file)
            return {"session": None, "organizations": [], "settings": {}}
        return data

    def read_session(self) -> Session | None:
        raw = self.read_config().get("session")
        if not raw:
            return None
        try:
            return Session.model_validate(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed session in %s: %s", self.config_file, e)
            return None

    def is_expired(self, session: Session, now: int | None = None) -> bool:
        """True when the session carries an expiry timestamp that has passed."""
        if session.expires_at is None:
            return False
        return session.expires_at < (now_ms() if now is None else now)

    def is_logged_in(self) -> bool:
        session = self.read_session()
        return bool(session and session.token and not self.is_expired(session))

    def backend_url(self, default: str) -> str:
        """Backend URL from the config file's settings, falling back to `default`."""
        file_settings = self.read_config().get("settings") or {}
        return file_settings.get("backendUrl") or default

    # ----- Writing -----

    def update_config(self, mutate: Callable[[dict[str, Any]], None]) -> dict[str, Any]:
        """
        Read-modify-write the whole config with optimistic concurrency.

        `mutate` edits the config dict in place. If another writer bumps the
        file's revision between our read and our write, the whole cycle is
        retried with the fresh state, so `mutate` may run more than once.

        Raises:
            ConcurrentModificationError: The revision kept moving
            CredentialStoreError: The file could not be written
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            config = self.read_config()
            revision = int(config.get("revision") or 0)

            mutate(config)

            if self._write_config(config, expected_revision=revision):
                return config

            logger.info(
                "Config file changed during write, retrying (attempt %d/%d)",
                attempt,
                MAX_WRITE_ATTEMPTS,
            )

        raise ConcurrentModificationError(
            f"{self.config_file} kept changing; gave up after {MAX_WRITE_ATTEMPTS} attempts"
        )

    def update_session(
        self, mutate: Callable[[Session | None], Session | None]
    ) -> Session | None:
        """
        Read-modify-write the session; see update_config().

        `mutate` receives the current session (or None) and returns the new
        one (None clears it).
        """

        def apply(config: dict[str, Any]) -> None:
            raw = config.get("session")
            updated = mutate(Session.model_validate(raw) if raw else None)
            config["session"] = updated.to_dict() if updated is not None else None

        config = self.update_config(apply)
        raw = config.get("session")
        return Session.model_validate(raw) if raw else None

    def save_project(self, project_path: str | Path, project: dict[str, Any]) -> None:
        """Record a local project's registration under its absolute path."""
        key = str(Path(project_path).expanduser().resolve())

        def apply(config: dict[str, Any]) -> None:
            projects = config.get("projects")
            if not isinstance(projects, dict):
                projects = {}
            projects[key] = {**project, "updatedAt": now_ms()}
            config["projects"] = projects

        self.update_config(apply)

    def project(self, project_path: str | Path) -> dict[str, Any] | None:
        key = str(Path(project_path).expanduser().resolve())
        projects = self.read_config().get("projects")
        return projects.get(key) if isinstance(projects, dict) else None

    def write_session(self, session: Session) -> None:
        self.update_session(lambda _current: session)

    def clear_session(self) -> None:
        self.update_session(lambda _current: None)

    def _write_config(self, config: dict[str, Any], expected_revision: int) -> bool:
        """
        Atomically replace the config file if its revision is still `expected_revision`.

        Returns False (without writing) when the on-disk revision moved.
        """
        self.config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

        on_disk = int(self.read_config().get("revision") or 0)
        if on_disk != expected_revision:
            return False

        config["revision"] = expected_revision + 1
        payload = json.dumps(config, indent=2)

        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.config_dir, prefix=".config-", suffix=".tmp")
            try:
                # mkstemp already creates the file 0600 (owner read/write only)
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, self.config_file)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CredentialStoreError(f"Could not write {self.config_file}: {e}") from e

        return True
