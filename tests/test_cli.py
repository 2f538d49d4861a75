"""Tests for the session commands in l4yercak3_mcp/cli.py."""

import pytest

from l4yercak3_mcp.cli import main
from l4yercak3_mcp.config import Settings


@pytest.fixture
def config(store):
    # Nothing listens on port 9, so backend validation fails with a network error.
    return Settings(config_dir=store.config_dir, backend_url="http://127.0.0.1:9", request_timeout=0.5)


class TestStatus:
    def test_not_logged_in(self, config, capsys):
        assert main(["status"], config=config) == 1
        assert "Not logged in" in capsys.readouterr().out

    def test_expired_session(self, config, write_session, capsys):
        write_session(expires_in_hours=-1)

        assert main(["status"], config=config) == 1
        assert "Session expired" in capsys.readouterr().out

    def test_unreachable_backend(self, config, write_session, capsys):
        write_session(email="alice@example.com", organization_name="Acme")

        assert main(["status"], config=config) == 1

        out = capsys.readouterr().out
        assert "Logged in" in out
        assert "alice@example.com" in out
        assert "Could not validate session" in out


class TestLogout:
    def test_clears_session(self, config, store, write_session, capsys):
        write_session()

        assert main(["logout"], config=config) == 0
        assert "Successfully logged out" in capsys.readouterr().out
        assert store.read_session() is None

    def test_not_logged_in(self, config, capsys):
        assert main(["logout"], config=config) == 0
        assert "You are not logged in" in capsys.readouterr().out


def test_command_is_required(config):
    with pytest.raises(SystemExit):
        main([], config=config)
