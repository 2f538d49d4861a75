"""
Command-line entry point.

    l4yercak3-mcp mcp-server   Start the MCP server (normally spawned by an MCP client)
    l4yercak3-mcp status       Show the stored session and check it with the backend
    l4yercak3-mcp logout       Clear the stored session

Logging in is handled by the main `l4yercak3 login` command, which writes the
session this tool reads.

To add the server to Claude Code:
    claude mcp add l4yercak3 -- l4yercak3-mcp mcp-server
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from l4yercak3_mcp.backend import BackendClient, BackendError
from l4yercak3_mcp.config import Settings, settings
from l4yercak3_mcp.credentials import CredentialStore, now_ms

SETUP_HINT = """\
This command starts the L4YERCAK3 MCP server for AI assistant integration.
It's typically started by your MCP client, not run directly.

  Claude Code:     claude mcp add l4yercak3 -- l4yercak3-mcp mcp-server
  Other clients:   command "l4yercak3-mcp mcp-server", transport stdio

Requires a session from "l4yercak3 login".
"""

DAY_MS = 24 * 60 * 60 * 1000


def cmd_mcp_server(config: Settings) -> int:
    # Everything goes to stderr: stdout carries the MCP protocol.
    if sys.stdin.isatty() and sys.stdout.isatty():
        print(SETUP_HINT, file=sys.stderr)
        print("Starting server anyway (press Ctrl+C to exit)...\n", file=sys.stderr)

    # Imported here so `status` and `logout` don't pay for loading FastMCP.
    from l4yercak3_mcp.server import run

    run(config)
    return 0


def cmd_status(config: Settings) -> int:
    store = CredentialStore(config.config_dir)
    session = store.read_session()

    if session is None or not session.token:
        print("Not logged in")
        print('Run "l4yercak3 login" to authenticate')
        return 1

    if store.is_expired(session):
        expired = datetime.fromtimestamp(session.expires_at / 1000, tz=timezone.utc)
        print(f"Session expired: {expired.isoformat()}")
        print('Run "l4yercak3 login" to authenticate')
        return 1

    print("Logged in")
    if session.email:
        print(f"  Email:        {session.email}")
    if session.organization_name or session.organization_id:
        print(f"  Organization: {session.organization_name or session.organization_id}")
    if session.expires_at:
        expires = datetime.fromtimestamp(session.expires_at / 1000, tz=timezone.utc)
        days_left = (session.expires_at - now_ms()) // DAY_MS
        print(f"  Expires:      {expires.isoformat()} ({days_left} days)")

    backend_url = store.backend_url(config.backend_url)
    backend = BackendClient(backend_url, timeout=config.request_timeout)
    print(f"  Backend URL:  {backend_url}")

    try:
        validation = asyncio.run(backend.validate_session(session.token))
    except BackendError as e:
        print(f"Could not validate session: {e.message}")
        return 1

    if not validation.get("valid"):
        print("Backend rejected the session; log in again")
        return 1

    permissions = validation.get("permissions") or []
    print(f"  Permissions:  {', '.join(permissions) if permissions else '(none)'}")
    return 0


def cmd_logout(config: Settings) -> int:
    store = CredentialStore(config.config_dir)
    if not store.is_logged_in():
        print("You are not logged in")
        return 0

    store.clear_session()
    print("Successfully logged out")
    return 0


COMMANDS = {
    "mcp-server": cmd_mcp_server,
    "status": cmd_status,
    "logout": cmd_logout,
}


def main(argv: list[str] | None = None, config: Settings | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="l4yercak3-mcp",
        description="L4YERCAK3 MCP server and session utilities.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("mcp-server", help="Start the MCP server for AI assistant integration")
    subparsers.add_parser("status", help="Show authentication status")
    subparsers.add_parser("logout", help="Clear the stored CLI session")

    args = parser.parse_args(argv)
    return COMMANDS[args.command](config or settings)


if __name__ == "__main__":
    sys.exit(main())
