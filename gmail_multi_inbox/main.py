#!/usr/bin/env python3
"""
Gmail Multi-Inbox MCP Server - several Gmail accounts behind one set of tools.

This is the main entry point for the MCP server. Read and search tools
aggregate across every enabled account unless an account is named; all
other tools act on exactly one explicitly named account.
"""

import argparse
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from fastapi.responses import JSONResponse
from fastmcp import FastMCP

from . import __version__
from .config import Settings, expand_home, get_config_root
from .exceptions import GmailMultiInboxError
from .service import GmailMultiInboxService
from .utils.logging import configure_logging, get_logger

logger = get_logger("main")

SERVER_NAME = "gmail-multi-inbox-mcp"
SERVER_VERSION = __version__

TOOL_NAMES = [
    "list_accounts", "read_emails", "search_emails", "get_email_thread", "get_labels",
    "mark_as_read", "add_labels", "remove_labels", "archive_emails", "trash_emails",
    "create_label", "delete_label", "create_draft", "send_email",
    "begin_account_auth", "finish_account_auth",
]

# --- FastMCP Server Setup ---
mcp = FastMCP(name="GmailMultiInboxServer")


async def run_tool(name: str, call: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Run a service call, turning any failure into an error payload for the client."""
    try:
        return await call()
    except Exception as e:
        logger.error(
            f"Error executing {name}",
            extra={
                "data": {
                    "tool": name,
                    "exception_type": type(e).__name__,
                    "exception_message": str(e),
                }
            }
        )
        return {"status": "error", "error_message": f"Error executing {name}: {e}"}


def setup_tools(service: GmailMultiInboxService):
    """Set up all the MCP tools for the multi-inbox service."""

    # === Account Tools ===

    @mcp.tool()
    async def list_accounts() -> Dict[str, Any]:
        """List all configured Gmail inbox accounts and their authentication/health status."""
        return await run_tool("list_accounts", service.list_accounts)

    # === Aggregated Read Tools ===

    @mcp.tool()
    async def read_emails(account: Optional[str] = None, query: str = "", max_results: int = 20,
                          include_body: bool = False) -> Dict[str, Any]:
        """
        Read emails from one account or aggregate across all enabled accounts when account is omitted.

        Args:
            account: Optional account id. Omit to aggregate across all enabled accounts.
            query: Optional Gmail query string.
            max_results: Maximum emails to return (1-100).
            include_body: Include plaintext body extraction in each returned email.
        """
        return await run_tool("read_emails", lambda: service.read_emails(
            account=account, query=query, max_results=max_results, include_body=include_body
        ))

    @mcp.tool()
    async def search_emails(query: str, account: Optional[str] = None,
                            max_results: int = 25) -> Dict[str, Any]:
        """
        Search Gmail using query syntax. Omitting account searches all enabled inboxes and merges results.

        Args:
            query: Gmail search query.
            account: Optional account id. Omit to aggregate across all enabled accounts.
            max_results: Maximum emails to return (1-100).
        """
        return await run_tool("search_emails", lambda: service.search_emails(
            query=query, account=account, max_results=max_results
        ))

    # === Single-Account Tools ===

    @mcp.tool()
    async def get_email_thread(account: str, thread_id: str) -> Dict[str, Any]:
        """Get a full email thread for one account (account required)."""
        return await run_tool("get_email_thread", lambda: service.get_email_thread(account, thread_id))

    @mcp.tool()
    async def get_labels(account: str) -> Dict[str, Any]:
        """List labels for one account (account required)."""
        return await run_tool("get_labels", lambda: service.get_labels(account))

    @mcp.tool()
    async def mark_as_read(account: str, message_ids: List[str]) -> Dict[str, Any]:
        """Mark messages as read in one account (account required)."""
        return await run_tool("mark_as_read", lambda: service.mark_as_read(account, message_ids))

    @mcp.tool()
    async def add_labels(account: str, message_ids: List[str], label_ids: List[str]) -> Dict[str, Any]:
        """Add labels to messages in one account (account required)."""
        return await run_tool("add_labels", lambda: service.add_labels(account, message_ids, label_ids))

    @mcp.tool()
    async def remove_labels(account: str, message_ids: List[str], label_ids: List[str]) -> Dict[str, Any]:
        """Remove labels from messages in one account (account required)."""
        return await run_tool("remove_labels", lambda: service.remove_labels(account, message_ids, label_ids))

    @mcp.tool()
    async def archive_emails(account: str, message_ids: List[str]) -> Dict[str, Any]:
        """Archive messages in one account by removing the INBOX label (account required)."""
        return await run_tool("archive_emails", lambda: service.archive_emails(account, message_ids))

    @mcp.tool()
    async def trash_emails(account: str, message_ids: List[str]) -> Dict[str, Any]:
        """Move messages to trash in one account (account required)."""
        return await run_tool("trash_emails", lambda: service.trash_emails(account, message_ids))

    @mcp.tool()
    async def create_label(account: str, name: str, label_list_visibility: str = "labelShow",
                           message_list_visibility: str = "show") -> Dict[str, Any]:
        """Create a new Gmail label in one account (account required)."""
        return await run_tool("create_label", lambda: service.create_label(
            account, name, label_list_visibility, message_list_visibility
        ))

    @mcp.tool()
    async def delete_label(account: str, label_id: str) -> Dict[str, Any]:
        """Delete a Gmail label in one account (account required)."""
        return await run_tool("delete_label", lambda: service.delete_label(account, label_id))

    @mcp.tool()
    async def create_draft(account: str, to: str, subject: str, body: str, cc: Optional[str] = None,
                           bcc: Optional[str] = None, html: bool = False) -> Dict[str, Any]:
        """Create a draft email in one account (account required). Set html to send body as text/html."""
        return await run_tool("create_draft", lambda: service.create_draft(
            account, to, subject, body, cc=cc, bcc=bcc, html=html
        ))

    @mcp.tool()
    async def send_email(account: str, to: str, subject: str, body: str, cc: Optional[str] = None,
                         bcc: Optional[str] = None, html: bool = False) -> Dict[str, Any]:
        """Send an email from one account (account required). Set html to send body as text/html."""
        return await run_tool("send_email", lambda: service.send_email(
            account, to, subject, body, cc=cc, bcc=bcc, html=html
        ))

    # === Onboarding Tools ===

    @mcp.tool()
    async def begin_account_auth(account_id: str, email: str, display_name: Optional[str] = None,
                                 credentials_json: Optional[Union[Dict[str, Any], str]] = None,
                                 credentials_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Start OAuth onboarding for an account. Accepts credentials JSON or a path to credentials.json.

        Args:
            account_id: Stable id for this inbox account (letters/numbers/_/- only).
            email: Email address for this account.
            display_name: Optional display name (e.g., Personal, Work).
            credentials_json: OAuth client JSON object or JSON string from Google Cloud.
            credentials_path: Path to an existing credentials.json file.
        """
        return await run_tool("begin_account_auth", lambda: service.begin_account_auth(
            account_id, email, display_name=display_name,
            credentials_json=credentials_json, credentials_path=credentials_path
        ))

    @mcp.tool()
    async def finish_account_auth(account_id: str, authorization_code: str) -> Dict[str, Any]:
        """Complete OAuth onboarding by exchanging the authorization code and storing token.json."""
        return await run_tool("finish_account_auth", lambda: service.finish_account_auth(
            account_id, authorization_code
        ))


def health_response(service: GmailMultiInboxService) -> JSONResponse:
    """Report registry status; a corrupt registry is reported as unhealthy."""
    try:
        config = service.load_config()
    except GmailMultiInboxError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse({
            "status": "unhealthy",
            "service": SERVER_NAME,
            "version": SERVER_VERSION,
            "timestamp": str(datetime.now()),
            "config_root": str(service.config_root),
            "error": str(e),
        }, status_code=503)
    return JSONResponse({
        "status": "healthy",
        "service": SERVER_NAME,
        "version": SERVER_VERSION,
        "timestamp": str(datetime.now()),
        "mcp_endpoint": "/mcp",
        "config_root": str(service.config_root),
        "accounts": len(config.accounts),
        "enabled_accounts": sum(1 for account in config.accounts if account.enabled),
        "tools_count": len(TOOL_NAMES),
    })


def setup_health_endpoints(service: GmailMultiInboxService):
    """Set up health endpoints (HTTP transport only)."""

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request):
        return health_response(service)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Gmail Multi-Inbox FastMCP Server')
    parser.add_argument('--config-dir', default=None,
                        help='Config root holding accounts.json (default: $GMAIL_MCP_CONFIG_DIR or ~/.gmail-multi-mcp)')
    parser.add_argument('--transport', choices=['stdio', 'streamable-http'], default=settings.MCP_TRANSPORT,
                        help='MCP transport to serve')
    parser.add_argument('--host', default=settings.MCP_HOST, help='Host to bind the server to (HTTP only)')
    parser.add_argument('--port', type=int, default=settings.MCP_PORT, help='Port to bind the server to (HTTP only)')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    settings = Settings()
    args = build_parser(settings).parse_args(argv)

    configure_logging(
        service_name=SERVER_NAME,
        log_level=settings.LOG_LEVEL,
        enable_json=settings.LOG_JSON,
    )

    config_root = expand_home(args.config_dir) if args.config_dir else get_config_root(settings)
    service = GmailMultiInboxService(config_root)

    setup_tools(service)
    setup_health_endpoints(service)

    # --- Run FastMCP Server ---
    try:
        if args.transport == "stdio":
            logger.info(f"Running on stdio. Config root: {config_root}")
            mcp.run(transport="stdio")
        else:
            logger.info(f"Starting Gmail Multi-Inbox FastMCP server on http://{args.host}:{args.port}")
            logger.info(f"MCP endpoint: http://{args.host}:{args.port}/mcp")
            logger.info(f"Health endpoint: http://{args.host}:{args.port}/health")
            mcp.run(transport="streamable-http", host=args.host, port=args.port, path="/mcp")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise


if __name__ == "__main__":
    main()
