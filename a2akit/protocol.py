"""Protocol paths and the standard and agent-specific error values."""

from __future__ import annotations

from .jsonrpc2.wire import (
    CLIENT_CLOSING,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SERVER_CLOSING,
    SERVER_OVERLOADED,
    UNKNOWN_ERROR,
    WireError,
)

Error = WireError

# Path of an agent's public card, relative to the agent's base URL.
AGENT_CARD_WELL_KNOWN_PATH = "/.well-known/agent.json"

# Path of the extended card that is only served to authenticated callers.
EXTENDED_AGENT_CARD_PATH = "/agent/authenticatedExtendedCard"

# Default path of the JSON-RPC endpoint.
DEFAULT_RPC_URL = "/"


def new_error(code: int, message: str) -> WireError:
    """Return an error with an application-specific code and message."""
    return WireError(code, message)


def agent_card_url(base_url: str) -> str:
    """Return the URL of the public agent card served under ``base_url``."""
    return f"{base_url.rstrip('/')}{AGENT_CARD_WELL_KNOWN_PATH}"


TASK_NOT_FOUND = new_error(-32001, "JSON RPC task not found")
TASK_NOT_CANCELABLE = new_error(-32002, "JSON RPC task not cancelable")
PUSH_NOTIFICATION_NOT_SUPPORTED = new_error(-32003, "JSON RPC push notification not supported")
UNSUPPORTED_OPERATION = new_error(-32004, "JSON RPC unsupported operation")
CONTENT_TYPE_NOT_SUPPORTED = new_error(-32005, "JSON RPC content type not supported")
INVALID_AGENT_RESPONSE = new_error(-32006, "JSON RPC invalid agent response")
METHOD_NOT_IMPLEMENTED = new_error(-32099, "JSON RPC method not implemented")

__all__ = [
    "AGENT_CARD_WELL_KNOWN_PATH",
    "CLIENT_CLOSING",
    "CONTENT_TYPE_NOT_SUPPORTED",
    "DEFAULT_RPC_URL",
    "EXTENDED_AGENT_CARD_PATH",
    "Error",
    "INTERNAL_ERROR",
    "INVALID_AGENT_RESPONSE",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "METHOD_NOT_IMPLEMENTED",
    "PARSE_ERROR",
    "PUSH_NOTIFICATION_NOT_SUPPORTED",
    "SERVER_CLOSING",
    "SERVER_OVERLOADED",
    "TASK_NOT_CANCELABLE",
    "TASK_NOT_FOUND",
    "UNKNOWN_ERROR",
    "UNSUPPORTED_OPERATION",
    "agent_card_url",
    "new_error",
]