"""Agent-to-agent protocol building blocks: JSON-RPC 2.0, protocol constants and errors, and users."""

__version__ = "0.1.0"