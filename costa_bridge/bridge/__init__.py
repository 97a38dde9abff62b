"""
Process bridge to the costa CLI.

Resolves the bundled binary, runs it with a hard timeout and parses its
JSON output into typed results.
"""

from costa_bridge.bridge.client import BridgeClient
from costa_bridge.bridge.errors import (
    BridgeError,
    CliNotFoundError,
    CliTimeoutError,
    LoginFailedError,
    MalformedResponseError,
    NonZeroExitError,
    SpawnError,
)
from costa_bridge.bridge.schemas import LoginResult, LoginStatus, StatusResult, TokenResult

__all__ = [
    "BridgeClient",
    "BridgeError",
    "CliNotFoundError",
    "CliTimeoutError",
    "LoginFailedError",
    "LoginResult",
    "LoginStatus",
    "MalformedResponseError",
    "NonZeroExitError",
    "SpawnError",
    "StatusResult",
    "TokenResult",
]
