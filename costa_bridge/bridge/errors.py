"""
Error taxonomy for costa CLI invocations.

Every failure raised by the bridge derives from BridgeError and carries a
stable ``code`` that the HTTP layer reports to callers.
"""

from typing import Optional, Sequence

from costa_bridge.bridge.schemas import BridgeErrorResponse


class BridgeError(Exception):
    """Base class for failures invoking the costa CLI."""

    code = "bridge_error"

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.command = list(command) if command else []
        self.stderr = stderr

    def to_response(self) -> BridgeErrorResponse:
        return BridgeErrorResponse(message=self.message, code=self.code)


class CliNotFoundError(BridgeError):
    """Neither the bundled binary nor one on PATH could be started."""

    code = "cli_not_found"


class CliTimeoutError(BridgeError):
    code = "timeout"


class NonZeroExitError(BridgeError):
    code = "non_zero_exit"

    def __init__(self, message: str, *, returncode: int, **kwargs):
        super().__init__(message, **kwargs)
        self.returncode = returncode


class MalformedResponseError(BridgeError):
    """CLI output did not parse as the expected JSON document."""

    code = "malformed_response"

    def __init__(self, message: str, *, stdout: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.stdout = stdout


class SpawnError(BridgeError):
    code = "spawn_failed"


class LoginFailedError(BridgeError):
    """Login completed without returning an auth URL to open."""

    code = "login_failed"
