import asyncio
import logging
import platform as host_platform
from pathlib import Path
from typing import Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from costa_bridge.config import settings
from costa_bridge.bridge.errors import (
    BridgeError,
    CliNotFoundError,
    CliTimeoutError,
    MalformedResponseError,
    NonZeroExitError,
    SpawnError,
)
from costa_bridge.bridge.platform import ResolvedBinary, platform_for
from costa_bridge.bridge.process import AsyncioProcessRunner, ProcessRunner
from costa_bridge.bridge.schemas import BridgeResult, LoginResult, StatusResult, TokenResult

logger = logging.getLogger("costa.bridge")

ModelT = TypeVar("ModelT", bound=BaseModel)


class BridgeClient:
    """Client for invoking the locally installed costa CLI."""

    def __init__(
        self,
        bundle_root: Optional[Path] = None,
        runner: Optional[ProcessRunner] = None,
        timeout: Optional[float] = None,
        binary_name: Optional[str] = None,
        system: Optional[str] = None,
        machine: Optional[str] = None,
    ):
        self.bundle_root = Path(bundle_root) if bundle_root else settings.bundle_root
        self.runner = runner or AsyncioProcessRunner()
        self.timeout = timeout if timeout is not None else settings.CLI_TIMEOUT_SECONDS
        self.binary_name = binary_name or settings.COSTA_BIN_NAME
        self.platform = platform_for(system)
        self.machine = machine

    def resolve_binary(self) -> ResolvedBinary:
        """
        Pick the bundled binary when present, otherwise the name on PATH.
        """
        bundled = self.platform.bundled_path(self.bundle_root, self.machine or host_platform.machine())
        if bundled.exists():
            logger.info(f"cli: Using bundled CLI at {bundled}")
            # archive installs can drop executable bits
            self.platform.prepare(bundled)
            return ResolvedBinary(path=str(bundled), bundled=True)

        logger.info(f"cli: Bundled CLI not found at {bundled}, trying PATH")
        return ResolvedBinary(path=self.binary_name, bundled=False)

    async def run(self, args: Sequence[str]) -> BridgeResult:
        """
        Execute the CLI once with the given arguments.

        Args:
            args: Arguments passed straight to the process (no shell)

        Returns:
            Captured stdout and stderr

        Raises:
            CliNotFoundError: no bundled binary and none on PATH
            CliTimeoutError: the process was killed after the timeout
            NonZeroExitError: the process reported failure
            SpawnError: the OS refused to start the process
        """
        args = list(args)
        binary = self.resolve_binary()
        command = [binary.path, *args]
        label = " ".join(args) or binary.path

        try:
            output = await self.runner.run(command, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CliTimeoutError(
                f"costa {label} timed out after {self.timeout:g}s", command=command
            ) from e
        except FileNotFoundError as e:
            if not binary.bundled:
                raise CliNotFoundError(
                    "Costa CLI not found. Please reinstall costa-bridge or install the costa CLI manually.",
                    command=command,
                ) from e
            raise SpawnError(f"Failed to start {binary.path}: {e}", command=command) from e
        except OSError as e:
            raise SpawnError(f"Failed to start {binary.path}: {e}", command=command) from e

        if output.returncode != 0:
            stderr = output.stderr.strip()
            message = f"costa {label} exited with code {output.returncode}"
            if stderr:
                message += f"\n{stderr}"
            raise NonZeroExitError(message, returncode=output.returncode, command=command, stderr=stderr)

        return BridgeResult(stdout=output.stdout, stderr=output.stderr)

    def _parse(self, operation: str, result: BridgeResult, model: Type[ModelT]) -> ModelT:
        try:
            return model.model_validate_json(result.stdout)
        except ValidationError as e:
            reason = e.errors()[0]["msg"] if e.errors() else str(e)
            raise MalformedResponseError(
                f"costa {operation} returned malformed output: {reason}",
                stdout=result.stdout,
                stderr=result.stderr.strip(),
            ) from e

    async def login(self) -> LoginResult:
        try:
            result = await self.run(["login", "--format", "json"])
            login_result = self._parse("login", result, LoginResult)
            logger.info(f"cli.login: {login_result.model_dump_json(exclude_none=True)}")
            return login_result
        except BridgeError as e:
            logger.error(f"cli.login failed: {e}")
            raise

    async def status(self) -> StatusResult:
        try:
            result = await self.run(["status", "--format", "json"])
            status_result = self._parse("status", result, StatusResult)
            logger.info(f"cli.status: {status_result.model_dump_json(exclude_none=True)}")
            return status_result
        except BridgeError as e:
            logger.error(f"cli.status failed: {e}")
            raise

    async def token(self) -> TokenResult:
        try:
            result = await self.run(["token", "--format", "json"])
            token_result = self._parse("token", result, TokenResult)
            # never log the token itself
            logger.info(f"cli.token: type={token_result.token_type} expires_at={token_result.expires_at}")
            return token_result
        except BridgeError as e:
            logger.error(f"cli.token failed: {e}")
            raise

    async def logout(self) -> None:
        try:
            await self.run(["logout"])
            logger.info("cli.logout: successful")
        except BridgeError as e:
            logger.error(f"cli.logout failed: {e}")
            raise

    async def version(self) -> str:
        try:
            result = await self.run(["--version"])
            return result.stdout.strip()
        except BridgeError as e:
            logger.error(f"cli.version failed: {e}")
            raise
