import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger("costa.bridge")


@dataclass
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str


class ProcessRunner(ABC):
    """Launches a process from an argument vector and collects its output."""

    @abstractmethod
    async def run(self, argv: Sequence[str], timeout: float) -> ProcessOutput:
        """
        Run argv to completion.

        Raises:
            OSError: the process could not be started
            asyncio.TimeoutError: the process outlived ``timeout`` and was killed
        """
        pass


class AsyncioProcessRunner(ProcessRunner):
    """Runs processes with asyncio subprocesses; no shell is involved."""

    async def run(self, argv: Sequence[str], timeout: float) -> ProcessOutput:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Process %s exceeded %ss, killing pid %s", argv[0], timeout, process.pid)
            await self._kill(process)
            raise
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        return ProcessOutput(
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
        # reap so no zombie outlives the call
        await process.wait()
