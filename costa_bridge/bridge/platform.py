"""
Platform abstraction for locating the bundled costa binary.

One class per OS family knows where its binary lives inside the bundle
and how to prepare it for execution.
"""

import contextlib
import os
import platform as host_platform
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BIN_DIR = Path("res") / "bin"
EXECUTE_BITS = 0o111


@dataclass(frozen=True)
class ResolvedBinary:
    """Executable to launch and whether it came from the bundle."""
    path: str
    bundled: bool


class CostaPlatform(ABC):
    """Binary layout and preparation rules for one OS family."""

    binary_name: str = "costa"

    @abstractmethod
    def bundle_dir(self, machine: str) -> str:
        """Directory under res/bin holding the binary for this architecture."""
        pass

    def bundled_path(self, root: Path, machine: str) -> Path:
        return Path(root) / BIN_DIR / self.bundle_dir(machine) / self.binary_name

    def prepare(self, path: Path) -> None:
        """Best-effort: make sure owner, group and other may execute the binary."""
        with contextlib.suppress(OSError):
            mode = os.stat(path).st_mode
            if mode & EXECUTE_BITS != EXECUTE_BITS:
                os.chmod(path, mode | EXECUTE_BITS)


class DarwinPlatform(CostaPlatform):
    def bundle_dir(self, machine: str) -> str:
        # universal binary covers x64 and arm64
        return "darwin-universal"


class WindowsPlatform(CostaPlatform):
    binary_name = "costa.exe"

    def bundle_dir(self, machine: str) -> str:
        return "win32-x64"

    def prepare(self, path: Path) -> None:
        pass


class LinuxPlatform(CostaPlatform):
    def bundle_dir(self, machine: str) -> str:
        if normalize_machine(machine) == "arm64":
            return "linux-arm64"
        return "linux-x64"


def normalize_machine(machine: str) -> str:
    """Map platform.machine() spellings onto the bundle's arch names."""
    if machine.lower() in ("arm64", "aarch64"):
        return "arm64"
    return "x64"


def platform_for(system: Optional[str] = None) -> CostaPlatform:
    """
    Pick the platform implementation for a sys.platform value.

    Anything that is neither macOS nor Windows is treated as Linux.
    """
    system = system or sys.platform
    if system == "darwin":
        return DarwinPlatform()
    if system == "win32":
        return WindowsPlatform()
    return LinuxPlatform()


def resolve_bundled_path(
    root: Path,
    system: Optional[str] = None,
    machine: Optional[str] = None,
) -> Path:
    """Path where the bundle ships the binary for the given host."""
    return platform_for(system).bundled_path(root, machine or host_platform.machine())
