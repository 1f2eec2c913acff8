"""
Shared plumbing for external tool invocations: the append-only run log,
waiting for files that a tool writes asynchronously, and reaping processes
that never exit on their own.
"""

import logging
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

SEPARATOR = "===================================="


class RunLog:
    """
    Plain-text transcript of a build run.

    The file is opened in append mode for every write and closed again, so
    tool logs can be copied in between writes without holding a handle.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def start(self, header: str) -> None:
        """Truncate the log and write the run header."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(f"{header}\n")

    def append(self, message: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(f"{message}\n")

    def section(self, title: str) -> None:
        self.append(title)
        self.append(SEPARATOR)

    def append_file(self, source: Union[str, Path]) -> Optional[str]:
        """
        Copy another log into this one.

        Returns:
            The copied text, or None if the source does not exist
        """
        source = Path(source)
        if not source.exists():
            return None
        text = source.read_text(encoding='utf-8', errors='replace')
        self.append(text)
        return text


@dataclass
class InvocationResult:
    """Outcome of one external tool invocation."""
    tool: str
    exit_code: Optional[int]
    output_path: Optional[Path] = None
    log_text: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def settle(seconds: float) -> None:
    """Give the mod organizer's virtual file system time to flush."""
    if seconds > 0:
        time.sleep(seconds)


def wait_for_file(
    path: Path,
    poll_interval: float,
    timeout: Optional[float] = None,
) -> bool:
    """
    Block until a file exists.

    Args:
        path: File to wait for
        poll_interval: Seconds between checks
        timeout: Give up after this many seconds; None waits forever

    Returns:
        True if the file appeared, False on timeout
    """
    start = time.monotonic()
    while not path.exists():
        if timeout is not None and time.monotonic() - start >= timeout:
            logger.debug(f"Stopped waiting for {path} after {timeout}s")
            return False
        time.sleep(poll_interval)
    return True


def terminate_process(process: subprocess.Popen, timeout: float = 5.0) -> Optional[int]:
    """
    Terminate a process and reap it, killing it if it ignores the request.

    Returns:
        The process exit code
    """
    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} did not terminate, killing it")
            process.kill()
            process.wait()
    return process.returncode
