"""
Backend abstraction for file and command operations.
The local backend operates on the project root on this machine.
"""

import logging
import os
import shutil
import signal
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_CANCEL_POLL_INTERVAL = 0.1


class CommandTimeout(Exception):
    """Raised when a command exceeds its wall-clock timeout."""

    def __init__(self, timeout: float, stdout: str = "", stderr: str = ""):
        super().__init__(f"Command timed out after {timeout}s")
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


class CommandCancelled(Exception):
    """Raised when a running command is killed by the cancellation signal."""

    def __init__(self, stdout: str = "", stderr: str = ""):
        super().__init__("Command cancelled")
        self.stdout = stdout
        self.stderr = stderr


class Backend(ABC):
    """Abstract backend for file system and command operations."""

    @property
    @abstractmethod
    def working_directory(self) -> str:
        """Return the working directory path."""

    @abstractmethod
    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        """List entries in a directory. Returns list of {name, type, size?}."""

    @abstractmethod
    def read_file(self, path: str, errors: str = "replace") -> str:
        """Read file content as UTF-8 text. `errors` is the codec error handler."""

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Write content to a file (create dirs as needed)."""

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Check if a path is a directory."""

    @abstractmethod
    def run_command(
        self,
        command: str,
        timeout: float = 30,
        max_output_bytes: int = 1024 * 1024,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[str, str, int]:
        """Run a shell command in the working directory. Returns (stdout, stderr, returncode)."""

    @abstractmethod
    def search(
        self,
        pattern: str,
        path: str = ".",
        include: Sequence[str] = (),
        exclude_dirs: Sequence[str] = (),
        timeout: float = 10,
    ) -> Tuple[str, int]:
        """Search for a regex pattern. Returns (matching lines, returncode)."""

    def resolve_path(self, path: str) -> str:
        """Resolve a path relative to the working directory."""
        if os.path.isabs(path):
            return os.path.normpath(path)
        return os.path.normpath(os.path.join(self.working_directory, path))


# ============================================================
# Local Backend
# ============================================================

# Cache ripgrep availability
_HAS_RIPGREP: Optional[bool] = None


def _has_ripgrep() -> bool:
    global _HAS_RIPGREP
    if _HAS_RIPGREP is None:
        _HAS_RIPGREP = shutil.which("rg") is not None
    return _HAS_RIPGREP


def _kill_process(proc: subprocess.Popen) -> None:
    """Kill a process and its entire process group."""
    try:
        # start_new_session makes the shell the group leader, so pgid == pid even after it exits
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, OSError):
        pass
    try:
        proc.kill()
    except (ProcessLookupError, OSError):
        pass


class _CappedReader(threading.Thread):
    """Drain a pipe, keeping at most max_bytes of it."""

    def __init__(self, pipe, max_bytes: int):
        super().__init__(daemon=True)
        self._pipe = pipe
        self._max_bytes = max_bytes
        self._chunks: List[bytes] = []
        self._kept = 0
        self.truncated = False

    def run(self) -> None:
        try:
            for chunk in iter(lambda: self._pipe.read(8192), b""):
                room = self._max_bytes - self._kept
                if room > 0:
                    self._chunks.append(chunk[:room])
                    self._kept += min(len(chunk), room)
                if len(chunk) > room:
                    self.truncated = True
        except (OSError, ValueError):
            pass

    def text(self) -> str:
        out = b"".join(self._chunks).decode("utf-8", errors="replace")
        if self.truncated:
            out += f"\n... [output truncated at {self._max_bytes} bytes]"
        return out


class LocalBackend(Backend):
    """Backend that operates on the local filesystem."""

    def __init__(self, working_directory: str = "."):
        self._working_directory = os.path.realpath(working_directory)

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        full = self.resolve_path(path) if path else self._working_directory
        entries = []
        for name in sorted(os.listdir(full)):
            child = os.path.join(full, name)
            if os.path.isdir(child):
                entries.append({"name": name, "type": "directory"})
            elif os.path.isfile(child):
                entries.append({"name": name, "type": "file", "size": os.path.getsize(child)})
        return entries

    def read_file(self, path: str, errors: str = "replace") -> str:
        full = self.resolve_path(path)
        with open(full, "r", encoding="utf-8", errors=errors, newline="") as f:
            return f.read()

    def write_file(self, path: str, content: str) -> None:
        """Write atomically: temp file in the target directory, then os.replace."""
        full = self.resolve_path(path)
        directory = os.path.dirname(full)
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=os.path.basename(full))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(tmp_path, full)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(self.resolve_path(path))

    def run_command(
        self,
        command: str,
        timeout: float = 30,
        max_output_bytes: int = 1024 * 1024,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[str, str, int]:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=self._working_directory,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,  # own process group for clean kill
        )
        out_reader = _CappedReader(proc.stdout, max_output_bytes)
        err_reader = _CappedReader(proc.stderr, max_output_bytes)
        out_reader.start()
        err_reader.start()

        timed_out = False
        cancelled = False
        waited = 0.0
        try:
            while True:
                try:
                    proc.wait(timeout=_CANCEL_POLL_INTERVAL)
                    break
                except subprocess.TimeoutExpired:
                    waited += _CANCEL_POLL_INTERVAL
                if cancel is not None and cancel.is_set():
                    cancelled = True
                    _kill_process(proc)
                    proc.wait()
                    break
                if waited >= timeout:
                    timed_out = True
                    _kill_process(proc)
                    proc.wait()
                    break
        finally:
            # Background children of the shell still hold the pipes open
            _kill_process(proc)
            for reader, pipe in ((out_reader, proc.stdout), (err_reader, proc.stderr)):
                reader.join(timeout=1.0)
                if pipe is None or reader.is_alive():
                    continue
                try:
                    pipe.close()
                except OSError:
                    pass

        stdout, stderr = out_reader.text(), err_reader.text()
        if timed_out:
            logger.warning(f"Command timed out after {timeout}s: {command[:200]}")
            raise CommandTimeout(timeout, stdout, stderr)
        if cancelled:
            logger.info(f"Command cancelled: {command[:200]}")
            raise CommandCancelled(stdout, stderr)
        return stdout, stderr, proc.returncode

    def search(
        self,
        pattern: str,
        path: str = ".",
        include: Sequence[str] = (),
        exclude_dirs: Sequence[str] = (),
        timeout: float = 10,
    ) -> Tuple[str, int]:
        target = self.resolve_path(path)
        if _has_ripgrep():
            cmd = ["rg", "-n", "--no-heading", "--color", "never"]
            for ext in include:
                cmd += ["-g", f"*{ext}"]
            for d in exclude_dirs:
                cmd += ["-g", f"!{d}"]
            cmd += ["-e", pattern, "--", target]
        else:
            cmd = ["grep", "-rnE"]
            for ext in include:
                cmd.append(f"--include=*{ext}")
            for d in exclude_dirs:
                cmd.append(f"--exclude-dir={d}")
            cmd += ["-e", pattern, "--", target]

        proc = subprocess.run(
            cmd,
            cwd=self._working_directory,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
        if proc.returncode > 1:
            return proc.stderr.strip(), proc.returncode

        prefix = self._working_directory.rstrip(os.sep) + os.sep
        lines = [ln[len(prefix):] if ln.startswith(prefix) else ln for ln in proc.stdout.splitlines()]
        return "\n".join(lines), proc.returncode
