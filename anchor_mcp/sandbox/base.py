from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


class PipelineError(Exception):
    """Base exception for execution pipeline errors."""
    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        self.stage = stage


class ArtifactWriteError(PipelineError):
    """Raised when an artifact cannot be persisted to the working directory."""
    def __init__(self, message: str, path: Path = None):
        super().__init__(message, stage="write")
        self.path = path


class InvalidTransition(PipelineError):
    """Raised when a job is moved to a state its current state cannot reach."""
    pass


@dataclass(frozen=True)
class CompileError:
    """Compiler diagnostics. Returned, never raised."""
    diagnostics: str

    def __str__(self):
        return self.diagnostics


@dataclass(frozen=True)
class CompiledUnit:
    text: str


@dataclass(frozen=True)
class CleanupWarning:
    """Non-fatal failure to delete an artifact."""
    path: Path
    message: str

    def __str__(self):
        return f"{self.path}: {self.message}"


class ExitStatus(str, Enum):
    SUCCESS = "success"
    NON_ZERO_EXIT = "non_zero_exit"
    TIMED_OUT = "timed_out"
    SPAWN_FAILED = "spawn_failed"


@dataclass(frozen=True)
class ExecutionOutcome:
    stdout: str
    stderr: str
    status: ExitStatus
    exit_code: Optional[int]
    duration_ms: float
    truncated: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ExitStatus.SUCCESS

    def describe(self) -> str:
        """Human readable exit status, e.g. ``NonZeroExit(7)``."""
        if self.status is ExitStatus.SUCCESS:
            return "Success"
        if self.status is ExitStatus.NON_ZERO_EXIT:
            return f"NonZeroExit({self.exit_code})"
        if self.status is ExitStatus.TIMED_OUT:
            return "TimedOut"
        return "SpawnFailed"

    def __str__(self):
        return (
            f"Status: {self.describe()}\n"
            f"Duration: {self.duration_ms:.2f}ms\n"
            f"Truncated: {self.truncated}\n"
            f"Stdout: {self.stdout}\n"
            f"Stderr: {self.stderr}"
        )


def truncate_output(text: str, max_bytes: int = 100 * 1024) -> Tuple[str, bool]:
    """Truncates output to max_bytes and appends a marker if truncated."""
    if not text:
        return "", False

    encoded = text.encode("utf-8", errors="ignore")
    if len(encoded) <= max_bytes:
        return text, False

    truncated_marker = b"\n[TRUNCATED]"
    limit = max(0, max_bytes - len(truncated_marker))
    truncated_bytes = encoded[:limit] + truncated_marker

    return truncated_bytes.decode("utf-8", errors="ignore"), True
