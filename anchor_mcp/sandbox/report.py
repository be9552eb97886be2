"""
Job Report Builder.

Assembles the caller-visible result of a job: a headline that states success
or failure, the captured output, any identifiers extracted from it, and a
remediation hint when something went wrong.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .base import CleanupWarning, ExecutionOutcome, ExitStatus
from .jobs import Job, JobKind

NO_OUTPUT = "(no output)"

# Base58, as printed by `anchor deploy`: "Program Id: <address>"
PROGRAM_ID_PATTERN = re.compile(r"Program Id:\s*([1-9A-HJ-NP-Za-km-z]{32,44})\b")

_TITLES = {
    JobKind.RUN_TEST: "Anchor test run",
    JobKind.BUILD: "Anchor build",
    JobKind.DEPLOY: "Anchor deploy",
}

_RUN_TEST_CHECKLIST = (
    "Make sure:\n"
    "1. Anchor is installed (@coral-xyz/anchor) in the working directory\n"
    "2. Your program is deployed\n"
    "3. Test code is valid TypeScript\n"
    "4. Required dependencies are available"
)


@dataclass
class JobReport:
    kind: JobKind
    success: bool
    headline: str
    working_directory: str
    program_id: Optional[str] = None
    artifact_name: Optional[str] = None
    outcome: Optional[ExecutionOutcome] = None
    failure_stage: Optional[str] = None
    error: Optional[str] = None
    hint: Optional[str] = None
    notes: List[str] = field(default_factory=list)
    cleanup_warnings: List[CleanupWarning] = field(default_factory=list)

    def render(self) -> str:
        lines = [self.headline, ""]
        if self.program_id:
            lines.append(f"Program ID: {self.program_id}")
        if self.kind is JobKind.RUN_TEST and self.artifact_name:
            lines.append(f"Test file: {self.artifact_name}")
        lines.append(f"Working directory: {self.working_directory}")
        if self.outcome is not None:
            lines.append(f"Exit status: {self.outcome.describe()}")
            lines.append(f"Duration: {self.outcome.duration_ms / 1000:.2f}s")
        for note in self.notes:
            lines.append(note)
        for warning in self.cleanup_warnings:
            lines.append(f"Warning: could not remove {warning}")

        if self.error:
            lines += ["", f"Error ({self.failure_stage}):" if self.failure_stage else "Error:", self.error]

        if self.outcome is not None:
            lines += ["", "--- stdout ---", self.outcome.stdout.rstrip("\n") or NO_OUTPUT, "--- end stdout ---"]
            if self.outcome.stderr.strip():
                lines += ["", "--- stderr ---", self.outcome.stderr.rstrip("\n"), "--- end stderr ---"]
            if self.outcome.truncated:
                lines.append("(output was truncated)")

        if not self.success and self.hint:
            lines += ["", self.hint]
        return "\n".join(lines).rstrip() + "\n"


def extract_program_id(stdout: str) -> Optional[str]:
    match = PROGRAM_ID_PATTERN.search(stdout or "")
    return match.group(1) if match else None


def _hint_for(job: Job, outcome: ExecutionOutcome) -> Optional[str]:
    if outcome.status is ExitStatus.SUCCESS:
        return None
    if outcome.status is ExitStatus.SPAWN_FAILED:
        return (
            "Hint: ensure the toolchain is installed and on PATH "
            "(node for tests, anchor for build/deploy) and check the working directory is correct."
        )
    if outcome.status is ExitStatus.TIMED_OUT:
        return f"Hint: the process was killed after {job.deadline:g}s. Reduce the work done or raise the deadline."
    if job.kind is JobKind.RUN_TEST:
        return _RUN_TEST_CHECKLIST
    if job.kind is JobKind.BUILD:
        return "Hint: inspect the compiler output above and check the project path points at an Anchor workspace."
    return (
        "Hint: check the program builds, the cluster is reachable and the wallet "
        "has enough SOL to pay for the deployment."
    )


def build_report(job: Job, outcome: ExecutionOutcome, artifact_name: Optional[str] = None,
                 cleanup_warnings: Sequence[CleanupWarning] = ()) -> JobReport:
    """Turn an execution outcome into the job's report."""
    title = _TITLES[job.kind]
    success = outcome.ok
    if success:
        headline = f"✅ {title} succeeded"
    elif outcome.status is ExitStatus.NON_ZERO_EXIT:
        headline = f"❌ {title} failed (exit code {outcome.exit_code})"
    elif outcome.status is ExitStatus.TIMED_OUT:
        headline = f"❌ {title} failed: timed out after {job.deadline:g}s"
    else:
        headline = f"❌ {title} failed: could not start the process"

    report = JobReport(
        kind=job.kind,
        success=success,
        headline=headline,
        working_directory=str(job.working_directory),
        program_id=job.program_id,
        artifact_name=artifact_name,
        outcome=outcome,
        error=outcome.error,
        failure_stage="spawn" if outcome.status is ExitStatus.SPAWN_FAILED else None,
        hint=_hint_for(job, outcome),
        cleanup_warnings=list(cleanup_warnings),
    )

    if job.kind is JobKind.DEPLOY:
        if job.cluster is not None:
            report.notes.append(f"Cluster: {job.cluster.value}")
        deployed_id = extract_program_id(outcome.stdout)
        if deployed_id:
            report.program_id = deployed_id
        elif outcome.status in (ExitStatus.SUCCESS, ExitStatus.NON_ZERO_EXIT):
            report.notes.append("Deployment output received without a confirmed program id.")
    return report


def failure_report(job: Job, stage: str, error: str, artifact_name: Optional[str] = None,
                   cleanup_warnings: Sequence[CleanupWarning] = ()) -> JobReport:
    """Report for a job stopped before (or instead of) execution."""
    hints = {
        "write": "Hint: check the working directory exists and is writable.",
        "compile": (
            "Hint: check the test code is valid TypeScript and that the compiler "
            "(typescript or esbuild) is installed for the working directory."
        ),
    }
    return JobReport(
        kind=job.kind,
        success=False,
        headline=f"❌ {_TITLES[job.kind]} failed at the {stage} stage",
        working_directory=str(job.working_directory),
        program_id=job.program_id,
        artifact_name=artifact_name,
        failure_stage=stage,
        error=error,
        hint=hints.get(stage, "Hint: this is an internal error, see the server log for details."),
        cleanup_warnings=list(cleanup_warnings),
    )
