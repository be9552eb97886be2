import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from .base import InvalidTransition

logger = logging.getLogger("anchor_mcp.jobs")


class JobKind(str, Enum):
    RUN_TEST = "run_test"
    BUILD = "build"
    DEPLOY = "deploy"


class Cluster(str, Enum):
    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET_BETA = "mainnet-beta"
    LOCALNET = "localnet"


class JobState(str, Enum):
    CREATED = "created"
    SYNTHESIZED = "synthesized"
    WRITTEN = "written"
    COMPILED = "compiled"
    EXECUTED = "executed"
    REPORTED = "reported"
    FAULTED = "faulted"
    CLEANED_UP = "cleaned_up"


_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.CREATED: frozenset({JobState.SYNTHESIZED, JobState.EXECUTED, JobState.FAULTED}),
    JobState.SYNTHESIZED: frozenset({JobState.WRITTEN, JobState.FAULTED}),
    JobState.WRITTEN: frozenset({JobState.COMPILED, JobState.FAULTED}),
    JobState.COMPILED: frozenset({JobState.EXECUTED, JobState.FAULTED}),
    JobState.EXECUTED: frozenset({JobState.REPORTED, JobState.FAULTED}),
    JobState.REPORTED: frozenset({JobState.CLEANED_UP}),
    JobState.FAULTED: frozenset({JobState.CLEANED_UP}),
    JobState.CLEANED_UP: frozenset(),
}


@dataclass
class Job:
    """One execution request. Lives for the duration of a single tool call."""

    kind: JobKind
    working_directory: Path
    deadline: float
    source_text: Optional[str] = None
    program_id: Optional[str] = None
    artifact_base_name: str = "anchor-test"
    cluster: Optional[Cluster] = None
    state: JobState = JobState.CREATED
    history: List[JobState] = field(default_factory=lambda: [JobState.CREATED])

    def advance(self, new_state: JobState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.kind.value} job cannot move from {self.state.value} to {new_state.value}")
        logger.debug(f"{self.kind.value} job: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def fault(self) -> None:
        """Move to FAULTED unless the job is already past the point of failing."""
        if JobState.FAULTED in _TRANSITIONS[self.state]:
            self.advance(JobState.FAULTED)

    @property
    def faulted(self) -> bool:
        return JobState.FAULTED in self.history
