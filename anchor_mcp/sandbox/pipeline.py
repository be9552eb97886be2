"""
Job pipeline.

RunTest:      synthesize -> write -> compile -> write -> execute -> report -> clean up
Build/Deploy: execute -> report
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from .artifacts import ArtifactStore
from .base import ArtifactWriteError, CompileError, ExitStatus
from .executor import ProcessExecutor
from .factory import Toolchain
from .jobs import Cluster, Job, JobKind, JobState
from .lifecycle import ArtifactScope, with_artifacts
from .report import JobReport, build_report, failure_report
from .synthesizer import synthesize

logger = logging.getLogger("anchor_mcp.pipeline")

PathLike = Union[str, os.PathLike]


class JobRunner:
    """Executes RunTest, Build and Deploy jobs. Holds no per-job state."""

    def __init__(
        self,
        toolchain: Toolchain,
        executor: ProcessExecutor,
        anchor_binary: str = "anchor",
        env_overlay: Optional[Dict[str, str]] = None,
        test_deadline: float = 60.0,
        build_deadline: float = 300.0,
        compile_deadline: float = 60.0,
    ):
        self.toolchain = toolchain
        self.executor = executor
        self.anchor_binary = anchor_binary
        self.env_overlay = dict(env_overlay or {})
        self.test_deadline = test_deadline
        self.build_deadline = build_deadline
        self.compile_deadline = compile_deadline

    # -----------------------------------------------------------------
    # RunTest
    # -----------------------------------------------------------------

    async def run_test(
        self,
        source_text: str,
        program_id: Optional[str] = None,
        working_directory: Optional[PathLike] = None,
        test_name: str = "anchor-test",
    ) -> JobReport:
        job = Job(
            kind=JobKind.RUN_TEST,
            working_directory=Path(working_directory or Path.cwd()).resolve(),
            deadline=self.test_deadline,
            source_text=source_text,
            program_id=program_id,
            artifact_base_name=test_name or "anchor-test",
        )
        logger.info(f"Running test '{job.artifact_base_name}' in {job.working_directory}")
        store = ArtifactStore(job.working_directory)

        async def body(scope: ArtifactScope) -> JobReport:
            try:
                return await self._run_test_stages(job, scope)
            except Exception as e:
                logger.exception(f"Unexpected failure in test job '{job.artifact_base_name}'")
                job.fault()
                return failure_report(job, "internal", f"{type(e).__name__}: {e}")

        report = await with_artifacts(store, body)
        job.advance(JobState.CLEANED_UP)
        log = logger.warning if job.faulted else logger.info
        log(f"Test '{job.artifact_base_name}' finished: {report.headline}")
        return report

    async def _run_test_stages(self, job: Job, scope: ArtifactScope) -> JobReport:
        toolchain = self.toolchain
        unit = synthesize(job.source_text or "", job.program_id, toolchain.preamble)
        job.advance(JobState.SYNTHESIZED)

        pair = scope.allocate(job.artifact_base_name, toolchain.source_suffix, toolchain.output_suffix)
        artifact_name = pair.source_path.name

        try:
            scope.write(pair.source_path, unit)
        except ArtifactWriteError as e:
            job.fault()
            return failure_report(job, e.stage, str(e), artifact_name)
        job.advance(JobState.WRITTEN)

        compiled = await toolchain.compiler.compile(unit, cwd=job.working_directory, deadline=self.compile_deadline)
        if isinstance(compiled, CompileError):
            job.fault()
            return failure_report(job, "compile", compiled.diagnostics, artifact_name)

        try:
            scope.write(pair.output_path, compiled.text)
        except ArtifactWriteError as e:
            job.fault()
            return failure_report(job, e.stage, str(e), artifact_name)
        job.advance(JobState.COMPILED)

        outcome = await self.executor.run(
            toolchain.interpreter,
            [str(pair.output_path)],
            cwd=job.working_directory,
            env_overlay=self.env_overlay,
            deadline=job.deadline,
        )
        job.advance(JobState.EXECUTED)

        report = build_report(job, outcome, artifact_name)
        if outcome.status in (ExitStatus.TIMED_OUT, ExitStatus.SPAWN_FAILED):
            job.advance(JobState.FAULTED)
        else:
            job.advance(JobState.REPORTED)
        return report

    # -----------------------------------------------------------------
    # Build / Deploy
    # -----------------------------------------------------------------

    async def build(self, project_path: PathLike) -> JobReport:
        job = Job(kind=JobKind.BUILD, working_directory=Path(project_path).resolve(), deadline=self.build_deadline)
        return await self._run_anchor(job, ["build"])

    async def deploy(self, project_path: PathLike, cluster: Union[Cluster, str] = Cluster.DEVNET) -> JobReport:
        cluster = Cluster(cluster)
        job = Job(
            kind=JobKind.DEPLOY,
            working_directory=Path(project_path).resolve(),
            deadline=self.build_deadline,
            cluster=cluster,
        )
        return await self._run_anchor(job, ["deploy", "--provider.cluster", cluster.value])

    async def _run_anchor(self, job: Job, args) -> JobReport:
        logger.info(f"anchor {' '.join(args)} in {job.working_directory}")
        outcome = await self.executor.run(
            self.anchor_binary,
            args,
            cwd=job.working_directory,
            env_overlay=self.env_overlay,
            deadline=job.deadline,
        )
        job.advance(JobState.EXECUTED)
        report = build_report(job, outcome)
        job.advance(JobState.REPORTED)
        logger.info(f"anchor {args[0]} finished: {report.headline}")
        return report
