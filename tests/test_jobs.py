import tempfile
import unittest
from pathlib import Path

from anchor_mcp.sandbox.artifacts import ArtifactStore
from anchor_mcp.sandbox.base import ArtifactWriteError, CleanupWarning, InvalidTransition
from anchor_mcp.sandbox.jobs import Job, JobKind, JobState
from anchor_mcp.sandbox.lifecycle import ArtifactScope, with_artifacts
from anchor_mcp.sandbox.report import failure_report


def make_job(kind=JobKind.RUN_TEST):
    return Job(kind=kind, working_directory=Path("."), deadline=60.0)


class TestJobStates(unittest.TestCase):
    def test_full_run_test_path(self):
        job = make_job()
        for state in (JobState.SYNTHESIZED, JobState.WRITTEN, JobState.COMPILED,
                      JobState.EXECUTED, JobState.REPORTED, JobState.CLEANED_UP):
            job.advance(state)
        self.assertEqual(job.history[0], JobState.CREATED)
        self.assertEqual(job.history[-1], JobState.CLEANED_UP)
        self.assertFalse(job.faulted)

    def test_build_skips_artifact_states(self):
        job = make_job(JobKind.BUILD)
        job.advance(JobState.EXECUTED)
        job.advance(JobState.REPORTED)
        self.assertEqual(job.state, JobState.REPORTED)

    def test_illegal_transitions(self):
        job = make_job()
        with self.assertRaises(InvalidTransition):
            job.advance(JobState.COMPILED)
        job.advance(JobState.SYNTHESIZED)
        with self.assertRaises(InvalidTransition):
            job.advance(JobState.REPORTED)

    def test_nothing_leaves_cleaned_up(self):
        job = make_job()
        job.advance(JobState.FAULTED)
        job.advance(JobState.CLEANED_UP)
        for state in JobState:
            with self.assertRaises(InvalidTransition):
                job.advance(state)

    def test_fault_from_any_working_state(self):
        job = make_job()
        job.advance(JobState.SYNTHESIZED)
        job.advance(JobState.WRITTEN)
        job.fault()
        self.assertEqual(job.state, JobState.FAULTED)
        self.assertTrue(job.faulted)

    def test_fault_after_report_is_ignored(self):
        job = make_job(JobKind.BUILD)
        job.advance(JobState.EXECUTED)
        job.advance(JobState.REPORTED)
        job.fault()
        self.assertEqual(job.state, JobState.REPORTED)


class TestArtifactScope(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = ArtifactStore(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    async def test_removes_artifacts_when_body_raises(self):
        with self.assertRaises(RuntimeError):
            async with ArtifactScope(self.store) as scope:
                pair = scope.allocate("t")
                scope.write(pair.source_path, "a")
                scope.write(pair.output_path, "b")
                raise RuntimeError("boom")
        self.assertEqual(list(Path(self.tmp.name).iterdir()), [])

    async def test_only_written_paths_are_removed(self):
        async with ArtifactScope(self.store) as scope:
            pair = scope.allocate("t")
            scope.write(pair.source_path, "a")
        self.assertEqual(scope.warnings, [])
        self.assertEqual(list(Path(self.tmp.name).iterdir()), [])

    async def test_file_owned_by_another_job_survives(self):
        async with ArtifactScope(self.store) as scope:
            pair = scope.allocate("t")
            pair.source_path.write_text("someone else's")
            with self.assertRaises(ArtifactWriteError):
                scope.write(pair.source_path, "mine")
        self.assertEqual(pair.source_path.read_text(), "someone else's")

    async def test_with_artifacts_attaches_warnings(self):
        job = make_job()
        warning = CleanupWarning(Path("x.ts"), "Permission denied")

        async def body(scope):
            pair = scope.allocate("t")
            scope.write(pair.source_path, "a")
            scope.write(pair.output_path, "b")
            return failure_report(job, "compile", "bad")

        original_remove = self.store.remove
        calls = []

        def remove(path):
            calls.append(path)
            original_remove(path)
            return warning

        self.store.remove = remove
        report = await with_artifacts(self.store, body)
        self.assertEqual(len(calls), 2)
        self.assertEqual(report.cleanup_warnings, [warning, warning])
        self.assertFalse(report.success)


if __name__ == "__main__":
    unittest.main()
