"""Tests for running a whole workflow: triggers, per-job expansion, aggregation."""

from matrixci.dsl import job, run, wf
from matrixci.errors import ExpansionErrorKind
from matrixci.model import InstanceState, RunStatus
from matrixci.parser import parse
from matrixci.runner import WorkflowRunner, plan, run_workflow

from conftest import FakeRunner, fail, ok


class TestPlan:
    def test_reference_workflow(self, rust_workflow_text, env_base):
        entries = plan(parse(rust_workflow_text), env_base)
        assert len(entries) == 1
        job_, instances, error = entries[0]
        assert error is None
        assert len(instances) == 1
        inst = instances[0]
        assert inst.runner == "windows-latest"
        assert inst.instance_id == "check (windows-latest, Release)"
        assert inst.env["CARGO_TERM_COLOR"] == "always"
        assert inst.env["MATRIX_BUILD_TYPE"] == "Release"

    def test_expansion_error_is_per_job(self, env_base):
        definition = wf(
            job("broken", run("x"), matrix={"os": []}),
            job("fine", run("y"), matrix={"os": ["a", "b"]}),
        )
        (_, broken, err), (_, fine, ok_err) = plan(definition, env_base)
        assert broken == [] and err.kind is ExpansionErrorKind.EMPTY_AXIS
        assert len(fine) == 2 and ok_err is None


class TestRunWorkflow:
    def test_success(self, make_executor, env_base):
        runner = FakeRunner()
        definition = wf(job("a", run("one")), job("b", run("two"), matrix={"n": ["1", "2"]}))
        result = run_workflow(definition, executor=make_executor(runner), environ=env_base)

        assert result.status is RunStatus.SUCCEEDED
        assert [j.job.id for j in result.jobs] == ["a", "b"]
        assert len(result.results) == 3
        assert sorted(runner.commands) == ["one", "two", "two"]

    def test_jobs_run_in_declared_order(self, make_executor, env_base):
        runner = FakeRunner()
        definition = wf(job("a", run("one")), job("b", run("two")), job("c", run("three")))
        run_workflow(definition, executor=make_executor(runner), environ=env_base)
        assert runner.commands == ["one", "two", "three"]

    def test_failure_in_one_job_does_not_cancel_other_jobs(self, make_executor, env_base):
        runner = FakeRunner(lambda cmd, env: fail() if cmd == "bad" else ok())
        definition = wf(job("a", run("bad")), job("b", run("good")))
        result = run_workflow(definition, executor=make_executor(runner), environ=env_base)

        assert result.status is RunStatus.FAILED
        assert [j.status for j in result.jobs] == [RunStatus.FAILED, RunStatus.SUCCEEDED]

    def test_expansion_error_fails_run_but_other_jobs_run(self, make_executor, env_base):
        runner = FakeRunner()
        definition = wf(job("broken", run("x"), matrix={"os": []}), job("fine", run("y")))
        result = run_workflow(definition, executor=make_executor(runner), environ=env_base)

        assert result.status is RunStatus.FAILED
        assert len(result.expansion_errors) == 1
        assert result.jobs[0].results == ()
        assert result.jobs[1].status is RunStatus.SUCCEEDED
        assert runner.commands == ["y"]

    def test_fail_fast_comes_from_job(self, make_executor, env_base):
        runner = FakeRunner(lambda cmd, env: fail() if env["MATRIX_N"] == "1" else ok())
        definition = wf(job("t", run("x"), matrix={"n": ["1", "2"]}, fail_fast=True))
        executor = make_executor(runner)
        result = WorkflowRunner(executor, config=_one_worker()).run(definition, environ=env_base)
        assert [r.state for r in result.results] == [InstanceState.FAILED, InstanceState.CANCELLED]

    def test_fail_fast_override(self, make_executor, env_base):
        runner = FakeRunner(lambda cmd, env: fail() if env["MATRIX_N"] == "1" else ok())
        definition = wf(job("t", run("x"), matrix={"n": ["1", "2"]}, fail_fast=True))
        result = WorkflowRunner(make_executor(runner), config=_one_worker(), fail_fast=False).run(
            definition, environ=env_base
        )
        assert [r.state for r in result.results] == [InstanceState.FAILED, InstanceState.SUCCEEDED]

    def test_cancel_before_run(self, make_executor, env_base):
        runner = FakeRunner()
        wr = WorkflowRunner(make_executor(runner))
        wr.cancel()
        result = wr.run(wf(job("a", run("one")), job("b", run("two"))), environ=env_base)

        assert runner.calls == []
        assert all(r.state is InstanceState.CANCELLED for r in result.results)
        assert result.status is RunStatus.CANCELLED

    def test_same_label_instances_do_not_sink_the_run(self, make_executor, env_base):
        runner = FakeRunner()
        definition = wf(
            job("a", run("echo $MATRIX_N"), matrix={"n": [1, "1"]}),
            job("b", run("after")),
        )
        result = run_workflow(definition, executor=make_executor(runner), environ=env_base)

        assert result.status is RunStatus.SUCCEEDED
        assert [len(j.results) for j in result.jobs] == [2, 1]
        assert runner.commands[-1] == "after"


class TestTriggers:
    def test_matching_event_runs(self, make_executor, rust_workflow_text, env_base):
        runner = FakeRunner()
        result = run_workflow(
            parse(rust_workflow_text), event="pull_request", executor=make_executor(runner), environ=env_base
        )
        assert not result.skipped
        assert result.status is RunStatus.SUCCEEDED
        assert runner.commands == ["cargo build", "cargo test"]

    def test_non_matching_event_skips(self, make_executor, rust_workflow_text, env_base):
        runner = FakeRunner()
        result = run_workflow(
            parse(rust_workflow_text), event="release", executor=make_executor(runner), environ=env_base
        )
        assert result.skipped
        assert result.jobs == ()
        assert result.status is RunStatus.SUCCEEDED
        assert runner.calls == []


def _one_worker():
    from matrixci.config import EngineConfig

    return EngineConfig(workers=1)
