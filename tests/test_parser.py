"""Tests for parsing workflow YAML into a WorkflowDefinition."""

import pytest

from matrixci.errors import ParseError, ParseErrorKind
from matrixci.model import CheckoutStep, RunStep, ToolchainStep
from matrixci.parser import parse, parse_file


def _minimal(on="push", steps="      - run: echo hi\n", extra_job=""):
    return (
        f"on: {on}\n"
        "jobs:\n"
        "  build:\n"
        "    runs-on: ubuntu-latest\n"
        f"{extra_job}"
        "    steps:\n"
        f"{steps}"
    )


class TestParseReferenceWorkflow:
    """The Rust workflow the engine was built for."""

    def test_top_level(self, rust_workflow_text):
        wf = parse(rust_workflow_text)
        assert wf.name == "Rust"
        assert wf.triggers == ("push", "pull_request")
        assert wf.env == {"CARGO_TERM_COLOR": "always"}
        assert [j.id for j in wf.jobs] == ["check"]

    def test_job(self, rust_workflow_text):
        job = parse(rust_workflow_text).jobs[0]
        assert job.runs_on == "${{ matrix.os }}"
        assert job.fail_fast is False
        assert job.matrix == {"os": ("windows-latest",), "build_type": ("Release",)}
        assert list(job.matrix) == ["os", "build_type"]

    def test_steps(self, rust_workflow_text):
        steps = parse(rust_workflow_text).jobs[0].steps
        assert len(steps) == 4

        checkout, toolchain, build, test = steps
        assert isinstance(checkout, CheckoutStep)
        assert checkout.name == "checkout"
        assert checkout.submodules is True
        assert checkout.recursive is False

        assert isinstance(toolchain, ToolchainStep)
        assert toolchain.toolchain == "stable"
        assert toolchain.profile == "minimal"
        assert toolchain.override is True
        assert toolchain.name == "Run actions-rs/toolchain@v1"

        assert isinstance(build, RunStep)
        assert build.run == "cargo build"
        assert build.name == "Run cargo build"
        assert isinstance(test, RunStep)
        assert test.run == "cargo test"

    def test_parsing_twice_is_structurally_equal(self, rust_workflow_text):
        assert parse(rust_workflow_text) == parse(rust_workflow_text)

    def test_parse_file(self, tmp_path, rust_workflow_text):
        path = tmp_path / "rust.yml"
        path.write_text(rust_workflow_text)
        assert parse_file(path) == parse(rust_workflow_text)

    def test_parse_file_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_file(tmp_path / "nope.yml")


class TestTriggers:
    def test_single_string(self):
        assert parse(_minimal(on="push")).triggers == ("push",)

    def test_list(self):
        assert parse(_minimal(on="[push, pull_request]")).triggers == ("push", "pull_request")

    def test_quoted_on_key(self):
        text = _minimal().replace("on: push", '"on": workflow_dispatch')
        assert parse(text).triggers == ("workflow_dispatch",)

    def test_unsupported_trigger(self):
        with pytest.raises(ParseError) as exc:
            parse(_minimal(on="[push, nightly_build]"))
        assert exc.value.kind is ParseErrorKind.UNSUPPORTED_TRIGGER
        assert exc.value.details["triggers"] == ["nightly_build"]

    def test_missing_on(self):
        text = _minimal().replace("on: push\n", "")
        with pytest.raises(ParseError) as exc:
            parse(text)
        assert exc.value.kind is ParseErrorKind.MALFORMED


class TestMalformed:
    @pytest.mark.parametrize(
        "text",
        [
            "just a string",
            "on: push\n",
            "on: push\njobs: {}\n",
            "on: push\njobs:\n  build:\n    steps:\n      - run: echo\n",
            "on: push\njobs:\n  build:\n    runs-on: x\n",
            "on: push\njobs:\n  build:\n    runs-on: x\n    steps: []\n",
            "on: push\njobs: [\n",
        ],
        ids=["not-mapping", "no-jobs", "empty-jobs", "no-runs-on", "no-steps", "empty-steps", "bad-yaml"],
    )
    def test_malformed(self, text):
        with pytest.raises(ParseError) as exc:
            parse(text)
        assert exc.value.kind is ParseErrorKind.MALFORMED

    def test_unknown_action(self):
        with pytest.raises(ParseError) as exc:
            parse(_minimal(steps="      - uses: actions/setup-node@v4\n"))
        assert exc.value.kind is ParseErrorKind.MALFORMED
        assert "unsupported action" in exc.value.message

    def test_run_and_uses(self):
        with pytest.raises(ParseError):
            parse(_minimal(steps="      - run: echo\n        uses: actions/checkout@v4\n"))

    def test_matrix_axis_must_be_list(self):
        extra = "    strategy:\n      matrix:\n        os: ubuntu-latest\n"
        with pytest.raises(ParseError, match="must be a list"):
            parse(_minimal(extra_job=extra))

    def test_matrix_include_rejected(self):
        extra = "    strategy:\n      matrix:\n        os: [a]\n        include:\n          - os: b\n"
        with pytest.raises(ParseError, match="include"):
            parse(_minimal(extra_job=extra))

    def test_matrix_axis_repeated_value(self):
        extra = "    strategy:\n      matrix:\n        os: [a, b, a]\n"
        with pytest.raises(ParseError, match="repeats values") as exc:
            parse(_minimal(extra_job=extra))
        assert exc.value.kind is ParseErrorKind.MALFORMED
        assert exc.value.details["values"] == ["a"]

    def test_matrix_values_differing_by_type_are_distinct(self):
        extra = "    strategy:\n      matrix:\n        n: [1, '1']\n"
        assert parse(_minimal(extra_job=extra)).jobs[0].matrix == {"n": (1, "1")}

    def test_bad_boolean(self):
        extra = "    strategy:\n      fail-fast: sometimes\n"
        with pytest.raises(ParseError, match="boolean"):
            parse(_minimal(extra_job=extra))


class TestDetails:
    def test_fail_fast_defaults_true(self):
        assert parse(_minimal()).jobs[0].fail_fast is True

    def test_empty_matrix(self):
        assert parse(_minimal()).jobs[0].matrix == {}

    def test_strategy_fields(self):
        extra = (
            "    timeout-minutes: 10\n"
            "    strategy:\n"
            "      fail-fast: 'false'\n"
            "      max-parallel: 2\n"
            "      matrix:\n"
            "        py: ['3.11', '3.12']\n"
        )
        job = parse(_minimal(extra_job=extra)).jobs[0]
        assert job.fail_fast is False
        assert job.max_parallel == 2
        assert job.timeout_minutes == 10.0
        assert job.matrix == {"py": ("3.11", "3.12")}

    def test_step_fields(self):
        steps = (
            "      - name: Build\n"
            "        run: |\n"
            "          make\n"
            "          make install\n"
            "        working-directory: sub\n"
            "        timeout-minutes: 2\n"
            "        env:\n"
            "          DEBUG: 1\n"
            "          FAST: true\n"
        )
        step = parse(_minimal(steps=steps)).jobs[0].steps[0]
        assert step.name == "Build"
        assert step.run == "make\nmake install\n"
        assert step.working_directory == "sub"
        assert step.timeout_minutes == 2.0
        assert step.env == {"DEBUG": "1", "FAST": "true"}

    def test_multiline_default_name_uses_first_line(self):
        steps = "      - run: |\n          echo one\n          echo two\n"
        assert parse(_minimal(steps=steps)).jobs[0].steps[0].name == "Run echo one"

    def test_checkout_recursive(self):
        steps = "      - uses: actions/checkout@v4\n        with:\n          submodules: recursive\n          ref: v1.0\n"
        step = parse(_minimal(steps=steps)).jobs[0].steps[0]
        assert step.submodules is True
        assert step.recursive is True
        assert step.ref == "v1.0"

    def test_dtolnay_toolchain_from_ref(self):
        steps = "      - uses: dtolnay/rust-toolchain@nightly\n        with:\n          components: clippy, rustfmt\n"
        step = parse(_minimal(steps=steps)).jobs[0].steps[0]
        assert isinstance(step, ToolchainStep)
        assert step.toolchain == "nightly"
        assert step.components == ("clippy", "rustfmt")

    def test_toolchain_required(self):
        with pytest.raises(ParseError, match="toolchain"):
            parse(_minimal(steps="      - uses: actions-rs/toolchain@v1\n"))

    def test_runs_on_list_joined(self):
        text = _minimal().replace("runs-on: ubuntu-latest", "runs-on: [self-hosted, linux]")
        assert parse(text).jobs[0].runs_on == "self-hosted,linux"

    def test_definition_is_immutable(self):
        wf = parse(_minimal())
        with pytest.raises(AttributeError):
            wf.name = "other"
