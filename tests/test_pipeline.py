"""Tests for the staged pipeline composer."""

import asyncio
import threading

import pytest

from commerce_analytics.errors import ConfigurationError, StageExecutionError
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.pipeline import Pipeline, Stage


def numbers():
    return Recordset("numbers", ["n"], [{"n": 1}, {"n": 2}, {"n": 3}])


def doubled(up):
    return Recordset("doubled", ["n"], ({"n": r["n"] * 2} for r in up["numbers"]))


def evens(up):
    return up["doubled"].filter(lambda r: r["n"] % 4 == 0).rename("evens")


class TestPipelineValidation:
    """Test DAG validation at construction time."""

    def test_duplicate_stage_name(self):
        with pytest.raises(ConfigurationError, match="Duplicate stage name 'a'"):
            Pipeline([Stage("a", doubled), Stage("a", doubled)])

    def test_unknown_dependency(self):
        with pytest.raises(ConfigurationError, match="undefined stage or input 'missing'"):
            Pipeline([Stage("a", doubled, depends_on=["missing"])])

    def test_cycle_rejected(self):
        """A cycle always contains a reference to a stage defined later."""
        with pytest.raises(ConfigurationError, match="undefined stage or input 'c'"):
            Pipeline(
                [
                    Stage("a", doubled, depends_on=["c"]),
                    Stage("b", doubled, depends_on=["a"]),
                    Stage("c", doubled, depends_on=["b"]),
                ]
            )

    def test_self_dependency(self):
        with pytest.raises(ConfigurationError, match="Stage 'a' depends on itself"):
            Pipeline([Stage("a", doubled, depends_on=["a"])])

    def test_stage_shadowing_input(self):
        with pytest.raises(ConfigurationError, match="shadows a pipeline input"):
            Pipeline([Stage("numbers", doubled)], inputs=["numbers"])

    def test_forward_reference_rejected(self):
        """A stage may only reference inputs and stages listed before it."""
        with pytest.raises(ConfigurationError, match="undefined stage or input 'doubled'"):
            Pipeline(
                [
                    Stage("evens", evens, depends_on=["doubled"]),
                    Stage("doubled", doubled, depends_on=["numbers"]),
                ],
                inputs=["numbers"],
            )

    def test_dependencies_in_definition_order(self):
        pipeline = Pipeline(
            [
                Stage("doubled", doubled, depends_on=["numbers"]),
                Stage("evens", evens, depends_on=["doubled"]),
            ],
            inputs=["numbers"],
        )
        assert pipeline.stage_names == ("doubled", "evens")

    def test_single_dependency_as_string(self):
        """A plain string names one dependency, not one per character."""
        stage = Stage("doubled", doubled, depends_on="numbers")
        assert stage.depends_on == ("numbers",)
        result = Pipeline([stage], inputs=["numbers"]).run({"numbers": numbers()})
        assert result["doubled"].column("n") == [2, 4, 6]

    def test_empty_stage_name(self):
        with pytest.raises(ConfigurationError, match="non-empty"):
            Stage("", doubled)


class TestPipelineRun:
    """Test staged execution."""

    def test_linear_chain(self):
        pipeline = Pipeline(
            [
                Stage("doubled", doubled, depends_on=["numbers"]),
                Stage("evens", evens, depends_on=["doubled"]),
            ],
            inputs=["numbers"],
        )
        result = pipeline.run({"numbers": numbers()})
        assert result["doubled"].column("n") == [2, 4, 6]
        assert result["evens"].column("n") == [4]
        assert set(result) == {"doubled", "evens"}
        assert result.generations == [["doubled"], ["evens"]]

    def test_stage_receives_only_declared_upstream(self):
        seen = {}

        def capture(up):
            seen["keys"] = set(up)
            return up["doubled"]

        Pipeline(
            [
                Stage("doubled", doubled, depends_on=["numbers"]),
                Stage("capture", capture, depends_on=["doubled"]),
            ],
            inputs=["numbers"],
        ).run({"numbers": numbers()})
        assert seen["keys"] == {"doubled"}

    def test_independent_stages_share_a_generation(self):
        """Diamond: b and c both depend on a, d on both."""

        def passthrough(name, source):
            return lambda up: up[source].rename(name)

        pipeline = Pipeline(
            [
                Stage("a", passthrough("a", "numbers"), depends_on=["numbers"]),
                Stage("b", passthrough("b", "a"), depends_on=["a"]),
                Stage("c", passthrough("c", "a"), depends_on=["a"]),
                Stage(
                    "d",
                    lambda up: Recordset(
                        "d", ["n"], [{"n": len(up["b"]) + len(up["c"])}]
                    ),
                    depends_on=["b", "c"],
                ),
            ],
            inputs=["numbers"],
        )
        result = pipeline.run({"numbers": numbers()})
        assert result.generations == [["a"], ["b", "c"], ["d"]]
        assert result["d"].column("n") == [6]

    def test_same_generation_runs_concurrently(self):
        """Both stages of a generation are in flight at the same time."""
        barrier = threading.Barrier(2, timeout=5)

        def waiting(name):
            def func(up):
                barrier.wait()
                return up["numbers"].rename(name)

            return func

        pipeline = Pipeline(
            [
                Stage("left", waiting("left"), depends_on=["numbers"]),
                Stage("right", waiting("right"), depends_on=["numbers"]),
            ],
            inputs=["numbers"],
        )
        result = pipeline.run({"numbers": numbers()})
        assert len(result["left"]) == 3
        assert len(result["right"]) == 3

    def test_missing_input(self):
        pipeline = Pipeline([Stage("doubled", doubled, depends_on=["numbers"])], inputs=["numbers"])
        with pytest.raises(ConfigurationError, match="Missing pipeline inputs"):
            pipeline.run({})

    def test_stage_failure_aborts_run(self):
        def boom(up):
            raise ValueError("bad data")

        calls = []

        def downstream(up):
            calls.append(1)
            return up["boom"]

        pipeline = Pipeline(
            [
                Stage("boom", boom, depends_on=["numbers"]),
                Stage("after", downstream, depends_on=["boom"]),
            ],
            inputs=["numbers"],
        )
        with pytest.raises(StageExecutionError, match="Stage 'boom' failed") as exc_info:
            pipeline.run({"numbers": numbers()})
        assert exc_info.value.stage == "boom"
        assert isinstance(exc_info.value.cause, ValueError)
        assert calls == []

    def test_non_recordset_output_fails(self):
        pipeline = Pipeline([Stage("bad", lambda up: [1, 2])])
        with pytest.raises(StageExecutionError, match="expected Recordset"):
            pipeline.run()

    def test_run_async(self):
        pipeline = Pipeline([Stage("doubled", doubled, depends_on=["numbers"])], inputs=["numbers"])
        result = asyncio.run(pipeline.run_async({"numbers": numbers()}))
        assert result["doubled"].column("n") == [2, 4, 6]
        assert result.execution_time_ms >= 0
