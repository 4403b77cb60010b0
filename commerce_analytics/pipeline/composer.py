"""Staged pipeline composer: CTE chains as an explicit DAG of named stages.

A multi-level "compute base metrics -> apply scoring -> classify" query is
expressed as a list of :class:`Stage` objects. Each stage is a pure function
of its declared upstream outputs and returns a new :class:`Recordset`.

Design:
- Validation happens in ``Pipeline.__init__``, before any data is processed:
  duplicate names and references to a stage not defined earlier in the list
  (or to an undeclared input) raise ConfigurationError. Since a stage may only
  reference earlier stages, the stage list is always acyclic
- Execution runs topological generations; stages in one generation run in
  parallel using asyncio.gather over worker threads
- A stage never starts before all its upstream stages have completed
- Any stage failure aborts the run (no partial results)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from graphlib import TopologicalSorter
from typing import Callable, Iterable, Iterator, Mapping, Sequence

import structlog

from commerce_analytics.errors import ConfigurationError, StageExecutionError
from commerce_analytics.foundation.recordset import Recordset

logger = structlog.get_logger(__name__)

StageFunction = Callable[[Mapping[str, Recordset]], Recordset]


@dataclass(frozen=True)
class Stage:
    """One named step of a pipeline.

    Attributes
    ----------
    name:
        Unique stage name; downstream stages reference it in ``depends_on``
    func:
        Receives a mapping of upstream name -> Recordset (exactly the
        declared dependencies) and returns the stage's output recordset
    depends_on:
        Names of earlier stages or declared pipeline inputs. A single name
        may be passed as a plain string.
    """

    name: str
    func: StageFunction
    depends_on: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Stage name must be a non-empty string")
        depends_on = self.depends_on
        if isinstance(depends_on, str):
            depends_on = (depends_on,)
        object.__setattr__(self, "depends_on", tuple(depends_on))


@dataclass
class PipelineResult(Mapping[str, Recordset]):
    """Outputs of a completed run, keyed by stage name."""

    outputs: dict[str, Recordset]
    generations: list[list[str]] = field(default_factory=list)
    execution_time_ms: float = 0.0

    def __getitem__(self, name: str) -> Recordset:
        return self.outputs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.outputs)

    def __len__(self) -> int:
        return len(self.outputs)


class Pipeline:
    """Validated DAG of stages over a set of named inputs.

    Examples
    --------
    >>> base = Stage("base", lambda up: up["orders"])
    >>> Pipeline([base], inputs=["orders"]).stage_names
    ('base',)
    >>> Pipeline([Stage("x", lambda up: up["y"], depends_on=["y"])])  # doctest: +SKIP
    ConfigurationError: Stage 'x' depends on undefined stage or input 'y'
    """

    def __init__(self, stages: Sequence[Stage], inputs: Iterable[str] = ()):
        self.inputs = tuple(inputs)
        self._stages: dict[str, Stage] = {}

        if len(set(self.inputs)) != len(self.inputs):
            raise ConfigurationError(f"Duplicate pipeline input names: {self.inputs}")

        known = set(self.inputs)
        for stage in stages:
            if stage.name in self._stages:
                raise ConfigurationError(f"Duplicate stage name '{stage.name}'")
            if stage.name in self.inputs:
                raise ConfigurationError(
                    f"Stage '{stage.name}' shadows a pipeline input of the same name"
                )
            for dep in stage.depends_on:
                if dep == stage.name:
                    raise ConfigurationError(f"Stage '{stage.name}' depends on itself")
                if dep not in known:
                    raise ConfigurationError(
                        f"Stage '{stage.name}' depends on undefined stage or input '{dep}'"
                    )
            self._stages[stage.name] = stage
            known.add(stage.name)

        self._graph = {
            name: {d for d in stage.depends_on if d in self._stages}
            for name, stage in self._stages.items()
        }

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(self._stages)

    def run(self, inputs: Mapping[str, Recordset] | None = None) -> PipelineResult:
        """Execute all stages and block until the run completes or fails."""
        return asyncio.run(self.run_async(inputs))

    async def run_async(
        self, inputs: Mapping[str, Recordset] | None = None
    ) -> PipelineResult:
        inputs = dict(inputs or {})
        missing = [name for name in self.inputs if name not in inputs]
        if missing:
            raise ConfigurationError(f"Missing pipeline inputs: {missing}")

        start_time = time.time()
        available: dict[str, Recordset] = {name: inputs[name] for name in self.inputs}
        outputs: dict[str, Recordset] = {}
        generations: list[list[str]] = []

        sorter = TopologicalSorter(self._graph)
        sorter.prepare()
        while sorter.is_active():
            ready = sorted(sorter.get_ready())
            generations.append(ready)
            logger.info("executing_stage_generation", stages=ready)

            stage_start_times = {name: time.time() for name in ready}
            results = await asyncio.gather(
                *(self._execute_stage(self._stages[name], available) for name in ready),
                return_exceptions=True,
            )

            for name, result in zip(ready, results):
                duration_ms = (time.time() - stage_start_times[name]) * 1000
                if isinstance(result, BaseException):
                    logger.error(
                        "stage_execution_failed",
                        stage=name,
                        error=str(result),
                        error_type=type(result).__name__,
                        duration_ms=duration_ms,
                    )
                    raise StageExecutionError(name, result) from result

                logger.info(
                    "stage_completed",
                    stage=name,
                    rows=len(result),
                    duration_ms=duration_ms,
                )
                available[name] = result
                outputs[name] = result
            sorter.done(*ready)

        execution_time_ms = (time.time() - start_time) * 1000
        logger.info(
            "pipeline_completed",
            stages=len(outputs),
            generations=len(generations),
            execution_time_ms=execution_time_ms,
        )
        return PipelineResult(
            outputs=outputs,
            generations=generations,
            execution_time_ms=execution_time_ms,
        )

    @staticmethod
    async def _execute_stage(
        stage: Stage, available: Mapping[str, Recordset]
    ) -> Recordset:
        upstream = {dep: available[dep] for dep in stage.depends_on}
        result = await asyncio.to_thread(stage.func, upstream)
        if not isinstance(result, Recordset):
            raise TypeError(
                f"Stage '{stage.name}' returned {type(result).__name__}, expected Recordset"
            )
        return result
