"""Unit tests for matrix fan-out resolution."""

from __future__ import annotations

from typing import Any

import pytest

from wcv.workflow.definition import JobDefinition, WorkflowDefinition
from wcv.workflow.fanout import (
    FanOutResolver,
    FanOutTable,
    ProviderSizeEstimator,
    SizeSource,
)
from wcv.workflow.graph import build_graph

FOUR_COLORS = (
    """echo 'colors=["red", "green", "blue", "yellow"]' >> "$GITHUB_OUTPUT"\n"""
)


def _resolve(jobs: dict[str, Any], **kwargs: Any) -> FanOutTable:
    workflow = WorkflowDefinition.from_mapping({"jobs": jobs})
    return FanOutResolver(workflow.jobs, build_graph(workflow.jobs), **kwargs).resolve()


def _matrix_job(matrix: Any, **extra: Any) -> dict[str, Any]:
    strategy = {"matrix": matrix}
    strategy.update(extra.pop("strategy", {}))
    return {"runs-on": "ubuntu-latest", "strategy": strategy, **extra}


def _color_provider() -> dict[str, Any]:
    return {
        "outputs": {"colors": "${{ steps.gen.outputs.colors }}"},
        "steps": [{"id": "gen", "run": FOUR_COLORS}],
    }


class TestStaticMatrix:
    """Tests for matrices written out in the workflow."""

    def test_plain_job(self) -> None:
        """A job without a matrix runs once."""
        table = _resolve({"build": {"runs-on": "ubuntu-latest"}})

        fanout = table["build"]
        assert fanout.multiplier == 1
        assert not fanout.is_matrix
        assert fanout.exact

    def test_product_of_dimensions(self) -> None:
        """The multiplier is the product of the dimension sizes."""
        table = _resolve(
            {"test": _matrix_job({"os": ["a", "b"], "node": [14, 16, 18], "x": [1, 2]})}
        )

        assert table.multiplier("test") == 12
        assert [dim.size for dim in table["test"].dimensions] == [2, 3, 2]
        assert all(dim.source is SizeSource.STATIC for dim in table["test"].dimensions)

    def test_two_by_two(self) -> None:
        table = _resolve({"test": _matrix_job({"os": ["a", "b"], "node": [1, 2]})})

        assert table.multiplier("test") == 4

    def test_empty_matrix_mapping(self) -> None:
        """An empty matrix expands to a single instance."""
        table = _resolve({"test": _matrix_job({})})

        assert table.multiplier("test") == 1

    def test_explicitly_empty_dimension(self) -> None:
        """A dimension with no values yields no combinations."""
        table = _resolve({"test": _matrix_job({"os": [], "node": [1, 2]})})

        assert table.multiplier("test") == 0

    def test_scalar_dimension(self) -> None:
        """A single non-list value counts as one."""
        table = _resolve({"test": _matrix_job({"os": "ubuntu", "node": [1, 2]})})

        assert table.multiplier("test") == 2

    def test_plain_string_matrix(self) -> None:
        """A matrix string that is not an expression counts as one."""
        table = _resolve({"test": _matrix_job("not-a-matrix")})

        assert table.multiplier("test") == 1
        assert not table["test"].is_matrix

    def test_unknown_job_defaults_to_one(self) -> None:
        table = _resolve({"a": {}})

        assert table.multiplier("missing") == 1


class TestMaxParallel:
    """Tests for the max-parallel cap."""

    @pytest.mark.parametrize(
        ("max_parallel", "expected"),
        [(2, 2), ("3", 3), (10, 4), ("${{ inputs.limit }}", 4), (0, 4)],
    )
    def test_cap(self, max_parallel: Any, expected: int) -> None:
        """Only positive integer caps apply."""
        table = _resolve(
            {
                "test": _matrix_job(
                    {"os": ["a", "b", "c", "d"]},
                    strategy={"max-parallel": max_parallel},
                )
            }
        )

        assert table.multiplier("test") == expected
        assert table["test"].combinations == 4


class TestIncludeExclude:
    """Tests for include and exclude entries."""

    BASE = {"os": ["a", "b"], "node": [14, 16, 18]}

    def test_exclude_full_combination(self) -> None:
        table = _resolve(
            {"t": _matrix_job({**self.BASE, "exclude": [{"os": "a", "node": 14}]})}
        )

        assert table.multiplier("t") == 5

    def test_exclude_partial_combination(self) -> None:
        """A partial exclude removes every combination it matches."""
        table = _resolve({"t": _matrix_job({**self.BASE, "exclude": [{"os": "a"}]})})

        assert table.multiplier("t") == 3

    def test_exclude_unmatched_value(self) -> None:
        table = _resolve({"t": _matrix_job({**self.BASE, "exclude": [{"os": "z"}]})})

        assert table.multiplier("t") == 6

    def test_exclude_unknown_dimension_skipped(self) -> None:
        table = _resolve(
            {"t": _matrix_job({**self.BASE, "exclude": [{"os": "a", "arch": "x"}]})}
        )

        assert table.multiplier("t") == 6

    def test_include_extending_existing_combination(self) -> None:
        """Include entries matching existing values add no combination."""
        table = _resolve(
            {
                "t": _matrix_job(
                    {**self.BASE, "include": [{"os": "a", "experimental": True}]}
                )
            }
        )

        assert table.multiplier("t") == 6

    def test_include_new_combination(self) -> None:
        table = _resolve({"t": _matrix_job({**self.BASE, "include": [{"os": "c"}]})})

        assert table.multiplier("t") == 7

    def test_include_only(self) -> None:
        """Without dimensions every include entry is one combination."""
        table = _resolve(
            {"t": _matrix_job({"include": [{"os": "a"}, {"os": "b"}, {"os": "c"}]})}
        )

        assert table.multiplier("t") == 3


class TestDynamicMatrix:
    """Tests for dimensions produced by other jobs."""

    def test_step_output_literal(self) -> None:
        """An array written by the provider's step sizes the dimension."""
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job(
                    {"color": "${{ fromJSON(needs.setup.outputs.colors) }}"},
                    needs="setup",
                ),
            }
        )

        dimension = table["build"].dimensions[0]
        assert table.multiplier("build") == 4
        assert dimension.source is SizeSource.STEP_OUTPUT
        assert dimension.provider == "setup.colors"
        assert table["build"].exact
        assert table.providers["setup.colors"].consumers == frozenset({"build"})

    def test_step_key_differs_from_output_name(self) -> None:
        """The job output is matched through its step reference."""
        table = _resolve(
            {
                "setup": {
                    "outputs": {"matrix": "${{ steps.gen.outputs.list }}"},
                    "steps": [
                        {"id": "gen", "run": 'echo "list=[1,2]" >> $GITHUB_OUTPUT'}
                    ],
                },
                "build": _matrix_job(
                    {"v": "${{ fromJSON(needs.setup.outputs.matrix) }}"}, needs="setup"
                ),
            }
        )

        assert table.multiplier("build") == 2

    def test_inline_literal_output(self) -> None:
        """An output holding a literal array is sized from the literal."""
        table = _resolve(
            {
                "setup": {"outputs": {"list": '["a", "b", "c", "d", "e"]'}},
                "build": _matrix_job(
                    {"v": "${{ fromJSON(needs.setup.outputs.list) }}"}, needs="setup"
                ),
            }
        )

        assert table.multiplier("build") == 5
        assert table["build"].dimensions[0].source is SizeSource.INLINE_LITERAL

    def test_inline_literal_in_expression(self) -> None:
        table = _resolve({"build": _matrix_job({"v": "${{ fromJSON('[1, 2]') }}"})})

        assert table.multiplier("build") == 2
        assert table["build"].dimensions[0].source is SizeSource.INLINE_LITERAL

    def test_related_output_of_referenced_job(self) -> None:
        """Another sized output of the referenced job is used."""
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job(
                    {"v": "${{ fromJSON(needs.setup.outputs.undeclared) }}"},
                    needs="setup",
                ),
            }
        )

        dimension = table["build"].dimensions[0]
        assert table.multiplier("build") == 4
        assert dimension.source is SizeSource.DEPENDENCY_PROVIDER
        assert dimension.provider == "setup.colors"
        assert table.providers["setup.colors"].consumers == frozenset({"build"})

    def test_provider_among_dependencies(self) -> None:
        """An unparseable expression falls back to a dependency's output."""
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job({"v": "${{ fromJSON(env.LIST) }}"}, needs="setup"),
            }
        )

        assert table.multiplier("build") == 4
        assert table["build"].dimensions[0].source is SizeSource.DEPENDENCY_PROVIDER

    def test_unsized_provider_uses_default(self) -> None:
        """A computed output falls back to the default size."""
        table = _resolve(
            {
                "setup": {
                    "outputs": {"list": "${{ steps.gen.outputs.list }}"},
                    "steps": [
                        {"id": "gen", "run": 'echo "list=$(ls)" >> $GITHUB_OUTPUT'}
                    ],
                },
                "build": _matrix_job(
                    {"v": "${{ fromJSON(needs.setup.outputs.list) }}"}, needs="setup"
                ),
            }
        )

        dimension = table["build"].dimensions[0]
        assert table.multiplier("build") == 3
        assert dimension.source is SizeSource.DEFAULT
        assert dimension.provider == "setup.list"
        assert not table["build"].exact
        assert not table.providers["setup.list"].sized
        assert table.providers["setup.list"].consumers == frozenset({"build"})

    def test_missing_provider_job_uses_default(self) -> None:
        """A reference to an undeclared job is not guessed from dependencies."""
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job(
                    {"v": "${{ fromJSON(needs.ghost.outputs.x) }}"}, needs="setup"
                ),
            }
        )

        assert table.multiplier("build") == 3
        assert table["build"].dimensions[0].source is SizeSource.DEFAULT
        assert table.providers["setup.colors"].consumers == frozenset()

    def test_custom_default_fanout(self) -> None:
        table = _resolve(
            {"build": _matrix_job({"v": "${{ fromJSON(env.LIST) }}"})},
            default_fanout=5,
        )

        assert table.multiplier("build") == 5

    def test_dynamic_dimensions_multiply(self) -> None:
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job(
                    {
                        "color": "${{ fromJSON(needs.setup.outputs.colors) }}",
                        "os": ["linux", "mac"],
                    },
                    needs="setup",
                ),
            }
        )

        assert table.multiplier("build") == 8

    def test_whole_matrix_expression(self) -> None:
        """A matrix given as one expression is a single dimension."""
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job(
                    "${{ fromJSON(needs.setup.outputs.colors) }}", needs="setup"
                ),
            }
        )

        assert table.multiplier("build") == 4
        assert table["build"].dimensions[0].name == "matrix"

    def test_dynamic_include(self) -> None:
        table = _resolve(
            {
                "setup": _color_provider(),
                "build": _matrix_job(
                    {"include": "${{ fromJSON(needs.setup.outputs.colors) }}"},
                    needs="setup",
                ),
            }
        )

        assert table.multiplier("build") == 4

    def test_custom_estimator(self) -> None:
        """The provider estimator can be replaced."""

        class FixedEstimator(ProviderSizeEstimator):
            def estimate(
                self, job: JobDefinition, output_key: str, output_value: str
            ) -> tuple[int, SizeSource] | None:
                return 7, SizeSource.STEP_OUTPUT

        table = _resolve(
            {
                "setup": {"outputs": {"list": "${{ steps.x.outputs.list }}"}},
                "build": _matrix_job(
                    {"v": "${{ fromJSON(needs.setup.outputs.list) }}"}, needs="setup"
                ),
            },
            estimator=FixedEstimator(),
        )

        assert table.multiplier("build") == 7


class TestProviderSizeEstimator:
    """Tests for ProviderSizeEstimator."""

    def test_match_by_output_name(self) -> None:
        """Without a matching step reference the output name is tried."""
        job = JobDefinition.model_validate(
            {"steps": [{"run": 'echo "targets=[1,2,3]" >> $GITHUB_OUTPUT'}]}
        )

        estimate = ProviderSizeEstimator().estimate(
            job, "targets", "${{ steps.other.outputs.value }}"
        )

        assert estimate == (3, SizeSource.STEP_OUTPUT)

    def test_empty_literal_counts_as_one(self) -> None:
        job = JobDefinition()

        assert ProviderSizeEstimator().estimate(job, "x", "[]") == (
            1,
            SizeSource.INLINE_LITERAL,
        )

    def test_nothing_recognized(self) -> None:
        job = JobDefinition()

        assert ProviderSizeEstimator().estimate(job, "x", "${{ env.X }}") is None


class TestJobConcurrency:
    """Tests for job-level concurrency groups on fan-outs."""

    def test_static_group_is_exclusive(self) -> None:
        table = _resolve(
            {"deploy": _matrix_job({"env": ["a", "b"]}, concurrency="deploy")}
        )

        assert table["deploy"].exclusive_key == "deploy"
        assert table.multiplier("deploy") == 2

    def test_matrix_group_is_not_exclusive(self) -> None:
        table = _resolve(
            {
                "deploy": _matrix_job(
                    {"env": ["a", "b"]},
                    concurrency={"group": "deploy-${{ matrix.env }}"},
                )
            }
        )

        assert table["deploy"].exclusive_key is None
