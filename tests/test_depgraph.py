"""Tests for phasekit.lib.depgraph module."""

import random

import pytest

from phasekit.lib.depgraph import (
    CycleDetected,
    DuplicateTaskId,
    InvalidReference,
    SelfReference,
    topological_order,
    validate_acyclic,
)
from phasekit.state.models import Task


def tasks(spec: dict) -> list[dict]:
    return [{"id": task_id, "dependencies": deps} for task_id, deps in spec.items()]


class TestTopologicalOrder:
    """Tests for topological_order."""

    def test_chain_scenario(self):
        """010 <- 020 <- 030 (030 also on 010) orders 010, 020, 030."""
        order = topological_order(tasks({"010": [], "020": ["010"], "030": ["010", "020"]}))
        assert order == ["010", "020", "030"]

    def test_ties_follow_declaration_order(self):
        """Independent tasks keep the order they were declared in."""
        order = topological_order(tasks({"030": [], "010": [], "020": []}))
        assert order == ["030", "010", "020"]

    def test_released_tasks_follow_declaration_order(self):
        """A task freed later still goes before later-declared ready tasks."""
        order = topological_order(tasks({"010": ["020"], "020": [], "030": []}))
        assert order == ["020", "010", "030"]

    def test_deterministic(self):
        """Identical input gives identical output."""
        spec = tasks({"010": [], "020": ["010"], "030": [], "040": ["030", "020"]})
        assert topological_order(spec) == topological_order(spec)

    def test_random_dags_respect_edges(self):
        """For random acyclic graphs every dependency precedes its dependent."""
        rng = random.Random(7)
        for _ in range(50):
            ids = [f"{(i + 1) * 10:03d}" for i in range(rng.randint(1, 12))]
            spec = {}
            for i, task_id in enumerate(ids):
                earlier = ids[:i]
                spec[task_id] = rng.sample(earlier, rng.randint(0, len(earlier)))
            items = tasks(spec)
            rng.shuffle(items)

            order = topological_order(items)

            assert sorted(order) == sorted(ids)
            position = {task_id: i for i, task_id in enumerate(order)}
            for task_id, deps in spec.items():
                for dep in deps:
                    assert position[dep] < position[task_id]

    def test_accepts_task_records(self):
        """Task dataclasses work through their metadata dependencies."""
        records = [
            Task(id="020", name="b", phase="impl", metadata={"dependencies": ["010"]}),
            Task(id="010", name="a", phase="impl"),
        ]
        assert topological_order(records) == ["010", "020"]

    def test_empty(self):
        assert topological_order([]) == []


class TestValidateAcyclic:
    """Tests for validate_acyclic error reporting."""

    def test_two_node_cycle_names_both(self):
        """010 <-> 020 is a cycle mentioning both tasks."""
        with pytest.raises(CycleDetected) as exc:
            validate_acyclic(tasks({"010": ["020"], "020": ["010"]}))
        assert exc.value.nodes == ["010", "020"]
        assert "010" in str(exc.value) and "020" in str(exc.value)

    def test_cycle_excludes_downstream_tasks(self):
        """Tasks that merely wait on a cycle are not reported as on it."""
        with pytest.raises(CycleDetected) as exc:
            validate_acyclic(tasks({"010": [], "020": ["030"], "030": ["020"], "040": ["020"]}))
        assert exc.value.nodes == ["020", "030"]

    def test_cycle_never_returns_order(self):
        """topological_order raises on cycles instead of a partial order."""
        with pytest.raises(CycleDetected):
            topological_order(tasks({"010": ["030"], "020": ["010"], "030": ["020"]}))

    def test_self_reference(self):
        with pytest.raises(SelfReference) as exc:
            validate_acyclic(tasks({"010": ["010"]}))
        assert exc.value.task_id == "010"

    def test_unknown_reference(self):
        with pytest.raises(InvalidReference) as exc:
            validate_acyclic(tasks({"010": [], "020": ["099"]}))
        assert exc.value.task_id == "020"
        assert exc.value.missing_id == "099"

    def test_duplicate_ids(self):
        with pytest.raises(DuplicateTaskId):
            validate_acyclic([{"id": "010"}, {"id": "010"}])

    def test_repeated_dependency_counted_once(self):
        """Listing the same dependency twice is harmless."""
        assert topological_order(tasks({"010": [], "020": ["010", "010"]})) == ["010", "020"]

    def test_valid_graph_passes(self):
        validate_acyclic(tasks({"010": [], "020": ["010"]}))
