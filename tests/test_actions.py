"""
Tests for actions and the randomized workload scheduler.
"""

from collections import Counter
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from core.actions import Action, StatementExecutor, fixed_weight, ranged_weight
from core.errors import SkipAttempt
from core.query import Query
from core.randomly import Randomly


def make_session(seed: int = 1):
    session = SimpleNamespace(randomly=Randomly(seed), database_name="database0")
    session.execute = Mock(return_value=True)
    return session


def query_for(name: str):
    return lambda session: Query(f"{name} t0")


ACTIONS = [
    Action("INSERT", query_for("INSERT"), fixed_weight(3)),
    Action("UPDATE", query_for("UPDATE"), fixed_weight(5)),
    Action("DELETE", query_for("DELETE"), fixed_weight(2)),
    Action("VACUUM", query_for("VACUUM"), fixed_weight(0)),
]


class TestWeights:

    def test_fixed_weight(self):
        assert fixed_weight(4)(make_session()) == 4

    def test_ranged_weight_bounds(self):
        session = make_session()
        policy = ranged_weight(2, 6)
        assert all(2 <= policy(session) <= 6 for _ in range(100))


class TestBuildWorklist:

    def test_counts_match_weight_draws(self):
        worklist = StatementExecutor(make_session(), ACTIONS).build_worklist()
        counts = Counter(action.name for action in worklist)
        assert counts == {"INSERT": 3, "UPDATE": 5, "DELETE": 2}

    def test_order_varies_with_seed(self):
        orders = {
            tuple(a.name for a in StatementExecutor(make_session(seed), ACTIONS).build_worklist())
            for seed in range(20)
        }
        assert len(orders) > 1

    def test_same_seed_same_order(self):
        first = StatementExecutor(make_session(9), ACTIONS).build_worklist()
        second = StatementExecutor(make_session(9), ACTIONS).build_worklist()
        assert [a.name for a in first] == [a.name for a in second]

    def test_weight_override(self):
        executor = StatementExecutor(make_session(), ACTIONS, weight=lambda s, a: 1)
        assert len(executor.build_worklist()) == len(ACTIONS)

    def test_negative_weight_rejected(self):
        executor = StatementExecutor(make_session(), [Action("BAD", query_for("BAD"), fixed_weight(-1))])
        with pytest.raises(ValueError):
            executor.build_worklist()


class TestExecuteStatements:

    def test_executes_every_entry(self):
        session = make_session()
        submitted = StatementExecutor(session, ACTIONS).execute_statements()
        assert submitted == 10
        assert session.execute.call_count == 10

    def test_generator_skip_abandons_one_statement(self):
        def skipping(session):
            raise SkipAttempt()

        session = make_session()
        actions = ACTIONS + [Action("SKIP", skipping, fixed_weight(4))]
        submitted = StatementExecutor(session, actions).execute_statements()
        assert submitted == 10

    def test_post_hook_sees_each_query(self):
        seen = []
        StatementExecutor(make_session(), ACTIONS, post_hook=seen.append).execute_statements()
        assert len(seen) == 10
        assert all(isinstance(q, Query) for q in seen)

    def test_post_hook_skip_abandons_workload(self):
        calls = []

        def hook(query):
            calls.append(query)
            if len(calls) == 3:
                raise SkipAttempt()

        session = make_session()
        with pytest.raises(SkipAttempt):
            StatementExecutor(session, ACTIONS, post_hook=hook).execute_statements()
        assert session.execute.call_count == 3

    def test_database_errors_propagate(self):
        session = make_session()
        session.execute.side_effect = RuntimeError("unexpected")
        with pytest.raises(RuntimeError):
            StatementExecutor(session, ACTIONS).execute_statements()
