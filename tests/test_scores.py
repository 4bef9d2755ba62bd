from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from reflex_tap.persistence import MemoryKeyValueStore, PersistenceUnavailable
from reflex_tap.scores import BEST_SCORE_KEY, HISTORY_CAPACITY, HISTORY_KEY, ScoreStore


class BrokenStore:
    def __init__(self) -> None:
        self.writes = 0

    def get(self, key: str, default: Any) -> Any:
        raise PersistenceUnavailable("disk gone")

    def set_many(self, values: Mapping[str, Any]) -> None:
        self.writes += 1
        raise PersistenceUnavailable("disk gone")


def test_load_without_prior_data_yields_defaults() -> None:
    store = ScoreStore(MemoryKeyValueStore())
    state = store.load()
    assert state.best_score_s is None
    assert state.history == ()


def test_load_reads_persisted_values() -> None:
    backend = MemoryKeyValueStore({BEST_SCORE_KEY: 0.21, HISTORY_KEY: [0.3, 0.25, 0.21]})
    state = ScoreStore(backend).load()
    assert state.best_score_s == 0.21
    assert state.history == (0.3, 0.25, 0.21)


def test_load_treats_zero_best_as_unset_and_drops_junk() -> None:
    backend = MemoryKeyValueStore({BEST_SCORE_KEY: 0, HISTORY_KEY: [0.3, "x", None, -1.0, 0.4]})
    state = ScoreStore(backend).load()
    assert state.best_score_s is None
    assert state.history == (0.3, 0.4)


def test_load_keeps_newest_entries_when_oversized() -> None:
    values = [0.1 * i for i in range(1, 14)]
    state = ScoreStore(MemoryKeyValueStore({HISTORY_KEY: values})).load()
    assert list(state.history) == values[-HISTORY_CAPACITY:]


def test_best_score_only_decreases() -> None:
    store = ScoreStore()
    store.load()
    best_seen: list[float] = []
    for rt in [0.31, 0.28, 0.35, 0.22, 0.22, 0.40, 0.19, 0.5]:
        store.record_result(rt)
        assert store.best_score_s is not None
        best_seen.append(store.best_score_s)

    assert best_seen == [0.31, 0.28, 0.28, 0.22, 0.22, 0.22, 0.19, 0.19]
    assert all(b <= a for a, b in zip(best_seen, best_seen[1:]))


def test_history_evicts_oldest_after_capacity() -> None:
    store = ScoreStore()
    store.load()
    values = [0.2 + 0.01 * i for i in range(11)]
    for v in values:
        store.record_result(v)

    assert len(store.history()) == HISTORY_CAPACITY
    assert store.history() == values[1:]


def test_record_result_persists_both_keys() -> None:
    backend = MemoryKeyValueStore()
    store = ScoreStore(backend)
    store.load()
    store.record_result(0.25)
    store.record_result(0.3)

    assert backend.as_dict() == {BEST_SCORE_KEY: 0.25, HISTORY_KEY: [0.25, 0.3]}

    reloaded = ScoreStore(backend).load()
    assert reloaded.best_score_s == 0.25
    assert reloaded.history == (0.25, 0.3)


def test_negative_reaction_time_is_rejected() -> None:
    store = ScoreStore()
    with pytest.raises(ValueError):
        store.record_result(-0.01)


def test_unavailable_backend_falls_back_to_memory() -> None:
    backend = BrokenStore()
    store = ScoreStore(backend)
    state = store.load()
    assert state.best_score_s is None
    assert state.history == ()

    state = store.record_result(0.2)
    assert backend.writes == 1
    assert state.best_score_s == 0.2
    assert state.history == (0.2,)
