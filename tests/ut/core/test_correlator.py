import pytest

from pidgeon.core.errors import DuplicateIdError
from pidgeon.core.session.correlator import RequestCorrelator


@pytest.mark.ut
def test_ids_start_at_one_and_strictly_increase():
    correlator = RequestCorrelator()

    ids = [correlator.next_id() for _ in range(100)]

    assert ids[0] == 1
    assert all(a < b for a, b in zip(ids, ids[1:]))
    assert correlator.last_id == 100


@pytest.mark.ut
def test_counters_are_per_instance():
    first, second = RequestCorrelator(), RequestCorrelator()
    first.next_id()
    first.next_id()

    assert second.next_id() == 1


@pytest.mark.ut
def test_resolve_returns_context_once():
    correlator = RequestCorrelator()
    request_id = correlator.next_id()
    correlator.track(request_id, "ctx")

    assert request_id in correlator
    assert correlator.resolve(request_id) == "ctx"
    assert correlator.resolve(request_id) is None
    assert request_id not in correlator
    assert correlator.drain_all() == []


@pytest.mark.ut
def test_resolve_unknown_or_missing_id_returns_none():
    correlator = RequestCorrelator()

    assert correlator.resolve(42) is None
    assert correlator.resolve(None) is None


@pytest.mark.ut
def test_track_duplicate_raises():
    correlator = RequestCorrelator()
    correlator.track(1, "a")

    with pytest.raises(DuplicateIdError):
        correlator.track(1, "b")

    assert correlator.resolve(1) == "a"


@pytest.mark.ut
def test_drain_all_empties_in_id_order():
    correlator = RequestCorrelator()
    correlator.track(4, "four")
    correlator.track(3, "three")

    assert len(correlator) == 2
    assert correlator.drain_all() == [(3, "three"), (4, "four")]
    assert len(correlator) == 0
    assert correlator.drain_all() == []
