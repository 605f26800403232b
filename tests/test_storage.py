import pytest

from stakehub.hub.core.state import HubState
from stakehub.protocol.types.batch import Batch, PendingBatch, UnbondRequest
from stakehub.protocol.types.common import StateError


def batch(batch_id, reconciled=False):
    return Batch(id=batch_id, reconciled=reconciled, total_shares=10, amount_unclaimed=10, est_unbond_end_time=0)


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.set_state("key", "value")
            raise RuntimeError("boom")
    assert db.get_state("key") is None

def test_batches_filtered_by_reconciled_flag(db):
    db.save_batch(3, False, batch(3).model_dump_json())
    db.save_batch(1, True, batch(1, True).model_dump_json())
    db.save_batch(2, False, batch(2).model_dump_json())

    assert [row[0] for row in db.get_batches(reconciled=False)] == [2, 3]
    assert [row[0] for row in db.get_batches()] == [1, 2, 3]

def test_requests_indexed_by_user(db):
    for batch_id, user in [(2, "bob"), (1, "alice"), (3, "alice"), (1, "bob")]:
        db.save_unbond_request(batch_id, user, UnbondRequest(id=batch_id, user=user, shares=1).model_dump_json())

    assert [row[0] for row in db.get_unbond_requests_by_user("alice")] == [1, 3]
    assert [row[1] for row in db.get_unbond_requests_by_batch(1)] == ["alice", "bob"]


# --- HubState overlay ---

def test_state_requires_instantiation(db):
    state = HubState(db)
    assert not state.is_instantiated()
    with pytest.raises(StateError):
        state.params

def test_clone_isolates_writes(db):
    state = HubState(db)
    state.pending_batch = PendingBatch(id=1, est_unbond_start_time=100)
    state.persist()

    working = state.clone()
    working.pending_batch.usteak_to_burn = 50
    working.save_batch(batch(1))

    assert state.pending_batch.usteak_to_burn == 0
    assert state.get_batch(1) is None

def test_unreconciled_scan_sees_uncommitted_writes(db):
    state = HubState(db)
    state.save_batch(batch(1))
    state.save_batch(batch(2))
    state.persist()

    working = HubState(db)
    first = working.unreconciled_batches()[0]
    first.reconciled = True
    working.save_batch(first)
    working.save_batch(batch(3))

    assert [b.id for b in working.unreconciled_batches()] == [2, 3]
    # Not persisted yet
    assert [row[0] for row in db.get_batches(reconciled=False)] == [1, 2]

    working.persist()
    assert [row[0] for row in db.get_batches(reconciled=False)] == [2, 3]

def test_removed_requests_hidden_before_persist(db):
    state = HubState(db)
    state.save_unbond_request(UnbondRequest(id=1, user="alice", shares=5))
    state.save_unbond_request(UnbondRequest(id=2, user="alice", shares=7))
    state.persist()

    working = HubState(db)
    working.remove_unbond_request(1, "alice")
    assert [r.id for r in working.unbond_requests_by_user("alice")] == [2]

    working.persist()
    assert [row[0] for row in db.get_unbond_requests_by_user("alice")] == [2]
