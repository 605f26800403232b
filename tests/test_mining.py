import pytest

from stakehub.hub.core.mining import (
    apply_proof,
    compute_miner_proof,
    create_difficulty_prefix,
    find_nonce,
    fold_entropy,
    hash_entropy,
    meets_difficulty,
    update_difficulty,
)
from stakehub.protocol.config.params import UINT64_MAX, UINT128_MAX
from stakehub.protocol.crypto.hash import sha256_hex
from stakehub.protocol.types.coins import Coins
from stakehub.protocol.types.common import CheckedArithmeticError, ProofError, StateError
from stakehub.protocol.types.hub import MiningState
from stakehub.protocol.types.msgs import Bond, SubmitProof, UpdateEntropy

from conftest import ALICE, HUB, MINER, VAL_A, VAL_B


def make_state(difficulty=1, last_time=1000, last_block=10):
    return MiningState(
        difficulty=difficulty,
        miner_entropy="entropy",
        miner_entropy_draft="draft",
        last_mined_timestamp=last_time,
        last_mined_block=last_block,
    )


def test_proof_regression_vector():
    proof = compute_miner_proof("abcdefg", "cosmos123", 3825297897467829464)
    assert proof == "eb7d03dd856d797aea48b2a080357810c50b366d2a40fd358e1f1b18d3a62d5c"

def test_difficulty_prefix():
    assert create_difficulty_prefix(3) == "000"
    assert create_difficulty_prefix(1) == "0"

def test_prefix_check_is_textual():
    assert meets_difficulty("00ab", 2)
    assert not meets_difficulty("0ab0", 2)

def test_nonce_must_fit_u64():
    with pytest.raises(ProofError):
        compute_miner_proof("e", "m", 2**64)

def test_find_nonce_meets_difficulty():
    nonce = find_nonce("abcdefg", "cosmos123", 2)
    assert compute_miner_proof("abcdefg", "cosmos123", nonce).startswith("00")


# --- Difficulty retargeting ---

def test_difficulty_rises_only_with_proof():
    state = make_state(difficulty=3, last_time=1000)
    assert update_difficulty(state, 1010, did_submit_proof=False).difficulty == 3
    assert update_difficulty(state, 1010, did_submit_proof=True).difficulty == 4

def test_difficulty_drops_by_one_per_idle_call():
    state = make_state(difficulty=3, last_time=1000)
    state = update_difficulty(state, 1301, did_submit_proof=False)
    assert state.difficulty == 2
    state = update_difficulty(state, 1302, did_submit_proof=False)
    assert state.difficulty == 1
    # Never below one
    assert update_difficulty(state, 5000, did_submit_proof=False).difficulty == 1

def test_difficulty_unchanged_inside_window():
    state = make_state(difficulty=3, last_time=1000)
    assert update_difficulty(state, 1020, True).difficulty == 3
    assert update_difficulty(state, 1300, True).difficulty == 3

def test_update_difficulty_is_pure():
    state = make_state(difficulty=3, last_time=1000)
    update_difficulty(state, 1005, True)
    assert state.difficulty == 3


# --- Entropy chain ---

def test_fold_entropy_changes_draft_only():
    state = make_state()
    folded = fold_entropy(state, "contribution")
    assert folded.miner_entropy_draft == sha256_hex(b"draftcontribution")
    assert folded.miner_entropy == "entropy"

def test_apply_proof_rolls_entropy_and_accrues_power():
    state = make_state(last_time=1000, last_block=10)
    proof = compute_miner_proof(state.miner_entropy, "miner", 1)

    after = apply_proof(state, proof, "val", 1100, 25)

    assert after.miner_entropy == hash_entropy("draft", proof)
    assert after.miner_entropy_draft == proof
    assert after.mining_power_of("val") == 15
    assert after.total_mining_power == 15
    assert after.last_mined_timestamp == 1100
    assert after.last_mined_block == 25

def test_apply_proof_retargets_against_previous_timestamp():
    state = make_state(difficulty=1, last_time=1000)
    proof = compute_miner_proof(state.miner_entropy, "miner", 1)
    assert apply_proof(state, proof, "val", 1010, 11).difficulty == 2

def test_apply_proof_rejects_power_overflow():
    proof = compute_miner_proof("entropy", "miner", 1)

    saturated_total = make_state().model_copy(update={"total_mining_power": UINT128_MAX})
    with pytest.raises(CheckedArithmeticError, match="Overflow"):
        apply_proof(saturated_total, proof, "val", 1100, 25)

    saturated_validator = make_state().model_copy(update={"validator_mining_powers": {"val": UINT128_MAX}})
    with pytest.raises(CheckedArithmeticError, match="Overflow"):
        apply_proof(saturated_validator, proof, "val", 1100, 25)

def test_difficulty_capped_at_u64():
    state = make_state(difficulty=UINT64_MAX, last_time=1000)
    with pytest.raises(CheckedArithmeticError, match="Overflow"):
        update_difficulty(state, 1005, did_submit_proof=True)

    # Without a proof the cap is never reached
    assert update_difficulty(state, 1005, did_submit_proof=False) is state


# --- Operations through the driver ---

@pytest.fixture
def bonded(hub, chain):
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    chain.add_rewards(HUB, VAL_A, 10_000)
    chain.advance(100)
    return hub


def test_submit_proof_makes_miner_fee_recipient(bonded, chain):
    entropy = bonded.state.mining.miner_entropy
    nonce = find_nonce(entropy, MINER, bonded.state.mining.difficulty)

    result = bonded.execute(MINER, SubmitProof(nonce=nonce, validator=VAL_B))

    assert result.events_of("steakhub/proof_accepted")
    assert result.events_of("steakhub/harvested")
    assert bonded.state.params.fee_account == MINER
    # 100 seconds at 5s blocks since instantiation
    assert bonded.state.mining.mining_power_of(VAL_B) == 20
    assert bonded.state.mining.miner_entropy != entropy
    # 5% of the 10_000 reward goes to the miner
    assert chain.query_balance(MINER, "uluna") == 500

def test_submit_proof_rejects_bad_nonce(bonded):
    entropy = bonded.state.mining.miner_entropy
    nonce = 0
    while compute_miner_proof(entropy, MINER, nonce).startswith("0"):
        nonce += 1

    with pytest.raises(ProofError, match="difficulty"):
        bonded.execute(MINER, SubmitProof(nonce=nonce, validator=VAL_B))
    assert bonded.state.mining.total_mining_power == 0

def test_submit_proof_rejects_unknown_validator(bonded):
    nonce = find_nonce(bonded.state.mining.miner_entropy, MINER, 1)
    with pytest.raises(ProofError, match="not found"):
        bonded.execute(MINER, SubmitProof(nonce=nonce, validator="terravaloper1unknown"))

def test_submit_proof_power_overflow_rolls_back(bonded, chain):
    bonded.state.mining = bonded.state.mining.model_copy(update={"total_mining_power": UINT128_MAX})
    before = bonded.state.mining.model_copy(deep=True)
    fee_account = bonded.state.params.fee_account

    nonce = find_nonce(before.miner_entropy, MINER, before.difficulty)
    with pytest.raises(CheckedArithmeticError):
        bonded.execute(MINER, SubmitProof(nonce=nonce, validator=VAL_B))

    assert bonded.state.mining == before
    assert bonded.state.params.fee_account == fee_account
    assert chain.query_balance(MINER, "uluna") == 0

def test_submit_proof_without_rewards_rolls_back(hub, chain):
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    chain.advance(100)
    before = hub.state.mining.model_copy(deep=True)

    nonce = find_nonce(before.miner_entropy, MINER, before.difficulty)
    with pytest.raises(StateError, match="no rewards"):
        hub.execute(MINER, SubmitProof(nonce=nonce, validator=VAL_B))

    assert hub.state.mining == before
    assert hub.state.params.fee_account != MINER

def test_update_entropy_folds_into_draft_only(hub):
    before = hub.state.mining.model_copy(deep=True)

    result = hub.execute(MINER, UpdateEntropy(entropy="noise"))

    after = hub.state.mining
    assert after.miner_entropy == before.miner_entropy
    assert after.miner_entropy_draft == hash_entropy(before.miner_entropy_draft, "noise")
    assert all(a.value != after.miner_entropy_draft for a in result.attributes)

def test_instantiate_seeds_entropy_with_hub_address(hub):
    assert hub.state.mining.miner_entropy == HUB
    assert hub.state.mining.miner_entropy_draft == HUB
    assert hub.state.mining.difficulty == 1
