# MIT License
# Copyright (c) 2025 Hashborn

"""
Mining / Difficulty Engine

A permissionless proof-of-work gate on reward harvesting.

Proof:
    proof = sha256_hex(miner_entropy || miner_address || nonce_le_u64)
    accepted when it starts with `difficulty` ASCII '0' characters

On acceptance the published entropy becomes sha256_hex(draft || proof), the
draft becomes the proof, and the chosen validator earns mining power equal to
the blocks elapsed since the last accepted proof. The miner becomes the fee
recipient of the harvest the proof triggers.

Difficulty retargets around a 20s..300s window: it only rises on a call that
carried an accepted proof, and drops by one per call that sees a gap above the
ceiling.
"""

import logging

from ...protocol.config.params import (
    TARGET_MINING_DURATION_CEILING_SECONDS,
    TARGET_MINING_DURATION_FLOOR_SECONDS,
    UINT64_MAX,
)
from ...protocol.crypto.hash import sha256_concat_hex
from ...protocol.types.common import Env, FeeType, ProofError
from ...protocol.types.effects import Event, ExecuteSelfEffect, Response
from ...protocol.types.hub import MiningState
from ...protocol.types.msgs import Harvest
from ..host.interface import StakingHost
from .math import checked_add, checked_sub
from .state import HubState

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════
# PURE FUNCTIONS
# ═══════════════════════════════════════════════════════

def create_difficulty_prefix(difficulty: int) -> str:
    return "0" * difficulty

def compute_miner_proof(miner_entropy: str, miner_address: str, nonce: int) -> str:
    if not 0 <= nonce <= UINT64_MAX:
        raise ProofError(f"nonce out of range: {nonce}")
    return sha256_concat_hex(miner_entropy, miner_address, nonce.to_bytes(8, "little"))

def hash_entropy(entropy: str, contribution: str) -> str:
    return sha256_concat_hex(entropy, contribution)

def meets_difficulty(proof: str, difficulty: int) -> bool:
    return proof.startswith(create_difficulty_prefix(difficulty))

def find_nonce(miner_entropy: str, miner_address: str, difficulty: int, start: int = 0,
               max_attempts: int = 10_000_000) -> int:
    """Miner-side search for the first nonce from `start` whose proof meets `difficulty`."""
    for nonce in range(start, min(start + max_attempts, UINT64_MAX + 1)):
        if meets_difficulty(compute_miner_proof(miner_entropy, miner_address, nonce), difficulty):
            return nonce
    raise ProofError(f"no nonce found in {max_attempts} attempts at difficulty {difficulty}")

def update_difficulty(mining: MiningState, block_time: int, did_submit_proof: bool) -> MiningState:
    """
    Retargets difficulty from the time since the last accepted proof.

    Only a call that carried an accepted proof may raise it.
    """
    mining_duration = checked_sub(block_time, mining.last_mined_timestamp)
    difficulty = mining.difficulty

    if mining_duration > TARGET_MINING_DURATION_CEILING_SECONDS and difficulty > 1:
        # too hard to mine
        difficulty -= 1
    elif mining_duration < TARGET_MINING_DURATION_FLOOR_SECONDS and did_submit_proof:
        # too easy to mine
        difficulty = checked_add(difficulty, 1, UINT64_MAX)

    if difficulty == mining.difficulty:
        return mining
    logger.info(f"Difficulty {mining.difficulty} -> {difficulty} (last proof {mining_duration}s ago)")
    return mining.model_copy(update={"difficulty": difficulty})

def fold_entropy(mining: MiningState, contribution: str) -> MiningState:
    draft = hash_entropy(mining.miner_entropy_draft, contribution)
    return mining.model_copy(update={"miner_entropy_draft": draft})

def apply_proof(mining: MiningState, proof: str, validator: str, block_time: int, block_height: int) -> MiningState:
    """State after accepting `proof` for `validator` (the prefix check is the caller's)."""
    mining_duration_blocks = checked_sub(block_height, mining.last_mined_block)

    # Retarget against the previous proof's timestamp
    mining = update_difficulty(mining, block_time, did_submit_proof=True)

    powers = dict(mining.validator_mining_powers)
    powers[validator] = checked_add(powers.get(validator, 0), mining_duration_blocks)
    total_mining_power = checked_add(mining.total_mining_power, mining_duration_blocks)

    return mining.model_copy(update={
        "miner_entropy": hash_entropy(mining.miner_entropy_draft, proof),
        "miner_entropy_draft": proof,
        "validator_mining_powers": powers,
        "total_mining_power": total_mining_power,
        "last_mined_timestamp": block_time,
        "last_mined_block": block_height,
    })


# ═══════════════════════════════════════════════════════
# OPERATIONS
# ═══════════════════════════════════════════════════════

def update_entropy(state: HubState, env: Env, sender: str, entropy: str) -> Response:
    """Anyone may fold entropy into the next round's seed."""
    mining = fold_entropy(state.mining, entropy)
    state.mining = update_difficulty(mining, env.block_time, did_submit_proof=False)

    logger.debug(f"Entropy contribution from {sender}")
    return (Response()
            .add_attribute("action", "steakhub/update_entropy")
            .add_attribute("difficulty", state.mining.difficulty))

def submit_proof(state: HubState, env: Env, host: StakingHost, sender: str, nonce: int, validator_address: str) -> Response:
    validator = host.query_validator(validator_address)
    if validator is None:
        raise ProofError("validator address not found in staking module")

    mining = state.mining
    proof = compute_miner_proof(mining.miner_entropy, sender, nonce)
    if not meets_difficulty(proof, mining.difficulty):
        raise ProofError("block hash does not meet difficulty requirement")

    state.mining = apply_proof(mining, proof, validator.address, env.block_time, env.block_height)

    # make the miner the fee recipient
    params = state.params
    params.fee_account_type = FeeType.WALLET
    params.fee_account = sender

    logger.info(
        f"Proof accepted from {sender} for {validator.address} "
        f"(difficulty {mining.difficulty}, power {state.mining.mining_power_of(validator.address)})"
    )

    event = (Event(ty="steakhub/proof_accepted")
             .add_attribute("time", env.block_time)
             .add_attribute("height", env.block_height)
             .add_attribute("miner", sender)
             .add_attribute("validator", validator.address)
             .add_attribute("proof", proof)
             .add_attribute("difficulty", state.mining.difficulty))

    return (Response()
            .add_effect(ExecuteSelfEffect(msg=Harvest()))
            .add_event(event)
            .add_attribute("action", "steakhub/submit_proof"))
