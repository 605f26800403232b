# MIT License
# Copyright (c) 2025 Hashborn

import os
from decimal import Decimal
from typing import Dict

# Integer widths of the host chain's accumulators
UINT64_MAX = 2**64 - 1
UINT128_MAX = 2**128 - 1

# Mining retarget window
TARGET_MINING_DURATION_FLOOR_SECONDS = 20     # faster than this → harder
TARGET_MINING_DURATION_CEILING_SECONDS = 300  # slower than this → easier
INITIAL_DIFFICULTY = 1

# Ceiling for the immutable max fee rate (100%)
MAX_FEE_RATE_CEILING = Decimal("1.00")

# Follow-up dispatch bound for a single originating call
MAX_CALL_DEPTH = 16

# Event types the hub reads back from host replies
EVENT_COIN_RECEIVED = "coin_received"
EVENT_INSTANTIATE = "instantiate"
ATTR_CONTRACT_ADDRESS = "_contract_address"

DEFAULT_TOKEN_LABEL = "steak_token"

# Paginated query page sizes
DEFAULT_QUERY_LIMIT = 10
MAX_QUERY_LIMIT = 30


class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 denom: str,
                 bech32_prefix_acc: str,
                 bech32_prefix_val: str,
                 block_time_sec: int,
                 # Unbonding params
                 epoch_period: int,
                 unbond_period: int,
                 # Fee params
                 max_fee_rate: Decimal = Decimal("0.10"),
                 fee_rate: Decimal = Decimal("0.05"),
                 # Receipt token params
                 token_name: str = "Steak Token",
                 token_symbol: str = "STEAK",
                 token_decimals: int = 6,
                 # Rebalancing
                 min_rebalance_move: int = 1_000_000):
        self.network_id = network_id
        self.denom = denom
        self.bech32_prefix_acc = bech32_prefix_acc
        self.bech32_prefix_val = bech32_prefix_val
        self.block_time_sec = block_time_sec
        self.epoch_period = epoch_period
        self.unbond_period = unbond_period
        self.max_fee_rate = max_fee_rate
        self.fee_rate = fee_rate
        self.token_name = token_name
        self.token_symbol = token_symbol
        self.token_decimals = token_decimals
        self.min_rebalance_move = min_rebalance_move

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        denom="uluna",
        bech32_prefix_acc="terra",
        bech32_prefix_val="terravaloper",
        block_time_sec=5,
        epoch_period=100,
        unbond_period=300,
        min_rebalance_move=1,
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        denom="uluna",
        bech32_prefix_acc="terra",
        bech32_prefix_val="terravaloper",
        block_time_sec=6,
        epoch_period=86400,           # 1 day
        unbond_period=86400 * 21,     # 21 days
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        denom="uluna",
        bech32_prefix_acc="terra",
        bech32_prefix_val="terravaloper",
        block_time_sec=6,
        epoch_period=86400 * 3,       # 3 days: 7 batches fit in one unbonding window
        unbond_period=86400 * 21,
        fee_rate=Decimal("0.10"),
    ),
}

# Devnet unless overridden
CURRENT_NETWORK = NETWORKS[os.environ.get("STAKEHUB_NETWORK", "devnet")]
