import pytest
from decimal import Decimal

from stakehub.hub.core.driver import HubDriver
from stakehub.hub.host.chain import InMemoryChain
from stakehub.hub.storage.db import StorageDB
from stakehub.protocol.config.params import CURRENT_NETWORK
from stakehub.protocol.crypto.addresses import address_from_seed
from stakehub.protocol.types.msgs import InstantiateMsg

DENOM = "uluna"
VALOPER = CURRENT_NETWORK.bech32_prefix_val
EPOCH = 100
UNBOND = 300

HUB = address_from_seed(b"hub")
OWNER = address_from_seed(b"owner")
FEE_ACCOUNT = address_from_seed(b"fee")
ALICE = address_from_seed(b"alice")
BOB = address_from_seed(b"bob")
MINER = address_from_seed(b"miner")
VAL_A = address_from_seed(b"val-a", prefix=VALOPER)
VAL_B = address_from_seed(b"val-b", prefix=VALOPER)
VAL_C = address_from_seed(b"val-c", prefix=VALOPER)


@pytest.fixture
def chain():
    host = InMemoryChain(denom=DENOM, unbonding_time=UNBOND, block_time=1_700_000_000, block_height=100)
    for val in (VAL_A, VAL_B, VAL_C):
        host.add_validator(val)
    host.fund(ALICE, 10_000_000)
    host.fund(BOB, 10_000_000)
    return host


@pytest.fixture
def db(tmp_path):
    storage = StorageDB(str(tmp_path / "hub.db"))
    yield storage
    storage.close()


@pytest.fixture
def hub(db, chain):
    """Instantiated hub over three validators, 5% fee (10% max)."""
    driver = HubDriver(db, chain, HUB)
    driver.instantiate(InstantiateMsg(
        owner=OWNER,
        validators=[VAL_A, VAL_B, VAL_C],
        denom=DENOM,
        epoch_period=EPOCH,
        unbond_period=UNBOND,
        max_fee_amount=Decimal("0.10"),
        fee_amount=Decimal("0.05"),
        fee_account=FEE_ACCOUNT,
    ))
    return driver
