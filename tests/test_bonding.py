import pytest
from decimal import Decimal

from stakehub.hub.core.bonding import register_received_coins
from stakehub.protocol.types.coins import Coins
from stakehub.protocol.types.common import AuthorizationError, StateError, ValidationError
from stakehub.protocol.types.effects import Event
from stakehub.protocol.types.msgs import Bond, Harvest, Reinvest, TransferFeeAccount, UpdateFee

from conftest import ALICE, BOB, FEE_ACCOUNT, HUB, OWNER, VAL_A, VAL_B, VAL_C


def test_first_bond_mints_one_to_one(hub, chain):
    result = hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))

    token = hub.state.params.steak_token
    assert chain.token_balance(token, ALICE) == 1_000_000
    assert chain.query_delegation(VAL_A, HUB, "uluna").amount == 1_000_000
    assert result.effects == ["delegate", "mint"]

def test_bond_goes_to_least_delegated_validator(hub, chain):
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    hub.execute(BOB, Bond(), Coins.parse("300000uluna"))
    hub.execute(BOB, Bond(), Coins.parse("200000uluna"))

    assert chain.query_delegation(VAL_B, HUB, "uluna").amount == 300_000
    assert chain.query_delegation(VAL_C, HUB, "uluna").amount == 200_000

def test_bond_to_receiver(hub, chain):
    hub.execute(ALICE, Bond(receiver=BOB), Coins.parse("1000uluna"))
    assert chain.token_balance(hub.state.params.steak_token, BOB) == 1000

def test_bond_after_rewards_mints_fewer_tokens(hub, chain):
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    chain.add_rewards(HUB, VAL_A, 100_000)
    hub.execute(OWNER, Harvest())

    hub.execute(BOB, Bond(), Coins.parse("1000000uluna"))
    assert chain.token_balance(hub.state.params.steak_token, BOB) < 1_000_000

@pytest.mark.parametrize("funds", [
    None,
    "1000uatom",
    "1000uluna,5uatom",
])
def test_bond_rejects_bad_funds(hub, chain, funds):
    chain.fund(ALICE, 1000, "uatom")
    with pytest.raises(ValidationError):
        hub.execute(ALICE, Bond(), Coins.parse(funds) if funds else None)
    # Rolled back: nothing was kept
    assert chain.query_balance(HUB, "uatom") == 0
    assert chain.query_balance(HUB, "uluna") == 0


# --- Harvest / reinvest ---

def test_harvest_reinvests_net_of_fee(hub, chain):
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    hub.execute(BOB, Bond(), Coins.parse("500000uluna"))
    chain.add_rewards(HUB, VAL_A, 10_000)

    result = hub.execute(OWNER, Harvest())

    # Equal targets (no mining power yet): C has the largest deficit
    assert chain.query_delegation(VAL_C, HUB, "uluna").amount == 9_500
    assert chain.query_balance(FEE_ACCOUNT, "uluna") == 500
    harvested = result.events_of("steakhub/harvested")[0]
    assert harvested.get("fees_deducted") == "500"
    assert harvested.get("denom_bonded") == "9500"
    # Rewards were registered then consumed
    assert hub.state.params.unlocked_coins.find("uluna").amount == 0

def test_harvest_pays_fee_split_contract(hub, chain):
    splitter = FEE_ACCOUNT
    chain.register_fee_split(splitter)
    hub.execute(OWNER, TransferFeeAccount(fee_account_type="FeeSplit", new_fee_account=splitter))
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    chain.add_rewards(HUB, VAL_A, 20_000)

    result = hub.execute(OWNER, Harvest())

    assert "fee_split_deposit" in result.effects
    assert chain.fee_split_deposits(splitter) == 1_000

def test_harvest_without_rewards_fails(hub, chain):
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    with pytest.raises(StateError, match="no rewards"):
        hub.execute(OWNER, Harvest())

def test_harvest_requires_owner_or_self(hub):
    with pytest.raises(AuthorizationError):
        hub.execute(ALICE, Harvest())

def test_reinvest_is_self_only(hub):
    with pytest.raises(AuthorizationError):
        hub.execute(OWNER, Reinvest())

def test_zero_fee_skips_fee_transfer(hub, chain):
    hub.execute(OWNER, UpdateFee(new_fee=Decimal("0")))
    hub.execute(ALICE, Bond(), Coins.parse("1000000uluna"))
    chain.add_rewards(HUB, VAL_A, 10_000)

    result = hub.execute(OWNER, Harvest())
    assert "bank_send" not in result.effects
    assert chain.query_balance(FEE_ACCOUNT, "uluna") == 0


# --- Received coins ---

@pytest.fixture
def state(hub):
    return hub.state.clone()

@pytest.fixture
def env(chain):
    return chain.env(HUB)

def coin_received(**attrs):
    event = Event(ty="coin_received")
    for key, value in attrs.items():
        event.add_attribute(key, value)
    return event

def test_register_received_coins_for_hub_only(state, env):
    register_received_coins(state, env, [
        coin_received(receiver=HUB, amount="100uluna,7uatom"),
        coin_received(receiver=ALICE, amount="999uluna"),
        Event(ty="transfer").add_attribute("amount", "1uluna"),
        coin_received(receiver=HUB, amount="50uluna"),
    ])
    unlocked = state.params.unlocked_coins
    assert unlocked.find("uluna").amount == 150
    assert unlocked.find("uatom").amount == 7

def test_register_received_coins_missing_receiver(state, env):
    with pytest.raises(ValidationError, match="receiver"):
        register_received_coins(state, env, [coin_received(amount="1uluna")])

def test_register_received_coins_missing_amount(state, env):
    with pytest.raises(ValidationError, match="amount"):
        register_received_coins(state, env, [coin_received(receiver=HUB)])
