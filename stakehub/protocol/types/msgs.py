from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from ..config.params import CURRENT_NETWORK, DEFAULT_TOKEN_LABEL


class InstantiateMsg(BaseModel):
    """Parameters the hub is created with."""
    owner: str
    name: str = CURRENT_NETWORK.token_name
    symbol: str = CURRENT_NETWORK.token_symbol
    decimals: int = CURRENT_NETWORK.token_decimals
    epoch_period: int = CURRENT_NETWORK.epoch_period
    unbond_period: int = CURRENT_NETWORK.unbond_period
    validators: List[str]
    denom: str = CURRENT_NETWORK.denom
    max_fee_amount: Decimal = CURRENT_NETWORK.max_fee_rate
    fee_amount: Decimal = CURRENT_NETWORK.fee_rate
    fee_account: str
    fee_account_type: str = "Wallet"
    label: Optional[str] = DEFAULT_TOKEN_LABEL


# --- Execute messages ---

class Bond(BaseModel):
    kind: Literal["bond"] = "bond"
    receiver: Optional[str] = None

class Harvest(BaseModel):
    kind: Literal["harvest"] = "harvest"

class Reinvest(BaseModel):
    """Callback: only the hub may send it to itself."""
    kind: Literal["reinvest"] = "reinvest"

class QueueUnbond(BaseModel):
    """Receive-hook payload; `amount` is the receipt tokens that came with it."""
    kind: Literal["queue_unbond"] = "queue_unbond"
    receiver: str
    amount: int

class SubmitBatch(BaseModel):
    kind: Literal["submit_batch"] = "submit_batch"

class Reconcile(BaseModel):
    kind: Literal["reconcile"] = "reconcile"

class WithdrawUnbonded(BaseModel):
    kind: Literal["withdraw_unbonded"] = "withdraw_unbonded"
    receiver: Optional[str] = None

class WithdrawUnbondedAdmin(BaseModel):
    kind: Literal["withdraw_unbonded_admin"] = "withdraw_unbonded_admin"
    user: str
    receiver: Optional[str] = None

class Rebalance(BaseModel):
    kind: Literal["rebalance"] = "rebalance"
    minimum: int = CURRENT_NETWORK.min_rebalance_move

class AddValidator(BaseModel):
    kind: Literal["add_validator"] = "add_validator"
    validator: str

class RemoveValidator(BaseModel):
    kind: Literal["remove_validator"] = "remove_validator"
    validator: str

class RemoveValidatorEx(BaseModel):
    kind: Literal["remove_validator_ex"] = "remove_validator_ex"
    validator: str

class PauseValidator(BaseModel):
    kind: Literal["pause_validator"] = "pause_validator"
    validator: str

class UnpauseValidator(BaseModel):
    kind: Literal["unpause_validator"] = "unpause_validator"
    validator: str

class SetUnbondPeriod(BaseModel):
    kind: Literal["set_unbond_period"] = "set_unbond_period"
    unbond_period: int

class TransferOwnership(BaseModel):
    kind: Literal["transfer_ownership"] = "transfer_ownership"
    new_owner: str

class AcceptOwnership(BaseModel):
    kind: Literal["accept_ownership"] = "accept_ownership"

class TransferFeeAccount(BaseModel):
    kind: Literal["transfer_fee_account"] = "transfer_fee_account"
    fee_account_type: str
    new_fee_account: str

class ChangeDenom(BaseModel):
    kind: Literal["change_denom"] = "change_denom"
    new_denom: str

class UpdateFee(BaseModel):
    kind: Literal["update_fee"] = "update_fee"
    new_fee: Decimal

class UpdateEntropy(BaseModel):
    kind: Literal["update_entropy"] = "update_entropy"
    entropy: str

class SubmitProof(BaseModel):
    kind: Literal["submit_proof"] = "submit_proof"
    nonce: int = Field(ge=0, le=2**64 - 1)
    validator: str


ExecuteMsg = Annotated[
    Union[
        Bond, Harvest, Reinvest, QueueUnbond, SubmitBatch, Reconcile,
        WithdrawUnbonded, WithdrawUnbondedAdmin, Rebalance,
        AddValidator, RemoveValidator, RemoveValidatorEx,
        PauseValidator, UnpauseValidator, SetUnbondPeriod,
        TransferOwnership, AcceptOwnership, TransferFeeAccount,
        ChangeDenom, UpdateFee, UpdateEntropy, SubmitProof,
    ],
    Field(discriminator="kind"),
]
