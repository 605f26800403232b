from enum import Enum, IntEnum
from pydantic import BaseModel


class FeeType(str, Enum):
    WALLET = "Wallet"
    FEE_SPLIT = "FeeSplit"

    @classmethod
    def parse(cls, value: str) -> "FeeType":
        for member in cls:
            if member.value == value:
                return member
        raise ValidationError("Invalid Fee type: Wallet or FeeSplit only")


class ReplyKind(IntEnum):
    INSTANTIATE_TOKEN = 1
    REGISTER_RECEIVED_COINS = 2


class Env(BaseModel):
    """Block context an operation executes in."""
    block_height: int
    block_time: int          # Unix seconds
    contract_address: str


class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    pass

class AuthorizationError(ProtocolError):
    pass

class TimingError(ProtocolError):
    pass

class StateError(ProtocolError):
    pass

class CheckedArithmeticError(ProtocolError, ArithmeticError):
    pass

class ProofError(ProtocolError):
    pass

class HostError(ProtocolError):
    """Raised by the host chain when an effect cannot be applied."""
    pass
