import bech32 # type: ignore
from .hash import sha256
from typing import Tuple, Optional
from ..config.params import CURRENT_NETWORK
from ..types.common import ValidationError

def address_from_seed(seed: bytes, prefix: str = CURRENT_NETWORK.bech32_prefix_acc) -> str:
    """Creates a deterministic Bech32 address (20 bytes) from arbitrary seed bytes."""
    h20 = sha256(seed)[:20]

    # Convert to 5-bit words
    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")

    return bech32.bech32_encode(prefix, five_bit_r)

def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, data_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError("Invalid bech32 address")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)

def is_valid_address(addr: str, expected_prefix: Optional[str] = None) -> bool:
    try:
        hrp, _ = decode_address(addr)
        if expected_prefix and hrp != expected_prefix:
            return False
        return True
    except ValueError:
        return False

def addr_validate(addr: str) -> str:
    """Returns `addr` unchanged if it is a valid lowercase Bech32 address."""
    if not isinstance(addr, str) or addr != addr.lower() or not is_valid_address(addr):
        raise ValidationError(f"invalid address: {addr!r}")
    return addr
