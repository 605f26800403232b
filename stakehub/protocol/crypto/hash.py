import hashlib
from typing import Union

def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()

def sha256_hex(data: bytes) -> str:
    """Returns SHA256 hash of bytes as hex string."""
    return sha256(data).hex()

def sha256_concat_hex(*parts: Union[str, bytes]) -> str:
    """
    Hashes the concatenation of `parts` and returns lowercase hex.

    Strings are fed as their UTF-8 bytes, so hex digests chain into the next
    hash as text, not as the raw 32 bytes.
    """
    h = hashlib.sha256()
    for part in parts:
        h.update(part.encode("utf-8") if isinstance(part, str) else part)
    return h.hexdigest()
