"""
Signing primitives shared by the gateway adapters.

Pure functions over text/bytes returning lowercase hex digests.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional, Union

Data = Union[str, bytes]


def _to_bytes(value: Data) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def hmac_sha256(data: Data, key: Data) -> str:
    return hmac.new(_to_bytes(key), _to_bytes(data), hashlib.sha256).hexdigest()


def sha512(data: Data) -> str:
    return hashlib.sha512(_to_bytes(data)).hexdigest()


def sha256(data: Data) -> str:
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def md5(data: Data) -> str:
    return hashlib.md5(_to_bytes(data)).hexdigest()


def signatures_match(expected: str, received: Optional[Data]) -> bool:
    """Byte-exact, constant-time comparison; a missing signature never matches."""
    if not received:
        return False
    return hmac.compare_digest(_to_bytes(expected), _to_bytes(received))


def join_pairs(pairs: list[tuple[str, object]], sep: str = "&") -> str:
    """`k1=v1&k2=v2` in the given order; None renders as an empty value."""
    return sep.join(f"{k}={'' if v is None else v}" for k, v in pairs)
