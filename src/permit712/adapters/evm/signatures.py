"""
EVM Signature Codec

Converts between the canonical signature string returned by wallets
(``0x`` + 130 hex chars, ``r || s || v``) and its components.

Exported helpers
----------------
split_signature
    Parse a 65-byte signature (``0x`` prefix optional) into ``SignatureParts``.

join_signature
    Exact inverse of ``split_signature``; always returns ``0x`` + lowercase hex.

Both are pure functions with no I/O.
"""

import re
from typing import Union

from ...engine.exceptions import MalformedSignature
from .schemas import SignatureParts

_SIGNATURE_LENGTH = 65
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def split_signature(signature: str) -> SignatureParts:
    """
    Split a signature into ``r`` (bytes 0..31), ``s`` (bytes 32..63) and ``v`` (byte 64).

    Args:
        signature: 130 hex characters, optionally prefixed with ``0x``.

    Returns:
        SignatureParts

    Raises:
        MalformedSignature: Wrong length or non-hex content.

    Example::

        parts = split_signature(sig_from_wallet)
        writer.write(chain_id, token, get_permit_abi(),
                     [owner, spender, value, deadline, parts.v, parts.r, parts.s])
    """
    if not isinstance(signature, str):
        raise MalformedSignature(f"signature must be a hex string, got {type(signature).__name__}")

    body = signature[2:] if signature[:2] in ("0x", "0X") else signature
    if len(body) != _SIGNATURE_LENGTH * 2:
        raise MalformedSignature(
            f"signature must be {_SIGNATURE_LENGTH} bytes ({_SIGNATURE_LENGTH * 2} hex chars), "
            f"got {len(body)} hex chars"
        )
    if not _HEX_RE.match(body):
        raise MalformedSignature("signature contains non-hex characters")

    raw = bytes.fromhex(body)
    return SignatureParts(r=raw[0:32], s=raw[32:64], v=raw[64])


def join_signature(r: Union[bytes, str], s: Union[bytes, str], v: int) -> str:
    """
    Recompose ``r``, ``s`` and ``v`` into the canonical signature string.

    ``r`` / ``s`` may be 32 raw bytes or 64-char hex strings (``0x`` optional).

    Raises:
        MalformedSignature: If a component has the wrong size.
    """
    r_bytes = _component_bytes("r", r)
    s_bytes = _component_bytes("s", s)
    if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= 0xFF:
        raise MalformedSignature(f"v must fit in one byte, got {v!r}")
    return "0x" + (r_bytes + s_bytes + bytes([v])).hex()


def _component_bytes(name: str, value: Union[bytes, str]) -> bytes:
    if isinstance(value, str):
        body = value[2:] if value[:2] in ("0x", "0X") else value
        if len(body) != 64 or not _HEX_RE.match(body):
            raise MalformedSignature(f"{name} must be 32 bytes of hex")
        return bytes.fromhex(body)
    if isinstance(value, (bytes, bytearray)) and len(value) == 32:
        return bytes(value)
    raise MalformedSignature(f"{name} must be 32 bytes")
