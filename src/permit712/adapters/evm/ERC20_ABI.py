"""
ERC-20 + EIP-2612 + EIP-5267 Smart Contract ABI Module

Single-function ABI entries for the token calls used by the capability
resolver, the permit builder and the dispatcher. Each getter returns one
ABI function entry; wrap it in a list to build a ``web3.eth.contract``.

Usage:
    from .ERC20_ABI import get_nonces_abi, get_permit_abi

    reader.read(chain_id, token, get_nonces_abi(), [owner])
    writer.write(chain_id, token, get_permit_abi(), [owner, spender, value, deadline, v, r, s])
"""

from typing import Any, Dict


def get_name_abi() -> Dict[str, Any]:
    """ABI for ERC-20 ``name() returns (string)``."""
    return {
        "name": "name",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    }


def get_symbol_abi() -> Dict[str, Any]:
    """ABI for ERC-20 ``symbol() returns (string)``."""
    return {
        "name": "symbol",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    }


def get_decimals_abi() -> Dict[str, Any]:
    """ABI for ERC-20 ``decimals() returns (uint8)``."""
    return {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    }


def get_nonces_abi() -> Dict[str, Any]:
    """
    ABI for EIP-2612 ``nonces(owner) returns (uint256)``.

    Also used as the first permit-support probe, called with the zero address.
    """
    return {
        "name": "nonces",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    }


def get_domain_separator_abi() -> Dict[str, Any]:
    """ABI for EIP-2612 ``DOMAIN_SEPARATOR() returns (bytes32)``."""
    return {
        "name": "DOMAIN_SEPARATOR",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
    }


def get_eip712_domain_probe_abi() -> Dict[str, Any]:
    """
    ABI for EIP-5267 ``eip712Domain()`` declared without outputs.

    Used only to test whether the function exists: the return data is not
    decoded, so a successful call or a decode-range failure both mean the
    function is present.
    """
    return {
        "name": "eip712Domain",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [],
    }


def get_eip712_domain_abi() -> Dict[str, Any]:
    """
    Full ABI for EIP-5267 ``eip712Domain()``.

    Outputs: ``(bytes1 fields, string name, string version, uint256 chainId,
    address verifyingContract, bytes32 salt, uint256[] extensions)``.
    """
    return {
        "name": "eip712Domain",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "fields",            "type": "bytes1"},
            {"name": "name",              "type": "string"},
            {"name": "version",           "type": "string"},
            {"name": "chainId",           "type": "uint256"},
            {"name": "verifyingContract", "type": "address"},
            {"name": "salt",              "type": "bytes32"},
            {"name": "extensions",        "type": "uint256[]"},
        ],
    }


def get_permit_abi() -> Dict[str, Any]:
    """
    ABI for EIP-2612 ``permit``.

    Example::

        writer.write(chain_id, token, get_permit_abi(),
                     [owner, spender, value, deadline, v, r_bytes32, s_bytes32])
    """
    return {
        "name": "permit",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "owner",    "type": "address"},
            {"name": "spender",  "type": "address"},
            {"name": "value",    "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
            {"name": "v",        "type": "uint8"},
            {"name": "r",        "type": "bytes32"},
            {"name": "s",        "type": "bytes32"},
        ],
        "outputs": [],
    }


def get_transfer_from_abi() -> Dict[str, Any]:
    """ABI for ERC-20 ``transferFrom(sender, recipient, amount) returns (bool)``."""
    return {
        "name": "transferFrom",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "sender",    "type": "address"},
            {"name": "recipient", "type": "address"},
            {"name": "amount",    "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    }
