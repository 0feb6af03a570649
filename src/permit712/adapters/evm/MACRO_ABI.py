"""
Macro Forwarder + FlowScheduler Macro ABI Module

ABI entries for the ``Only712MacroForwarder`` (nonce lookup, payload
encoding, execution) and the ``FlowScheduler712Macro`` (clear-signing
description and canonical action encoding).

The function signatures on-chain::

    Only712MacroForwarder.getNonce(address sender, uint192 key) returns (uint256)
    Only712MacroForwarder.encodeParams(bytes actionParams, SecurityType security) returns (bytes)
    Only712MacroForwarder.runMacro(address m, bytes params, address signer, bytes signature) returns (bool)

    FlowScheduler712Macro.encodeCreateFlowScheduleParams(bytes32 lang, CreateFlowScheduleParams p)
        returns (string description, bytes params, bytes32 structHash)
"""

from typing import Any, Dict, List


def _security_components() -> List[Dict[str, str]]:
    return [
        {"name": "domain",      "type": "string"},
        {"name": "provider",    "type": "string"},
        {"name": "validAfter",  "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce",       "type": "uint256"},
    ]


def get_forwarder_nonce_abi() -> Dict[str, Any]:
    """ABI for ``getNonce(address sender, uint192 key) returns (uint256)``."""
    return {
        "name": "getNonce",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "key",    "type": "uint192"},
        ],
        "outputs": [{"name": "nonce", "type": "uint256"}],
    }


def get_forwarder_encode_params_abi() -> Dict[str, Any]:
    """
    ABI for ``encodeParams(bytes actionParams, SecurityType security) returns (bytes)``.

    The security tuple is passed as ``(domain, provider, validAfter, validBefore, nonce)``.
    """
    return {
        "name": "encodeParams",
        "type": "function",
        "stateMutability": "pure",
        "inputs": [
            {"name": "actionParams", "type": "bytes"},
            {
                "name": "security",
                "type": "tuple",
                "components": _security_components(),
            },
        ],
        "outputs": [{"name": "", "type": "bytes"}],
    }


def get_run_macro_abi() -> Dict[str, Any]:
    """ABI for ``runMacro(address m, bytes params, address signer, bytes signature) returns (bool)``."""
    return {
        "name": "runMacro",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "m",         "type": "address"},
            {"name": "params",    "type": "bytes"},
            {"name": "signer",    "type": "address"},
            {"name": "signature", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    }


def get_encode_create_flow_schedule_params_abi() -> Dict[str, Any]:
    """
    ABI for ``encodeCreateFlowScheduleParams(bytes32 lang, CreateFlowScheduleParams cfsParams)``.

    The params tuple is ``(superToken, receiver, startDate, startMaxDelay,
    flowRate, startAmount, endDate, userData)``; the call returns
    ``(description, params, structHash)``.
    """
    return {
        "name": "encodeCreateFlowScheduleParams",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "lang", "type": "bytes32"},
            {
                "name": "cfsParams",
                "type": "tuple",
                "components": [
                    {"name": "superToken",    "type": "address"},
                    {"name": "receiver",      "type": "address"},
                    {"name": "startDate",     "type": "uint32"},
                    {"name": "startMaxDelay", "type": "uint32"},
                    {"name": "flowRate",      "type": "int96"},
                    {"name": "startAmount",   "type": "uint256"},
                    {"name": "endDate",       "type": "uint32"},
                    {"name": "userData",      "type": "bytes"},
                ],
            },
        ],
        "outputs": [
            {"name": "description", "type": "string"},
            {"name": "params",      "type": "bytes"},
            {"name": "structHash",  "type": "bytes32"},
        ],
    }
