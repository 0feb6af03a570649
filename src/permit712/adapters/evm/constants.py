"""
EVM Chain Configuration and Conversion Helpers

Provides unified access to EVM chain configurations, per-chain contract
addresses loaded from the environment, permit domain overrides, and the exact
integer conversions used when building signed messages.

Environment Variables:
    - PERMIT712_RPC_KEY: Optional infra key substituted into premium RPC templates
    - PERMIT712_RPC_URL_<CHAIN_ID>: Explicit RPC endpoint for one chain
    - PERMIT712_RELAYER_URL: Relayer base URL (enables relayed execution)
    - PERMIT712_FORWARDER_ADDRESS_<CHAIN_ID>: Only712MacroForwarder address
    - PERMIT712_FLOW_SCHEDULER_MACRO_ADDRESS_<CHAIN_ID>: FlowScheduler712Macro address
"""

import os
import re
from decimal import Decimal, InvalidOperation, Overflow, ROUND_FLOOR, localcontext
from typing import Dict, Optional, Tuple

import dotenv
from pydantic import BaseModel, Field
from web3 import Web3

from ...engine.exceptions import (
    AmountPrecisionExceeded,
    ConfigurationError,
    InvalidAddress,
    InvalidAmount,
    ValidationError,
)

dotenv.load_dotenv()


class EvmChainConfig(BaseModel):
    """EVM blockchain network configuration."""
    caip2: str
    chain_id: int
    name: str = Field(..., description="Human-readable network name")
    rpc_url: Optional[str] = Field(None, description="JSON-RPC endpoint URL template")
    public_rpc_url: Optional[str] = Field(None, description="Public RPC endpoint (fallback when no infra key)")
    explorer_url: Optional[str] = Field(None, description="Block explorer base URL")


class DomainOverride(BaseModel):
    """
    Non-default EIP-712 domain values for a specific token.

    Any field left as ``None`` falls through to the on-chain / EIP-5267 /
    default value.
    """
    version: Optional[str] = Field(None, description="Permit domain version")
    chain_id: Optional[int] = Field(None, description="Permit domain chainId")


class FlowSchedulerConfig(BaseModel):
    """Forwarder and macro addresses configured for one chain."""
    chain_id: int
    forwarder_address: Optional[str] = None
    macro_address: Optional[str] = None

    def is_configured(self) -> bool:
        return self.forwarder_address is not None and self.macro_address is not None

    def require(self) -> Tuple[str, str]:
        """
        Return ``(forwarder_address, macro_address)``.

        Raises:
            ConfigurationError: If either address is not configured.
        """
        if not self.is_configured():
            raise ConfigurationError(
                f"Contract addresses are not configured for chain {self.chain_id}"
            )
        return self.forwarder_address, self.macro_address


# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

MAX_UINT256: int = 2**256 - 1
MAX_UINT32: int = 2**32 - 1
MIN_INT96: int = -(2**95)
MAX_INT96: int = 2**95 - 1

#: Lifetime of a permit signature.
PERMIT_DEADLINE_SECONDS: int = 3600

SECONDS_PER_DAY: int = 86400

#: Working precision for amount scaling; also the bound on parsed digits and magnitude.
AMOUNT_PRECISION: int = 400

#: Default schedule window offsets.
DEFAULT_START_OFFSET: int = 3600
DEFAULT_END_OFFSET: int = 604800
DEFAULT_START_MAX_DELAY: int = 86400

PERMIT_DOMAIN_VERSION: str = "1"

CLEAR_SIGNING_DOMAIN_NAME: str = "ClearSigning"
CLEAR_SIGNING_DOMAIN_VERSION: str = "1"

SECURITY_DOMAIN: str = "flowscheduler.xyz"
SECURITY_PROVIDER: str = "macros.superfluid.eth"

#: ``bytes32`` language tag passed to the macro ("en", right-padded).
LANG_EN: bytes = b"en".ljust(32, b"\x00")

#: Nonce key of the FlowScheduler macro under the forwarder: the low 192 bits
#: of keccak256("FlowSchedulerMacro").
FLOW_SCHEDULER_NONCE_KEY: int = 0x7A25D671C90734836B7612571A9E09F3B5CCFDDEA5795CED

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


# Raw chain configuration data.
# Premium RPC templates carry a {RPC_KEYS} placeholder and are used when
# PERMIT712_RPC_KEY is set; the public endpoint is used otherwise.
_EVM_CHAINS_DATA: Dict = {
    "eip155:1": {
        "name": "Ethereum Mainnet",
        "rpc_url": "https://mainnet.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://ethereum-rpc.publicnode.com",
        "explorer_url": "https://etherscan.io",
    },
    "eip155:5": {
        "name": "Goerli Testnet",
        "rpc_url": None,
        "public_rpc_url": None,
        "explorer_url": "https://goerli.etherscan.io",
    },
    "eip155:10": {
        "name": "OP Mainnet",
        "rpc_url": "https://optimism-mainnet.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://mainnet.optimism.io",
        "explorer_url": "https://optimistic.etherscan.io",
    },
    "eip155:137": {
        "name": "Polygon Mainnet",
        "rpc_url": "https://polygon-mainnet.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://polygon-rpc.com",
        "explorer_url": "https://polygonscan.com",
    },
    "eip155:8453": {
        "name": "Base Mainnet",
        "rpc_url": "https://base-mainnet.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://mainnet.base.org",
        "explorer_url": "https://basescan.org",
    },
    "eip155:43113": {
        "name": "Avalanche Fuji Testnet",
        "rpc_url": None,
        "public_rpc_url": "https://api.avax-test.network/ext/bc/C/rpc",
        "explorer_url": "https://testnet.snowtrace.io",
    },
    "eip155:80001": {
        "name": "Polygon Mumbai Testnet",
        "rpc_url": None,
        "public_rpc_url": None,
        "explorer_url": "https://mumbai.polygonscan.com",
    },
    "eip155:11155111": {
        "name": "Sepolia Testnet",
        "rpc_url": "https://sepolia.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://ethereum-sepolia-rpc.publicnode.com",
        "explorer_url": "https://sepolia.etherscan.io",
    },
    "eip155:11155420": {
        "name": "OP Sepolia Testnet",
        "rpc_url": "https://optimism-sepolia.infura.io/v3/{RPC_KEYS}",
        "public_rpc_url": "https://sepolia.optimism.io",
        "explorer_url": "https://sepolia-optimism.etherscan.io",
    },
}


# Tokens whose permit domain deviates from {version: "1", chainId: <chain>}.
# Keyed by (chain_id, lowercase token address).
DOMAIN_OVERRIDES: Dict[Tuple[int, str], DomainOverride] = {
    # USD Coin (FiatTokenV2) signs permits under version "2".
    (1, "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"): DomainOverride(version="2"),
    (10, "0x0b2c639c533813f4aa9d7837caf62653d097ff85"): DomainOverride(version="2"),
    (137, "0x3c499c542cef5e3811e1192ce70d8cc03d5c3359"): DomainOverride(version="2"),
    (8453, "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"): DomainOverride(version="2"),
    (11155111, "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"): DomainOverride(version="2"),
    (11155420, "0x5fd84259d66cd46123540766be93dfe6d43130d7"): DomainOverride(version="2"),
}


def _parse_caip2_eip155_chain_id(caip2: str) -> int:
    """Parse a CAIP-2 ``eip155:<chain_id>`` identifier into an int."""
    namespace, _, reference = caip2.partition(":")
    if namespace != "eip155" or not reference.isdigit():
        raise ValueError(f"Unsupported CAIP-2 identifier: {caip2!r}")
    return int(reference)


def get_chain_config(chain_id: int) -> Optional[EvmChainConfig]:
    """
    Look up the bundled configuration of ``chain_id``.

    Returns:
        EvmChainConfig, or None when the chain is not in the bundled table.
    """
    caip2 = f"eip155:{chain_id}"
    data = _EVM_CHAINS_DATA.get(caip2)
    if data is None:
        return None
    return EvmChainConfig(caip2=caip2, chain_id=_parse_caip2_eip155_chain_id(caip2), **data)


def get_rpc_key_from_env() -> Optional[str]:
    """Load the optional infra key used for premium RPC endpoints."""
    return os.getenv("PERMIT712_RPC_KEY") or None


def get_rpc_url(chain_id: int, rpc_key: Optional[str] = None) -> Optional[str]:
    """
    Resolve the RPC endpoint for ``chain_id``.

    Resolution order:
        1. ``PERMIT712_RPC_URL_<CHAIN_ID>`` environment variable
        2. Premium template with ``rpc_key`` substituted (when a key is given)
        3. Public endpoint of the bundled table

    Returns:
        The URL, or None when no endpoint is known.
    """
    explicit = os.getenv(f"PERMIT712_RPC_URL_{chain_id}")
    if explicit:
        return explicit

    config = get_chain_config(chain_id)
    if config is None:
        return None
    if rpc_key and config.rpc_url:
        return config.rpc_url.replace("{RPC_KEYS}", rpc_key)
    return config.public_rpc_url


def get_relayer_url_from_env() -> Optional[str]:
    """Load the relayer base URL; relayed execution is disabled when unset."""
    return os.getenv("PERMIT712_RELAYER_URL") or None


def get_flow_scheduler_config(chain_id: int) -> FlowSchedulerConfig:
    """
    Load forwarder/macro addresses for ``chain_id`` from the environment.

    Values that are missing or not a 20-byte hex address are treated as not
    configured.
    """
    forwarder = os.getenv(f"PERMIT712_FORWARDER_ADDRESS_{chain_id}")
    macro = os.getenv(f"PERMIT712_FLOW_SCHEDULER_MACRO_ADDRESS_{chain_id}")
    return FlowSchedulerConfig(
        chain_id=chain_id,
        forwarder_address=Web3.to_checksum_address(forwarder) if is_valid_address(forwarder) else None,
        macro_address=Web3.to_checksum_address(macro) if is_valid_address(macro) else None,
    )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def is_valid_address(addr: Optional[str]) -> bool:
    """Format check only: 0x-prefixed, 40 hex chars. Checksum casing is not enforced."""
    return isinstance(addr, str) and _ADDRESS_RE.match(addr) is not None


def to_checksum(field: str, addr: Optional[str]) -> str:
    """
    Validate ``addr`` and return its checksum form.

    Raises:
        InvalidAddress: If ``addr`` is not a 20-byte hex address.
    """
    if not is_valid_address(addr):
        raise InvalidAddress(field, addr)
    return Web3.to_checksum_address(addr)


def _parse_decimal(value: object, what: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid {what}: {value!r}")
    try:
        # str() avoids binary-float surprises (0.1 -> 0.1000000000000000055...)
        dec = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidAmount(f"Invalid {what}: {value!r}") from e
    if not dec.is_finite():
        raise InvalidAmount(f"Invalid {what}: {value!r}")
    if dec == 0:
        return Decimal(0)
    if len(dec.as_tuple().digits) > AMOUNT_PRECISION or abs(dec.adjusted()) > AMOUNT_PRECISION:
        raise InvalidAmount(f"{what} out of range: {value!r}")
    return dec


def parse_amount(amount: str | int | Decimal) -> Decimal:
    """
    Parse a human-readable amount without scaling it.

    Used to reject bad input before the token's decimals are known.

    Raises:
        InvalidAmount: Unparsable, non-finite or not strictly positive.
    """
    dec_amount = _parse_decimal(amount, "amount")
    if dec_amount <= 0:
        raise InvalidAmount(f"amount must be greater than zero, got {amount!r}")
    return dec_amount


def amount_to_value(*, amount: str | int | Decimal, decimals: int) -> int:
    """
    Convert a human-readable token ``amount`` into its smallest-unit integer.

    The result always equals ``floor(amount * 10**decimals)`` exactly; an
    amount that would need truncation (more significant fractional digits
    than ``decimals``) is rejected instead.

    Args:
        amount: Decimal string such as ``"1.5"`` (int/Decimal also accepted).
        decimals: Token decimals (0..255).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        InvalidAmount: Unparsable, negative, or above uint256.
        AmountPrecisionExceeded: Too many fractional digits for ``decimals``.
    """
    if not isinstance(decimals, int) or isinstance(decimals, bool) or not 0 <= decimals <= 255:
        raise InvalidAmount(f"decimals must be an int in [0, 255], got {decimals!r}")

    dec_amount = _parse_decimal(amount, "amount")
    if dec_amount < 0:
        raise InvalidAmount(f"amount must be non-negative, got {amount!r}")

    with localcontext() as ctx:
        # uint256 has 78 digits; 255 decimals of scale plus headroom keeps the product exact
        ctx.prec = AMOUNT_PRECISION
        try:
            scaled = dec_amount.scaleb(decimals)
        except (Overflow, InvalidOperation) as e:
            raise InvalidAmount(f"amount {amount!r} out of range at decimals={decimals}") from e
        if scaled != scaled.to_integral_value():
            raise AmountPrecisionExceeded(amount, decimals)
        value = int(scaled)

    if value > MAX_UINT256:
        raise InvalidAmount(f"amount {amount!r} exceeds uint256 at decimals={decimals}")
    return value


def value_to_amount(*, value: int | str | Decimal, decimals: int) -> Decimal:
    """
    Convert a smallest-unit integer ``value`` into a human-readable amount.

    Returns a ``Decimal`` so that display never loses precision.

    Raises:
        InvalidAmount: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise InvalidAmount("decimals must be a non-negative int")

    dec_value = _parse_decimal(value, "value")
    if dec_value < 0:
        raise InvalidAmount("value must be non-negative")
    if dec_value != dec_value.to_integral_value():
        raise InvalidAmount("value must be an integer in smallest units")

    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        try:
            return dec_value.scaleb(-decimals)
        except (Overflow, InvalidOperation) as e:
            raise InvalidAmount(f"value {value!r} out of range at decimals={decimals}") from e


def tokens_per_day_to_flow_rate(rate: str | int | Decimal, decimals: int = 18) -> int:
    """
    Convert a tokens-per-day rate into a per-second ``int96`` flow rate.

    Computes ``floor(rate * 10**decimals) // 86400``: scale to wei first,
    floor, then integer-divide by seconds per day. ``1`` token/day at 18
    decimals yields ``11574074074074``.

    Raises:
        InvalidAmount: Unparsable or non-positive rate, a rate that rounds to
            zero wei/second, or one that overflows int96.
    """
    dec_rate = _parse_decimal(rate, "flow rate")
    if dec_rate <= 0:
        raise InvalidAmount(f"Invalid flow rate: {rate!r}")

    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        try:
            wei_per_day = int(dec_rate.scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR))
        except (Overflow, InvalidOperation) as e:
            raise InvalidAmount(f"flow rate {rate!r} out of range") from e

    flow_rate = wei_per_day // SECONDS_PER_DAY
    if flow_rate == 0:
        raise InvalidAmount(f"flow rate {rate!r} tokens/day is below 1 wei/second")
    if flow_rate > MAX_INT96:
        raise InvalidAmount(f"flow rate {rate!r} tokens/day overflows int96")
    return flow_rate


def default_start_date(now: int) -> int:
    """Default schedule start: one hour from ``now``."""
    return now + DEFAULT_START_OFFSET


def default_end_date(now: int) -> int:
    """Default schedule end: one week from ``now``."""
    return now + DEFAULT_END_OFFSET


def normalize_user_data(text: Optional[str]) -> str:
    """
    Normalize free-form ``userData`` input into a lowercase 0x-prefixed hex string.

    Empty input yields ``"0x"``.

    Raises:
        ValidationError: If the text is not an even-length hex string.
    """
    raw = (text or "").strip().lower()
    if not raw.startswith("0x"):
        raw = "0x" + raw
    body = raw[2:]
    if len(body) % 2 != 0 or any(c not in "0123456789abcdef" for c in body):
        raise ValidationError(f"userData must be hex-encoded bytes, got {text!r}")
    return raw


def format_token_amount(value: int, decimals: int, symbol: Optional[str] = None) -> str:
    """
    Human-readable token amount, e.g. ``format_token_amount(1500000, 6, "USDC") -> "1.5 USDC"``.

    Trailing zeros are dropped; the amount is never rounded.
    """
    amount = value_to_amount(value=value, decimals=decimals)
    text = format(amount.normalize(), "f") if amount else "0"
    return f"{text} {symbol}" if symbol else text
