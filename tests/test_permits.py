"""
Permit Typed-Data Test Suite

Tests for PermitTypedDataBuilder and build_permit_typed_data:
- Payload structure, field order and determinism
- Local validation before any chain read
- Domain version resolution
- Digest agreement with eth_account signing

Usage:
    pytest tests/test_permits.py -v
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from permit712.adapters.evm.capabilities import TokenCapabilityResolver
from permit712.adapters.evm.constants import PERMIT_DEADLINE_SECONDS
from permit712.adapters.evm.permits import PermitTypedDataBuilder, build_permit_typed_data
from permit712.adapters.evm.schemas import PermitParameters
from permit712.engine.exceptions import (
    AmountPrecisionExceeded,
    ChainReadError,
    InvalidAddress,
    InvalidAmount,
    NonceUnavailable,
    PermitUnsupported,
)

from mocks import (
    MOCK_CHAIN_ID_SEPOLIA,
    MOCK_NOW,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_SPENDER_ADDRESS,
    MOCK_TOKEN_ADDRESS,
    MOCK_TOKEN_NAME,
    MOCK_USDC_SEPOLIA,
    FakeChainReader,
    fixed_clock,
    make_permit_token_reader,
)


@pytest.fixture
def reader():
    return make_permit_token_reader(nonce=4)


@pytest.fixture
def builder(reader):
    return PermitTypedDataBuilder(reader, TokenCapabilityResolver(reader, overrides={}), clock=fixed_clock)


def _params(**overrides) -> PermitParameters:
    values = dict(
        owner=MOCK_OWNER_ADDRESS,
        spender=MOCK_SPENDER_ADDRESS,
        value=1_000_000,
        deadline=MOCK_NOW + PERMIT_DEADLINE_SECONDS,
        token_address=MOCK_TOKEN_ADDRESS,
        chain_id=MOCK_CHAIN_ID_SEPOLIA,
        nonce=0,
    )
    values.update(overrides)
    return PermitParameters(**values)


class TestBuildPermitTypedData:
    """Tests for the pure envelope helper."""

    def test_structure(self):
        envelope = build_permit_typed_data(_params(), domain_name=MOCK_TOKEN_NAME, domain_version="1")
        data = envelope.to_dict()

        assert data["primaryType"] == "Permit"
        assert data["domain"] == {
            "name": MOCK_TOKEN_NAME,
            "version": "1",
            "chainId": MOCK_CHAIN_ID_SEPOLIA,
            "verifyingContract": MOCK_TOKEN_ADDRESS,
        }
        assert [f["name"] for f in data["types"]["Permit"]] == ["owner", "spender", "value", "nonce", "deadline"]
        assert data["message"]["value"] == 1_000_000

    def test_domain_chain_id_override(self):
        envelope = build_permit_typed_data(
            _params(), domain_name=MOCK_TOKEN_NAME, domain_version="2", domain_chain_id=1
        )

        assert envelope.chain_id == 1
        assert envelope.domain.version == "2"

    def test_deterministic(self):
        a = build_permit_typed_data(_params(), domain_name=MOCK_TOKEN_NAME, domain_version="1")
        b = build_permit_typed_data(_params(), domain_name=MOCK_TOKEN_NAME, domain_version="1")

        assert a.to_dict() == b.to_dict()
        assert a.digest() == b.digest()

    def test_digest_changes_with_nonce(self):
        a = build_permit_typed_data(_params(nonce=0), domain_name=MOCK_TOKEN_NAME, domain_version="1")
        b = build_permit_typed_data(_params(nonce=1), domain_name=MOCK_TOKEN_NAME, domain_version="1")

        assert a.digest() != b.digest()

    def test_digest_matches_eth_account(self):
        """Signing the digest directly gives the same signature as signing the typed data."""
        envelope = build_permit_typed_data(_params(), domain_name=MOCK_TOKEN_NAME, domain_version="1")

        by_typed_data = Account.sign_typed_data(MOCK_OWNER_PRIVATE_KEY, full_message=envelope.to_dict())
        by_digest = Account.unsafe_sign_hash(bytes.fromhex(envelope.digest()[2:]), MOCK_OWNER_PRIVATE_KEY)

        assert by_typed_data.signature == by_digest.signature

    def test_params_reject_bad_address(self):
        with pytest.raises(InvalidAddress):
            _params(spender="0xnope")

    def test_params_reject_negative_value(self):
        with pytest.raises(InvalidAmount):
            _params(value=-1)


class TestPermitTypedDataBuilder:
    """Tests for PermitTypedDataBuilder.build."""

    @pytest.mark.asyncio
    async def test_build(self, builder):
        """"1.0" at 6 decimals is exactly 1000000 smallest units."""
        envelope, params, metadata = await builder.build(
            MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1.0", MOCK_CHAIN_ID_SEPOLIA
        )

        assert params.value == 1_000_000
        assert params.nonce == 4
        assert params.deadline == MOCK_NOW + PERMIT_DEADLINE_SECONDS
        assert envelope.message.to_dict() == {
            "owner": MOCK_OWNER_ADDRESS,
            "spender": MOCK_SPENDER_ADDRESS,
            "value": 1_000_000,
            "nonce": 4,
            "deadline": MOCK_NOW + PERMIT_DEADLINE_SECONDS,
        }
        assert envelope.domain.name == MOCK_TOKEN_NAME
        assert envelope.domain.version == "1"
        assert metadata.supports_permit is True

    @pytest.mark.asyncio
    async def test_signature_recovers_owner(self, builder):
        envelope, _, _ = await builder.build(
            MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "2.5", MOCK_CHAIN_ID_SEPOLIA
        )
        signed = Account.sign_typed_data(MOCK_OWNER_PRIVATE_KEY, full_message=envelope.to_dict())

        recovered = Account.recover_message(encode_typed_data(full_message=envelope.to_dict()), signature=signed.signature)
        assert recovered == MOCK_OWNER_ADDRESS

    @pytest.mark.asyncio
    async def test_nonce_read_for_owner(self, reader, builder):
        await builder.build(MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA)

        owner_reads = [call for call in reader.calls_to("nonces") if call[3] == (MOCK_OWNER_ADDRESS,)]
        assert len(owner_reads) == 1

    @pytest.mark.asyncio
    async def test_rebuild_reads_fresh_state(self, builder):
        """Each build re-reads the nonce and takes a new deadline."""
        now = [MOCK_NOW]
        builder._clock = lambda: now[0]

        _, first, _ = await builder.build(
            MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA
        )
        now[0] += 60
        _, second, _ = await builder.build(
            MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA
        )

        assert second.deadline == first.deadline + 60

    @pytest.mark.asyncio
    async def test_permit_unsupported(self):
        """A token without nonces or DOMAIN_SEPARATOR cannot be used with permit."""
        reader = FakeChainReader()
        reader.set(MOCK_TOKEN_ADDRESS, "name", MOCK_TOKEN_NAME)
        reader.set(MOCK_TOKEN_ADDRESS, "symbol", "PLAIN")
        reader.set(MOCK_TOKEN_ADDRESS, "decimals", 18)
        builder = PermitTypedDataBuilder(reader, clock=fixed_clock)

        assert await builder.resolver.check_permit_support(MOCK_TOKEN_ADDRESS, MOCK_CHAIN_ID_SEPOLIA) is False
        with pytest.raises(PermitUnsupported):
            await builder.build(
                MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA
            )

    @pytest.mark.asyncio
    async def test_probe_transport_failure(self, reader, builder):
        reader.set(MOCK_TOKEN_ADDRESS, "nonces", ChainReadError("timeout"))
        reader.set(MOCK_TOKEN_ADDRESS, "DOMAIN_SEPARATOR", ChainReadError("timeout"))

        with pytest.raises(ChainReadError):
            await builder.build(
                MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA
            )

    @pytest.mark.asyncio
    async def test_nonce_unavailable(self, reader, builder):
        def nonces(owner):
            if owner == MOCK_OWNER_ADDRESS:
                raise ChainReadError("timeout")
            return 0

        reader.set(MOCK_TOKEN_ADDRESS, "nonces", nonces)

        with pytest.raises(NonceUnavailable):
            await builder.build(
                MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA
            )

    @pytest.mark.asyncio
    async def test_precision_exceeded(self, builder):
        with pytest.raises(AmountPrecisionExceeded):
            await builder.build(
                MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1.0000001", MOCK_CHAIN_ID_SEPOLIA
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "lots", "1e999999999"])
    async def test_invalid_amount_before_any_read(self, reader, builder, amount):
        with pytest.raises(InvalidAmount):
            await builder.build(
                MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, amount, MOCK_CHAIN_ID_SEPOLIA
            )

        assert reader.calls == []

    @pytest.mark.asyncio
    async def test_invalid_spender_before_any_read(self, reader, builder):
        with pytest.raises(InvalidAddress):
            await builder.build(MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, "0x12", "1", MOCK_CHAIN_ID_SEPOLIA)

        assert reader.calls == []

    @pytest.mark.asyncio
    async def test_usdc_version_override(self):
        reader = make_permit_token_reader(token=MOCK_USDC_SEPOLIA, name="USDC", symbol="USDC")
        builder = PermitTypedDataBuilder(reader, clock=fixed_clock)

        envelope, _, _ = await builder.build(
            MOCK_USDC_SEPOLIA, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "5", MOCK_CHAIN_ID_SEPOLIA
        )

        assert envelope.domain.version == "2"
        assert envelope.domain.verifyingContract == MOCK_USDC_SEPOLIA

    @pytest.mark.asyncio
    @pytest.mark.parametrize("has_eip712_domain", [False, True])
    async def test_metadata_matches_resolver(self, reader, builder, has_eip712_domain):
        """``used_eip5267`` reports EIP-5267 support the same way on both metadata paths."""
        if has_eip712_domain:
            reader.set(
                MOCK_TOKEN_ADDRESS,
                "eip712Domain",
                (b"\x0f", MOCK_TOKEN_NAME, "1", MOCK_CHAIN_ID_SEPOLIA, MOCK_TOKEN_ADDRESS, b"\x00" * 32, []),
            )

        _, _, built = await builder.build(
            MOCK_TOKEN_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, "1", MOCK_CHAIN_ID_SEPOLIA
        )
        resolved = await builder.resolver.resolve_metadata(MOCK_TOKEN_ADDRESS, MOCK_CHAIN_ID_SEPOLIA)

        assert built.used_eip5267 is has_eip712_domain
        assert resolved.used_eip5267 is has_eip712_domain
