from .capabilities import (
    DECODE_RANGE_ERROR_IS_SUPPORTED,
    ProbeOutcome,
    TokenCapabilityResolver,
)
from .clients import Web3ChainReader, Web3Writer, Web3Signer
from .constants import (
    DOMAIN_OVERRIDES,
    FLOW_SCHEDULER_NONCE_KEY,
    DomainOverride,
    FlowSchedulerConfig,
    amount_to_value,
    value_to_amount,
    format_token_amount,
    tokens_per_day_to_flow_rate,
    default_start_date,
    default_end_date,
    normalize_user_data,
    get_flow_scheduler_config,
)
from .flow_scheduler import (
    FlowScheduleTypedDataBuilder,
    NonceTracker,
    PreparedScheduleFlow,
    build_schedule_flow_typed_data,
    compute_nonce_key,
)
from .permits import PermitTypedDataBuilder, build_permit_typed_data
from .registry import StaticNetworkRegistry
from .schemas import (
    TokenMetadata,
    EIP712DomainFields,
    PermitParameters,
    ScheduleFlowParams,
    ScheduleFlowSecurity,
    SignatureParts,
)
from .signatures import split_signature, join_signature
from .standards import (
    EIP712Domain,
    TypedDataEnvelope,
    PermitTypedData,
    ScheduleFlowTypedData,
)

__all__ = [
    "DECODE_RANGE_ERROR_IS_SUPPORTED",
    "ProbeOutcome",
    "TokenCapabilityResolver",
    "Web3ChainReader",
    "Web3Writer",
    "Web3Signer",
    "DOMAIN_OVERRIDES",
    "FLOW_SCHEDULER_NONCE_KEY",
    "DomainOverride",
    "FlowSchedulerConfig",
    "amount_to_value",
    "value_to_amount",
    "format_token_amount",
    "tokens_per_day_to_flow_rate",
    "default_start_date",
    "default_end_date",
    "normalize_user_data",
    "get_flow_scheduler_config",
    "FlowScheduleTypedDataBuilder",
    "NonceTracker",
    "PreparedScheduleFlow",
    "build_schedule_flow_typed_data",
    "compute_nonce_key",
    "PermitTypedDataBuilder",
    "build_permit_typed_data",
    "StaticNetworkRegistry",
    "TokenMetadata",
    "EIP712DomainFields",
    "PermitParameters",
    "ScheduleFlowParams",
    "ScheduleFlowSecurity",
    "SignatureParts",
    "split_signature",
    "join_signature",
    "EIP712Domain",
    "TypedDataEnvelope",
    "PermitTypedData",
    "ScheduleFlowTypedData",
]
