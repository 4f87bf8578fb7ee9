"""
Bridge transaction tracking for aggbridge.

This module provides the tracking client for cross-chain bridge operations:
- Submission of asset, message and bridge-and-call operations
- Status polling with forward-only state transitions
- Retry with backoff, deadlines and cancellation
- Claims with proof payload preparation
"""

from .bridge_types import (
    BridgeKind,
    BridgeOperation,
    BridgeState,
    BridgeTransaction,
    ClaimOptions,
    ClaimPayload,
    ClaimTransaction,
    StateSnapshot,
    StatusRecord,
    TrackingOutcome,
    TrackingResult,
    compute_global_index,
    normalize_ref,
    parse_amount,
)
from .collaborators import (
    BridgeClient,
    ProofBuilder,
    StatusSource,
    TransactionHandle,
    classify_claim_failure,
)
from .config import (
    AggBridgeConfig,
    NetworkConfig,
    StatusApiConfig,
    StatusNetwork,
    TrackerConfig,
)
from .http import JsonHttpClient, RateLimiter
from .status_client import TransactionStatusClient
from .tracker import BridgeTransactionTracker

__all__ = [
    "BridgeKind",
    "BridgeOperation",
    "BridgeState",
    "BridgeTransaction",
    "ClaimOptions",
    "ClaimPayload",
    "ClaimTransaction",
    "StateSnapshot",
    "StatusRecord",
    "TrackingOutcome",
    "TrackingResult",
    "compute_global_index",
    "normalize_ref",
    "parse_amount",
    "BridgeClient",
    "ProofBuilder",
    "StatusSource",
    "TransactionHandle",
    "classify_claim_failure",
    "AggBridgeConfig",
    "NetworkConfig",
    "StatusApiConfig",
    "StatusNetwork",
    "TrackerConfig",
    "JsonHttpClient",
    "RateLimiter",
    "TransactionStatusClient",
    "BridgeTransactionTracker",
]
