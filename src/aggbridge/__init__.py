"""aggbridge: tracking client for Agglayer bridge transactions."""

from .bridge import (
    AggBridgeConfig,
    BridgeOperation,
    BridgeState,
    BridgeTransaction,
    BridgeTransactionTracker,
    ClaimOptions,
    TrackingOutcome,
    TransactionStatusClient,
)

__version__ = "0.1.0"

__all__ = [
    "AggBridgeConfig",
    "BridgeOperation",
    "BridgeState",
    "BridgeTransaction",
    "BridgeTransactionTracker",
    "ClaimOptions",
    "TrackingOutcome",
    "TransactionStatusClient",
    "__version__",
]
