"""
Bridge transaction types and data structures for aggbridge.

This module defines the data model shared by the tracker and its
collaborators: the lifecycle state enum, submission descriptors, tracked
transaction records, claim payloads and the results handed back to callers.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from ..errors import ErrorContext, StatusApiError, ValidationError, create_validation_error

_HASH_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")
_HEX_PATTERN = re.compile(r"^0x([0-9a-fA-F]{2})*$")
_DECIMAL_PATTERN = re.compile(r"^[0-9]+$")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAINNET_NETWORK_ID = 0


class BridgeState(IntEnum):
    """Lifecycle states of a bridge transaction, ordered by progress."""

    BRIDGED = 0
    READY_TO_CLAIM = 1
    CLAIMED = 2

    @property
    def is_terminal(self) -> bool:
        return self is BridgeState.CLAIMED

    @classmethod
    def parse(cls, value: Any) -> Optional["BridgeState"]:
        """Map a status API string onto a state, or None if unrecognised."""
        if isinstance(value, BridgeState):
            return value
        if not isinstance(value, str):
            return None
        key = re.sub(r"[\s\-]+", "_", value.strip()).upper()
        return cls.__members__.get(key)


class BridgeKind(Enum):
    """Shape of the bridged payload."""

    ASSET = "asset"
    MESSAGE = "message"
    ASSET_AND_CALL = "asset_and_call"


class TrackingOutcome(Enum):
    """How an awaited tracking session ended."""

    COMPLETED = "completed"
    TIMEOUT = "timeout"
    FAILED = "failed"
    CANCELLED = "cancelled"


def normalize_ref(value: Any) -> str:
    """Canonical form of a transaction hash: lower-case, 0x-prefixed."""
    if not isinstance(value, str):
        raise create_validation_error("transaction_ref", value, "hex transaction hash")
    ref = value.strip().lower()
    if not ref.startswith("0x"):
        ref = "0x" + ref
    if not _HASH_PATTERN.match(ref):
        raise create_validation_error("transaction_ref", value, "32-byte hex hash")
    return ref


def parse_amount(value: Any) -> int:
    """Parse an amount given as an int or a decimal integer string."""
    if isinstance(value, bool):
        raise create_validation_error("amount", value, "non-negative integer")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and _DECIMAL_PATTERN.match(value.strip()):
        amount = int(value.strip())
    else:
        raise create_validation_error("amount", value, "non-negative integer")
    if amount < 0:
        raise create_validation_error("amount", value, "non-negative integer")
    return amount


def _parse_network(field_name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise create_validation_error(field_name, value, "non-negative integer network id")
    return value


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def compute_global_index(deposit_count: int, source_network: int) -> int:
    """Global index of a deposit as expected by the claim entry points.

    Mainnet deposits set the mainnet flag (bit 64); rollup deposits carry the
    rollup index (network id - 1) in bits 32..63.
    """
    if source_network == MAINNET_NETWORK_ID:
        return (1 << 64) | deposit_count
    return ((source_network - 1) << 32) | deposit_count


@dataclass
class BridgeOperation:
    """Descriptor of a bridge submission."""

    source_network: int
    destination_network: int
    amount: Any
    recipient: str
    token: str = ZERO_ADDRESS
    call_data: Optional[str] = None
    fallback_address: Optional[str] = None
    force_update_global_exit_root: bool = True
    sender: Optional[str] = None
    kind: Optional[BridgeKind] = None

    @property
    def resolved_kind(self) -> BridgeKind:
        if self.kind is not None:
            return self.kind
        if self.call_data is None:
            return BridgeKind.ASSET
        if self.fallback_address:
            return BridgeKind.ASSET_AND_CALL
        return BridgeKind.MESSAGE

    @property
    def is_native_token(self) -> bool:
        return not self.token or self.token.lower() == ZERO_ADDRESS

    def validate(self) -> "BridgeOperation":
        """Check the descriptor and normalise the amount in place."""
        _parse_network("source_network", self.source_network)
        _parse_network("destination_network", self.destination_network)
        if self.source_network == self.destination_network:
            raise ValidationError(
                f"Source and destination network are both {self.source_network}",
                field="destination_network",
                value=self.destination_network,
                expected="a network other than the source",
            )
        self.amount = parse_amount(self.amount)
        if not isinstance(self.recipient, str) or not self.recipient.strip():
            raise create_validation_error("recipient", self.recipient, "address")
        if self.call_data is not None and not (
            isinstance(self.call_data, str) and _HEX_PATTERN.match(self.call_data)
        ):
            raise create_validation_error("call_data", self.call_data, "0x-prefixed hex")

        kind = self.resolved_kind
        if kind is not BridgeKind.ASSET and self.call_data is None:
            raise create_validation_error("call_data", None, f"call data for {kind.value}")
        if kind is BridgeKind.ASSET_AND_CALL and not self.fallback_address:
            raise create_validation_error(
                "fallback_address", self.fallback_address, "fallback address"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_network": self.source_network,
            "destination_network": self.destination_network,
            "amount": str(self.amount),
            "recipient": self.recipient,
            "token": self.token,
            "call_data": self.call_data,
            "fallback_address": self.fallback_address,
            "force_update_global_exit_root": self.force_update_global_exit_root,
            "sender": self.sender,
            "kind": self.resolved_kind.value,
        }


@dataclass
class ClaimOptions:
    """Per-call claim behaviour; None falls back to the tracker config."""

    return_transaction: bool = False
    require_ready: Optional[bool] = None
    wait_for_receipt: Optional[bool] = None


@dataclass
class ClaimTransaction:
    """Destination-chain claim of a bridge transaction."""

    bridge_ref: str
    source_network: int
    destination_network: int
    kind: str = "asset"
    claim_ref: Optional[str] = None
    claimed_at: float = field(default_factory=time.time)
    receipt: Optional[Dict[str, Any]] = None
    unsigned_transaction: Optional[Dict[str, Any]] = None
    message_claim_ref: Optional[str] = None

    @property
    def is_submitted(self) -> bool:
        return self.claim_ref is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bridge_ref": self.bridge_ref,
            "claim_ref": self.claim_ref,
            "message_claim_ref": self.message_claim_ref,
            "source_network": self.source_network,
            "destination_network": self.destination_network,
            "kind": self.kind,
            "claimed_at": self.claimed_at,
            "receipt": self.receipt,
            "unsigned_transaction": self.unsigned_transaction,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimTransaction":
        return cls(
            bridge_ref=data["bridge_ref"],
            source_network=data["source_network"],
            destination_network=data["destination_network"],
            kind=data.get("kind", "asset"),
            claim_ref=data.get("claim_ref"),
            message_claim_ref=data.get("message_claim_ref"),
            claimed_at=data.get("claimed_at", time.time()),
            receipt=data.get("receipt"),
            unsigned_transaction=data.get("unsigned_transaction"),
        )


@dataclass
class BridgeTransaction:
    """A tracked cross-chain operation keyed by its source-chain hash."""

    transaction_ref: str
    source_network: int
    destination_network: int
    amount: Any
    token: Optional[str] = None
    recipient: Optional[str] = None
    kind: BridgeKind = BridgeKind.ASSET
    call_data: Optional[str] = None
    fallback_address: Optional[str] = None
    sender: Optional[str] = None
    state: BridgeState = BridgeState.BRIDGED
    created_at: float = field(default_factory=time.time)
    last_observed_at: Optional[float] = None
    poll_attempts: int = 0
    failed_attempts: int = 0
    last_error: Optional[str] = None
    deposit_count: Optional[int] = None
    claim: Optional[ClaimTransaction] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.transaction_ref = normalize_ref(self.transaction_ref)
        _parse_network("source_network", self.source_network)
        _parse_network("destination_network", self.destination_network)
        if self.source_network == self.destination_network:
            raise ValidationError(
                f"Source and destination network are both {self.source_network}",
                field="destination_network",
                value=self.destination_network,
                context=ErrorContext(transaction_ref=self.transaction_ref),
            )
        self.amount = parse_amount(self.amount)
        self.state = BridgeState(self.state)
        self.kind = BridgeKind(self.kind)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def advance_to(self, state: BridgeState) -> bool:
        """Move the record forward to ``state``.

        Returns False when ``state`` equals the current state; raises
        ValidationError on any backwards move.
        """
        new_state = BridgeState(state)
        if new_state < self.state:
            raise ValidationError(
                f"Refusing transition {self.state.name} -> {new_state.name}",
                field="state",
                value=new_state.name,
                expected=f">= {self.state.name}",
                context=self.error_context("advance"),
            )
        if new_state == self.state:
            return False
        self.state = new_state
        return True

    def error_context(self, operation: Optional[str] = None) -> ErrorContext:
        return ErrorContext(
            transaction_ref=self.transaction_ref,
            source_network=self.source_network,
            destination_network=self.destination_network,
            last_state=self.state.name,
            operation=operation,
        )

    @classmethod
    def from_operation(
        cls, transaction_ref: str, operation: BridgeOperation
    ) -> "BridgeTransaction":
        return cls(
            transaction_ref=transaction_ref,
            source_network=operation.source_network,
            destination_network=operation.destination_network,
            amount=operation.amount,
            token=operation.token,
            recipient=operation.recipient,
            kind=operation.resolved_kind,
            call_data=operation.call_data,
            fallback_address=operation.fallback_address,
            sender=operation.sender,
        )

    @classmethod
    def from_status(cls, record: "StatusRecord") -> "BridgeTransaction":
        """Build a record for a hash first seen through the status API."""
        if record.source_network is None or record.destination_network is None:
            raise StatusApiError(
                "Status row lacks network identifiers",
                context=ErrorContext(transaction_ref=record.bridge_tx_hash),
            )
        return cls(
            transaction_ref=record.bridge_tx_hash,
            source_network=record.source_network,
            destination_network=record.destination_network,
            amount=record.amount or 0,
            token=record.token,
            recipient=record.recipient,
            deposit_count=record.deposit_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_ref": self.transaction_ref,
            "source_network": self.source_network,
            "destination_network": self.destination_network,
            "amount": str(self.amount),
            "token": self.token,
            "recipient": self.recipient,
            "kind": self.kind.value,
            "call_data": self.call_data,
            "fallback_address": self.fallback_address,
            "sender": self.sender,
            "state": self.state.name,
            "created_at": self.created_at,
            "last_observed_at": self.last_observed_at,
            "poll_attempts": self.poll_attempts,
            "failed_attempts": self.failed_attempts,
            "last_error": self.last_error,
            "deposit_count": self.deposit_count,
            "claim": self.claim.to_dict() if self.claim else None,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeTransaction":
        state = data.get("state", BridgeState.BRIDGED.name)
        return cls(
            transaction_ref=data["transaction_ref"],
            source_network=data["source_network"],
            destination_network=data["destination_network"],
            amount=data["amount"],
            token=data.get("token"),
            recipient=data.get("recipient"),
            kind=BridgeKind(data.get("kind", BridgeKind.ASSET.value)),
            call_data=data.get("call_data"),
            fallback_address=data.get("fallback_address"),
            sender=data.get("sender"),
            state=BridgeState[state] if isinstance(state, str) else BridgeState(state),
            created_at=data.get("created_at", time.time()),
            last_observed_at=data.get("last_observed_at"),
            poll_attempts=data.get("poll_attempts", 0),
            failed_attempts=data.get("failed_attempts", 0),
            last_error=data.get("last_error"),
            deposit_count=data.get("deposit_count"),
            claim=(
                ClaimTransaction.from_dict(data["claim"]) if data.get("claim") else None
            ),
            metadata=data.get("metadata", {}),
        )


@dataclass
class StatusRecord:
    """One transaction row returned by the status API."""

    bridge_tx_hash: str
    status: str
    state: Optional[BridgeState] = None
    token: Optional[str] = None
    amount: Optional[int] = None
    source_network: Optional[int] = None
    destination_network: Optional[int] = None
    recipient: Optional[str] = None
    deposit_count: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    _HASH_KEYS: ClassVar[Tuple[str, ...]] = (
        "bridgeTransactionHash",
        "transactionHash",
        "bridge_tx_hash",
        "tx_hash",
    )

    @staticmethod
    def _first(item: Dict[str, Any], *keys: str) -> Any:
        for key in keys:
            if item.get(key) is not None:
                return item[key]
        return None

    @classmethod
    def from_api(cls, item: Any) -> "StatusRecord":
        if not isinstance(item, dict):
            raise StatusApiError(f"Status row is not an object: {item!r}")

        tx_hash = cls._first(item, *cls._HASH_KEYS)
        status = item.get("status")
        if tx_hash is None or status is None:
            raise StatusApiError(
                "Status row lacks transaction hash or status",
                metadata={"row": item},
            )

        try:
            ref = normalize_ref(tx_hash)
            amount = cls._first(item, "amount")
            source = cls._first(item, "sourceNetwork", "source_network", "origin_network")
            destination = cls._first(
                item, "destinationNetwork", "destination_network"
            )
            deposit_count = cls._first(item, "counter", "depositCount", "deposit_count")
            return cls(
                bridge_tx_hash=ref,
                status=str(status),
                state=BridgeState.parse(status),
                token=cls._first(item, "token", "tokenAddress", "originTokenAddress"),
                amount=parse_amount(str(amount)) if amount is not None else None,
                source_network=int(source) if source is not None else None,
                destination_network=(
                    int(destination) if destination is not None else None
                ),
                recipient=cls._first(
                    item, "receiver", "destinationAddress", "destination_address"
                ),
                deposit_count=int(deposit_count) if deposit_count is not None else None,
                raw=item,
            )
        except (ValidationError, TypeError, ValueError) as e:
            raise StatusApiError(
                f"Malformed status row: {e}", cause=e, metadata={"row": item}
            ) from e


@dataclass
class ClaimPayload:
    """Positional arguments of the destination ``claimAsset``/``claimMessage``."""

    PROOF_DEPTH: ClassVar[int] = 32

    smt_proof_local_exit_root: List[str]
    smt_proof_rollup_exit_root: List[str]
    global_index: int
    mainnet_exit_root: str
    rollup_exit_root: str
    origin_network: int
    origin_token_address: str
    destination_network: int
    destination_address: str
    amount: int
    metadata: str = "0x"
    leaf_type: int = 0

    _ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "smt_proof_local_exit_root": (
            "smtProof",
            "smtProofLocalExitRoot",
            "proof_local_exit_root",
        ),
        "smt_proof_rollup_exit_root": (
            "smtProofRollup",
            "smtProofRollupExitRoot",
            "proof_rollup_exit_root",
        ),
        "global_index": ("globalIndex",),
        "mainnet_exit_root": ("mainnetExitRoot",),
        "rollup_exit_root": ("rollupExitRoot",),
        "origin_network": ("originNetwork",),
        "origin_token_address": ("originTokenAddress", "originAddress", "origin_address"),
        "destination_network": ("destinationNetwork",),
        "destination_address": ("destinationAddress",),
        "amount": (),
        "metadata": (),
        "leaf_type": ("leafType",),
    }

    def __post_init__(self):
        for name in ("smt_proof_local_exit_root", "smt_proof_rollup_exit_root"):
            proof = getattr(self, name)
            if not isinstance(proof, (list, tuple)) or len(proof) != self.PROOF_DEPTH:
                raise create_validation_error(
                    name, proof, f"{self.PROOF_DEPTH} sibling hashes"
                )
            setattr(self, name, list(proof))
        self.amount = parse_amount(self.amount)
        if self.global_index < 0:
            raise create_validation_error("global_index", self.global_index, ">= 0")

    def as_args(self) -> Tuple[Any, ...]:
        return (
            self.smt_proof_local_exit_root,
            self.smt_proof_rollup_exit_root,
            self.global_index,
            self.mainnet_exit_root,
            self.rollup_exit_root,
            self.origin_network,
            self.origin_token_address,
            self.destination_network,
            self.destination_address,
            self.amount,
            self.metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "smt_proof_local_exit_root": self.smt_proof_local_exit_root,
            "smt_proof_rollup_exit_root": self.smt_proof_rollup_exit_root,
            "global_index": str(self.global_index),
            "mainnet_exit_root": self.mainnet_exit_root,
            "rollup_exit_root": self.rollup_exit_root,
            "origin_network": self.origin_network,
            "origin_token_address": self.origin_token_address,
            "destination_network": self.destination_network,
            "destination_address": self.destination_address,
            "amount": str(self.amount),
            "metadata": self.metadata,
            "leaf_type": self.leaf_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimPayload":
        """Build a payload from snake_case or camelCase keys."""
        values: Dict[str, Any] = {}
        for name, aliases in cls._ALIASES.items():
            for key in (name,) + aliases:
                if data.get(key) is not None:
                    values[name] = data[key]
                    break

        required = [
            name
            for name in cls._ALIASES
            if name not in ("metadata", "leaf_type") and name not in values
        ]
        if required:
            raise ValidationError(
                f"Claim payload missing fields: {', '.join(required)}",
                field=required[0],
            )

        try:
            for name in ("global_index", "origin_network", "destination_network"):
                values[name] = _to_int(values[name])
            values["amount"] = _to_int(values["amount"])
            if "leaf_type" in values:
                values["leaf_type"] = _to_int(values["leaf_type"])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Claim payload has a non-integer field: {e}") from e
        values.setdefault("metadata", "0x")
        return cls(**values)


@dataclass
class StateSnapshot:
    """One observation of a transaction's state during tracking."""

    transaction_ref: str
    state: BridgeState
    previous_state: Optional[BridgeState]
    observed_at: float
    attempt: int
    changed: bool

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_ref": self.transaction_ref,
            "state": self.state.name,
            "previous_state": self.previous_state.name if self.previous_state else None,
            "observed_at": self.observed_at,
            "attempt": self.attempt,
            "changed": self.changed,
        }


@dataclass
class TrackingResult:
    """Outcome of an awaited tracking session."""

    transaction_ref: str
    outcome: TrackingOutcome
    state: Optional[BridgeState]
    snapshots: List[StateSnapshot] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is TrackingOutcome.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_ref": self.transaction_ref,
            "outcome": self.outcome.value,
            "state": self.state.name if self.state is not None else None,
            "snapshots": [snapshot.to_dict() for snapshot in self.snapshots],
            "error": str(self.error) if self.error else None,
        }
