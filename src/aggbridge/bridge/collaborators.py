"""
Interfaces of the external collaborators the tracker drives.

The tracker never talks to a chain or an HTTP endpoint directly. Submission
and claims go through a :class:`BridgeClient`, claim proofs through a
:class:`ProofBuilder`, and lifecycle observations through a
:class:`StatusSource`. Concrete implementations live in
``aggbridge.bridge.status_client`` and ``aggbridge.bridge.chains``.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from ..errors import (
    AggBridgeError,
    AlreadyClaimed,
    ClaimReverted,
    ErrorContext,
    ProofUnavailable,
)
from .bridge_types import BridgeKind, BridgeOperation, ClaimPayload, StatusRecord

ALREADY_CLAIMED_MARKERS = ("alreadyclaimed", "already claimed")
PROOF_UNAVAILABLE_MARKERS = (
    "globalexitrootinvalid",
    "not ready",
    "not yet",
    "proof not found",
    "no proof",
    "not indexed",
)

# Failures a collaborator surfaces for a rejected or unreachable call.
COLLABORATOR_FAILURES = (
    AggBridgeError,
    RuntimeError,
    ValueError,
    OSError,
    asyncio.TimeoutError,
)


class TransactionHandle(ABC):
    """A submitted transaction whose hash and receipt can be awaited."""

    @abstractmethod
    async def transaction_hash(self) -> str:
        """Resolve the transaction hash."""

    @abstractmethod
    async def receipt(self) -> Dict[str, Any]:
        """Wait for and return the mined receipt."""


class BridgeClient(ABC):
    """Source-chain submission and destination-chain claim capability."""

    @abstractmethod
    async def bridge_asset(self, operation: BridgeOperation) -> TransactionHandle:
        pass

    @abstractmethod
    async def bridge_message(self, operation: BridgeOperation) -> TransactionHandle:
        pass

    @abstractmethod
    async def bridge_and_call(self, operation: BridgeOperation) -> TransactionHandle:
        pass

    @abstractmethod
    async def claim_asset(
        self,
        bridge_tx_hash: str,
        source_network: int,
        return_transaction: bool = False,
        bridge_index: int = 0,
    ) -> Union[TransactionHandle, Dict[str, Any]]:
        """Claim a deposit; an unsigned transaction when ``return_transaction``."""

    @abstractmethod
    async def claim_message(
        self, payload: ClaimPayload, return_transaction: bool = False
    ) -> Union[TransactionHandle, Dict[str, Any]]:
        pass

    async def submit(self, operation: BridgeOperation) -> TransactionHandle:
        """Dispatch a submission to the variant matching its payload shape."""
        kind = operation.resolved_kind
        if kind is BridgeKind.ASSET:
            return await self.bridge_asset(operation)
        if kind is BridgeKind.MESSAGE:
            return await self.bridge_message(operation)
        return await self.bridge_and_call(operation)


class ProofBuilder(ABC):
    """Assembles claim payloads for source-chain deposits."""

    @abstractmethod
    async def build_payload(
        self, bridge_tx_hash: str, source_network: int, bridge_index: int = 0
    ) -> Union[ClaimPayload, Dict[str, Any]]:
        pass


class StatusSource(ABC):
    """Source of lifecycle observations for bridge transactions."""

    @abstractmethod
    async def fetch_transactions(self, user_address: str) -> List[StatusRecord]:
        """Return every status row the service knows for ``user_address``."""

    async def find_transactions(
        self, bridge_tx_hash: str, user_address: str
    ) -> List[StatusRecord]:
        """Every row for ``bridge_tx_hash``; bridge-and-call reports one per deposit."""
        wanted = bridge_tx_hash.lower()
        return [
            record
            for record in await self.fetch_transactions(user_address)
            if record.bridge_tx_hash == wanted
        ]

    async def find_transaction(
        self, bridge_tx_hash: str, user_address: str
    ) -> Optional[StatusRecord]:
        records = await self.find_transactions(bridge_tx_hash, user_address)
        return records[0] if records else None

    async def close(self) -> None:
        pass


def classify_claim_failure(
    error: BaseException, context: Optional[ErrorContext] = None
) -> AggBridgeError:
    """Map a collaborator failure onto the claim error taxonomy.

    aggbridge errors pass through unchanged. Anything else is classified by
    its revert reason; unrecognised reasons become ClaimReverted with the raw
    reason preserved.
    """
    if isinstance(error, AggBridgeError):
        return error

    reason = str(error)
    lowered = reason.lower()
    if any(marker in lowered for marker in ALREADY_CLAIMED_MARKERS):
        return AlreadyClaimed(
            f"Deposit already claimed: {reason}", context=context, cause=error
        )
    if any(marker in lowered for marker in PROOF_UNAVAILABLE_MARKERS):
        return ProofUnavailable(
            f"Claim proof not available yet: {reason}", context=context, cause=error
        )
    return ClaimReverted(
        f"Claim rejected: {reason}", reason=reason, context=context, cause=error
    )
