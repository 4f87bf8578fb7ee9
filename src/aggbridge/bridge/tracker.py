"""
Bridge transaction tracker.

This module provides the tracker that drives a bridge operation from
submission to finality:

- Submission through a :class:`BridgeClient` with validation up front
- Polling of a :class:`StatusSource` with forward-only state transitions
- Exponential backoff on transient status query failures
- Overall tracking deadlines and cooperative cancellation
- Claims with revert classification and claim payload preparation
"""

import asyncio
import inspect
import threading
import time
from dataclasses import replace
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Union,
)

from ..errors import (
    AggBridgeError,
    AlreadyClaimed,
    ClaimReverted,
    ConfigurationError,
    ErrorContext,
    ProofUnavailable,
    RetryPolicy,
    SubmissionFailed,
    TrackingFailed,
    TrackingTimeout,
    TransactionNotFound,
    TransportError,
    ValidationError,
)
from ..logging import LogContext, get_logger
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
    normalize_ref,
)
from .collaborators import (
    BridgeClient,
    ProofBuilder,
    StatusSource,
    TransactionHandle,
    COLLABORATOR_FAILURES,
    classify_claim_failure,
)
from .config import TrackerConfig

logger = get_logger(__name__)

SnapshotCallback = Callable[[StateSnapshot], Union[None, Awaitable[None]]]


def _receipt_failed(receipt: Any) -> bool:
    status = receipt.get("status") if isinstance(receipt, dict) else None
    return status is not None and int(status) == 0


class BridgeTransactionTracker:
    """Submits, tracks and claims bridge transactions."""

    def __init__(
        self,
        client: BridgeClient,
        status_source: StatusSource,
        proof_builder: Optional[ProofBuilder] = None,
        config: Optional[TrackerConfig] = None,
    ):
        self.client = client
        self.status_source = status_source
        self.proof_builder = proof_builder
        self.config = config or TrackerConfig()
        self.config.validate()

        self._transactions: Dict[str, BridgeTransaction] = {}
        self._user_addresses: Dict[str, str] = {}
        self._cancel_events: Dict[str, List[asyncio.Event]] = {}
        self._claims_in_flight: Set[str] = set()
        self._lock = threading.RLock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        """Stop every tracking session and release the status source."""
        with self._lock:
            refs = list(self._cancel_events)
        for ref in refs:
            self.cancel(ref)
        await self.status_source.close()

    # Registry

    def get_transaction(self, transaction_ref: str) -> Optional[BridgeTransaction]:
        with self._lock:
            return self._transactions.get(normalize_ref(transaction_ref))

    def list_transactions(
        self, state: Optional[BridgeState] = None
    ) -> List[BridgeTransaction]:
        with self._lock:
            records = list(self._transactions.values())
        if state is not None:
            records = [record for record in records if record.state == state]
        return records

    def register(
        self, record: BridgeTransaction, user_address: Optional[str] = None
    ) -> BridgeTransaction:
        """Adopt a record restored by the caller, e.g. from ``to_dict`` output."""
        with self._lock:
            existing = self._transactions.get(record.transaction_ref)
            if existing is not None and existing is not record:
                raise ValidationError(
                    f"Transaction {record.transaction_ref} is already tracked",
                    field="transaction_ref",
                    value=record.transaction_ref,
                    context=existing.error_context("register"),
                )
            self._transactions[record.transaction_ref] = record
            if user_address:
                self._user_addresses[record.transaction_ref] = user_address
        return record

    def _require(self, ref: str, operation: str) -> BridgeTransaction:
        with self._lock:
            record = self._transactions.get(ref)
        if record is None:
            raise TransactionNotFound(
                f"Unknown transaction {ref}",
                context=ErrorContext(transaction_ref=ref, operation=operation),
            )
        return record

    @staticmethod
    def _log_context(
        ref: str, record: Optional[BridgeTransaction], operation: str
    ) -> LogContext:
        return LogContext(
            component="tracker",
            operation=operation,
            transaction_ref=ref,
            source_network=record.source_network if record else None,
            destination_network=record.destination_network if record else None,
        )

    # Submission

    async def submit(
        self,
        operation: BridgeOperation,
        wait_for_receipt: Optional[bool] = None,
        user_address: Optional[str] = None,
    ) -> BridgeTransaction:
        """Submit a bridge operation and start recording it in BRIDGED.

        Raises ValidationError before any external call for bad input and
        SubmissionFailed when the source chain rejects the operation. No
        record exists after a failure. Polling starts only with ``track``.
        """
        operation.validate()
        wait = self.config.wait_for_receipts if wait_for_receipt is None else wait_for_receipt
        context = ErrorContext(
            source_network=operation.source_network,
            destination_network=operation.destination_network,
            operation="submit",
        )

        try:
            handle = await self.client.submit(operation)
            tx_hash = await handle.transaction_hash()
            context.transaction_ref = tx_hash
            receipt = await handle.receipt() if wait else None
        except SubmissionFailed:
            raise
        except COLLABORATOR_FAILURES as e:
            logger.error(
                f"Bridge submission to network {operation.destination_network} failed: {e}"
            )
            raise SubmissionFailed(
                f"Bridge submission failed: {e}",
                reason=str(e),
                context=context,
                cause=e,
            ) from e

        if receipt is not None and _receipt_failed(receipt):
            raise SubmissionFailed(
                f"Bridge transaction {tx_hash} reverted on network {operation.source_network}",
                reason="receipt status 0",
                context=context,
                metadata={"receipt": receipt},
            )

        try:
            record = BridgeTransaction.from_operation(tx_hash, operation)
        except ValidationError as e:
            raise SubmissionFailed(
                f"Bridge client returned an invalid transaction hash: {tx_hash!r}",
                context=context,
                cause=e,
            ) from e

        with self._lock:
            existing = self._transactions.get(record.transaction_ref)
            if existing is not None:
                logger.warning(
                    "Submission returned an already tracked hash",
                    context=self._log_context(existing.transaction_ref, existing, "submit"),
                )
                return existing
            self._transactions[record.transaction_ref] = record
            address = user_address or operation.sender
            if address:
                self._user_addresses[record.transaction_ref] = address

        logger.info(
            f"Submitted {record.kind.value} bridge of {record.amount} from network "
            f"{record.source_network} to {record.destination_network}",
            context=self._log_context(record.transaction_ref, record, "submit"),
        )
        return record

    # Tracking

    def _resolve_user_address(self, ref: str, user_address: Optional[str]) -> str:
        with self._lock:
            if user_address:
                self._user_addresses[ref] = user_address
                return user_address
            address = self._user_addresses.get(ref)
            record = self._transactions.get(ref)
        if address:
            return address
        if record is not None and (record.sender or record.recipient):
            return record.sender or record.recipient
        raise ValidationError(
            f"No user address known for {ref}; pass user_address to track it",
            field="user_address",
            context=ErrorContext(transaction_ref=ref, operation="track"),
        )

    def _begin_tracking(self, ref: str) -> asyncio.Event:
        event = asyncio.Event()
        with self._lock:
            self._cancel_events.setdefault(ref, []).append(event)
        return event

    def _end_tracking(self, ref: str, event: asyncio.Event) -> None:
        with self._lock:
            events = self._cancel_events.get(ref, [])
            if event in events:
                events.remove(event)
            if not events:
                self._cancel_events.pop(ref, None)

    def cancel(self, transaction_ref: str) -> bool:
        """Stop every active tracking session for the reference.

        Must be called from the event loop running the sessions. Returns
        False when nothing was tracking the reference.
        """
        ref = normalize_ref(transaction_ref)
        with self._lock:
            events = list(self._cancel_events.get(ref, []))
        for event in events:
            event.set()
        if events:
            logger.info(
                f"Cancelled {len(events)} tracking session(s)",
                context=LogContext(component="tracker", operation="cancel", transaction_ref=ref),
            )
        return bool(events)

    async def _pause(
        self, cancel_event: asyncio.Event, delay: float, deadline: float
    ) -> bool:
        """Sleep for ``delay`` bounded by ``deadline``; False if cancelled."""
        if cancel_event.is_set():
            return False
        remaining = deadline - asyncio.get_running_loop().time()
        delay = max(0.0, min(delay, remaining))
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    def _note_attempt(self, ref: str, error: Optional[BaseException] = None) -> None:
        with self._lock:
            record = self._transactions.get(ref)
            if record is None:
                return
            record.poll_attempts += 1
            if error is not None:
                record.failed_attempts += 1
                record.last_error = str(error)

    def _apply_observation(
        self, ref: str, status: StatusRecord, attempt: int
    ) -> Optional[StateSnapshot]:
        with self._lock:
            record = self._transactions.get(ref)
            if status.state is None:
                logger.warning(
                    f"Ignoring unrecognised status {status.status!r}",
                    context=self._log_context(ref, record, "track"),
                )
                return None

            if record is None:
                record = BridgeTransaction.from_status(status)
                record.poll_attempts = attempt
                self._transactions[ref] = record
                previous = None
            else:
                previous = record.state

            if status.state < record.state:
                logger.warning(
                    f"Discarding regressive status {status.state.name} "
                    f"(recorded {record.state.name})",
                    context=self._log_context(ref, record, "track"),
                )
                return None

            changed = record.advance_to(status.state) or previous is None
            record.last_observed_at = time.time()
            if record.deposit_count is None and status.deposit_count is not None:
                record.deposit_count = status.deposit_count

            snapshot = StateSnapshot(
                transaction_ref=ref,
                state=record.state,
                previous_state=previous,
                observed_at=record.last_observed_at,
                attempt=attempt,
                changed=changed,
            )

        if changed:
            logger.info(
                f"State {previous.name if previous else 'UNKNOWN'} -> {snapshot.state.name}",
                context=self._log_context(ref, record, "track"),
            )
        return snapshot

    def _error_context(self, ref: str, operation: str) -> ErrorContext:
        with self._lock:
            record = self._transactions.get(ref)
        if record is not None:
            return record.error_context(operation)
        return ErrorContext(transaction_ref=ref, operation=operation)

    @staticmethod
    def _merge_legs(rows: List[StatusRecord]) -> Optional[StatusRecord]:
        """Fold the rows reported for one hash into a single observation.

        Bridge-and-call deposits the asset and the message separately, and
        the transaction is only as far along as its slowest leg. Row order
        is not significant.
        """
        if len(rows) <= 1:
            return rows[0] if rows else None
        for row in rows:
            if row.state is None:
                return row
        slowest = min(rows, key=lambda row: row.state)
        counts = [row.deposit_count for row in rows if row.deposit_count is not None]
        return replace(slowest, deposit_count=min(counts) if counts else None)

    async def _query_status(self, ref: str, address: str) -> Optional[StatusRecord]:
        try:
            rows = await self.status_source.find_transactions(ref, address)
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Status query failed: {e}",
                context=self._error_context(ref, "track"),
                cause=e,
            ) from e
        return self._merge_legs(rows)

    async def track(
        self,
        transaction_ref: str,
        user_address: Optional[str] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> AsyncIterator[StateSnapshot]:
        """Poll the status source until the transaction is CLAIMED.

        Yields a snapshot for every successful observation of the reference,
        repeats included. Regressive and unrecognised statuses are discarded.
        Transient query failures are retried with exponential backoff; the
        sequence ends with TrackingFailed when consecutive failures exceed
        the retry ceiling and with TrackingTimeout once the deadline passes.
        A ``cancel`` ends the sequence without an error.
        """
        ref = normalize_ref(transaction_ref)
        interval = self.config.poll_interval if poll_interval is None else poll_interval
        timeout = self.config.tracking_timeout if timeout is None else timeout
        policy = retry_policy or self.config.retry_policy

        with self._lock:
            record = self._transactions.get(ref)
        if record is not None and record.is_terminal:
            yield StateSnapshot(
                transaction_ref=ref,
                state=record.state,
                previous_state=record.state,
                observed_at=record.last_observed_at or time.time(),
                attempt=0,
                changed=False,
            )
            return

        address = self._resolve_user_address(ref, user_address)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        cancel_event = self._begin_tracking(ref)
        attempt = 0
        failures = 0
        last_error: Optional[BaseException] = None

        logger.debug(
            f"Tracking every {interval}s for up to {timeout}s",
            context=self._log_context(ref, record, "track"),
        )
        try:
            while True:
                if cancel_event.is_set():
                    return
                if loop.time() >= deadline:
                    logger.warning(
                        f"Tracking timed out after {timeout}s",
                        context=self._log_context(ref, self.get_transaction(ref), "track"),
                    )
                    raise TrackingTimeout(
                        f"Transaction {ref} did not reach CLAIMED within {timeout}s",
                        timeout_duration=timeout,
                        context=self._error_context(ref, "track"),
                        cause=last_error,
                    )

                attempt += 1
                try:
                    status = await self._query_status(ref, address)
                except AggBridgeError as e:
                    self._note_attempt(ref, e)
                    if not policy.is_retryable(e):
                        raise
                    failures += 1
                    last_error = e
                    if not policy.should_retry(failures, e):
                        logger.error(
                            f"Giving up after {failures} consecutive status failures",
                            context=self._log_context(ref, self.get_transaction(ref), "track"),
                        )
                        raise TrackingFailed(
                            f"Status queries for {ref} failed {failures} times in a row",
                            attempts=failures,
                            last_error=str(e),
                            context=self._error_context(ref, "track"),
                            cause=e,
                        ) from e
                    delay = policy.get_delay(failures)
                    logger.warning(
                        f"Status query failed ({failures}/{policy.max_retries}), "
                        f"retrying in {delay:.2f}s: {e.message}",
                        context=self._log_context(ref, self.get_transaction(ref), "track"),
                    )
                    if not await self._pause(cancel_event, delay, deadline):
                        return
                    continue

                failures = 0
                self._note_attempt(ref)
                snapshot = (
                    self._apply_observation(ref, status, attempt)
                    if status is not None
                    else None
                )
                if snapshot is not None:
                    yield snapshot
                    if snapshot.is_terminal:
                        return

                if not await self._pause(cancel_event, interval, deadline):
                    return
        finally:
            self._end_tracking(ref, cancel_event)

    async def wait_for(
        self,
        transaction_ref: str,
        target: BridgeState = BridgeState.CLAIMED,
        on_snapshot: Optional[SnapshotCallback] = None,
        **track_kwargs: Any,
    ) -> TrackingResult:
        """Track until the recorded state reaches ``target``.

        Timeouts, exhausted retries and cancellation are reported through the
        result's outcome; any other error propagates.
        """
        ref = normalize_ref(transaction_ref)
        snapshots: List[StateSnapshot] = []
        iterator = self.track(ref, **track_kwargs)
        outcome = TrackingOutcome.CANCELLED
        error: Optional[Exception] = None
        try:
            async for snapshot in iterator:
                snapshots.append(snapshot)
                if on_snapshot is not None:
                    result = on_snapshot(snapshot)
                    if inspect.isawaitable(result):
                        await result
                if snapshot.state >= target:
                    outcome = TrackingOutcome.COMPLETED
                    break
        except TrackingTimeout as e:
            outcome, error = TrackingOutcome.TIMEOUT, e
        except TrackingFailed as e:
            outcome, error = TrackingOutcome.FAILED, e
        finally:
            await iterator.aclose()

        record = self.get_transaction(ref)
        return TrackingResult(
            transaction_ref=ref,
            outcome=outcome,
            state=record.state if record else None,
            snapshots=snapshots,
            error=error,
        )

    def subscribe(
        self,
        transaction_ref: str,
        callback: SnapshotCallback,
        **wait_kwargs: Any,
    ) -> "asyncio.Task[TrackingResult]":
        """Track in the background, invoking ``callback`` for every snapshot."""
        return asyncio.get_running_loop().create_task(
            self.wait_for(transaction_ref, on_snapshot=callback, **wait_kwargs)
        )

    # Claims

    async def build_claim_payload(
        self, transaction_ref: str, source_network: int, bridge_index: int = 0
    ) -> ClaimPayload:
        """Prepare the claim arguments for a deposit through the proof builder."""
        if self.proof_builder is None:
            raise ConfigurationError(
                "No proof builder configured", config_key="proof_builder"
            )
        ref = normalize_ref(transaction_ref)
        context = self._error_context(ref, "build_claim_payload")
        if context.source_network is None:
            context.source_network = source_network

        try:
            payload = await self.proof_builder.build_payload(ref, source_network, bridge_index)
        except COLLABORATOR_FAILURES as e:
            error = classify_claim_failure(e, context)
            if error is e:
                raise
            raise error from e

        if isinstance(payload, dict):
            payload = ClaimPayload.from_dict(payload)
        return payload

    async def _claim_leg(
        self,
        leg: str,
        record: BridgeTransaction,
        source_network: int,
        bridge_index: int,
        return_transaction: bool,
    ) -> Union[TransactionHandle, Dict[str, Any]]:
        if leg == "asset":
            return await self.client.claim_asset(
                record.transaction_ref,
                source_network,
                return_transaction=return_transaction,
                bridge_index=bridge_index,
            )
        payload = await self.build_claim_payload(
            record.transaction_ref, source_network, bridge_index
        )
        return await self.client.claim_message(
            payload, return_transaction=return_transaction
        )

    async def _settle(
        self, result: Union[TransactionHandle, Dict[str, Any]], wait: bool, context: ErrorContext
    ) -> Dict[str, Any]:
        """Resolve a claim handle to its hash and, when asked, its receipt."""
        if isinstance(result, dict):
            return {"unsigned_transaction": result}
        claim_hash = await result.transaction_hash()
        receipt = await result.receipt() if wait else None
        if receipt is not None and _receipt_failed(receipt):
            raise ClaimReverted(
                f"Claim transaction {claim_hash} reverted",
                reason="receipt status 0",
                context=context,
                metadata={"receipt": receipt},
            )
        return {"claim_ref": claim_hash, "receipt": receipt}

    async def claim(
        self,
        transaction_ref: str,
        source_network: Optional[int] = None,
        options: Optional[ClaimOptions] = None,
    ) -> ClaimTransaction:
        """Claim a tracked bridge transaction on its destination chain.

        Asset-and-call transactions claim the asset deposit first and then
        the message deposit that triggers the call. With
        ``options.return_transaction`` the unsigned claim is returned and the
        record is left untouched.
        """
        options = options or ClaimOptions()
        ref = normalize_ref(transaction_ref)
        record = self._require(ref, "claim")
        source = record.source_network if source_network is None else source_network
        context = record.error_context("claim")

        if record.state is BridgeState.CLAIMED:
            raise AlreadyClaimed(f"Transaction {ref} is already claimed", context=context)

        require_ready = (
            self.config.require_ready_for_claim
            if options.require_ready is None
            else options.require_ready
        )
        if require_ready and record.state is BridgeState.BRIDGED:
            raise ProofUnavailable(
                f"Transaction {ref} is not ready to claim yet", context=context
            )
        wait = (
            self.config.wait_for_receipts
            if options.wait_for_receipt is None
            else options.wait_for_receipt
        )
        if options.return_transaction:
            return await self._perform_claim(record, source, options, wait, context)

        with self._lock:
            if ref in self._claims_in_flight or record.claim is not None:
                raise AlreadyClaimed(
                    f"A claim for {ref} is already in flight", context=context
                )
            self._claims_in_flight.add(ref)
        try:
            return await self._perform_claim(record, source, options, wait, context)
        finally:
            with self._lock:
                self._claims_in_flight.discard(ref)

    async def _perform_claim(
        self,
        record: BridgeTransaction,
        source: int,
        options: ClaimOptions,
        wait: bool,
        context: ErrorContext,
    ) -> ClaimTransaction:
        ref = record.transaction_ref
        log_context = self._log_context(ref, record, "claim")

        try:
            if record.kind is BridgeKind.ASSET_AND_CALL:
                try:
                    asset_result = await self._claim_leg(
                        "asset", record, source, 0, options.return_transaction
                    )
                    asset = await self._settle(
                        asset_result, wait or not options.return_transaction, context
                    )
                except COLLABORATOR_FAILURES as e:
                    if not isinstance(classify_claim_failure(e, context), AlreadyClaimed):
                        raise
                    logger.info("Asset leg already claimed", context=log_context)
                    asset = {}
                message_result = await self._claim_leg(
                    "message", record, source, 1, options.return_transaction
                )
                message = await self._settle(message_result, wait, context)
                settled = {
                    "claim_ref": asset.get("claim_ref") or message.get("claim_ref"),
                    "message_claim_ref": message.get("claim_ref"),
                    "receipt": message.get("receipt"),
                }
                if options.return_transaction:
                    settled["unsigned_transaction"] = {
                        "asset": asset.get("unsigned_transaction"),
                        "message": message.get("unsigned_transaction"),
                    }
            else:
                leg = "asset" if record.kind is BridgeKind.ASSET else "message"
                settled = await self._settle(
                    await self._claim_leg(leg, record, source, 0, options.return_transaction),
                    wait,
                    context,
                )
        except COLLABORATOR_FAILURES as e:
            error = classify_claim_failure(e, context)
            logger.warning(f"Claim failed: {error.message}", context=log_context)
            if error is e:
                raise
            raise error from e

        claim = ClaimTransaction(
            bridge_ref=ref,
            source_network=source,
            destination_network=record.destination_network,
            kind=record.kind.value,
            claim_ref=None if options.return_transaction else settled.get("claim_ref"),
            message_claim_ref=settled.get("message_claim_ref"),
            receipt=settled.get("receipt"),
            unsigned_transaction=settled.get("unsigned_transaction"),
        )
        if options.return_transaction:
            return claim

        with self._lock:
            record.advance_to(BridgeState.CLAIMED)
            record.claim = claim
        logger.info(
            f"Claimed on network {record.destination_network} in {claim.claim_ref}",
            context=log_context,
        )
        return claim
