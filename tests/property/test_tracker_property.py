"""
Property-based tests for the bridge transaction tracker.

This module uses Hypothesis to drive the tracker with randomly generated
status sequences and failure patterns, checking that recorded state never
moves backwards and that the retry ceiling is honoured exactly.
"""

import asyncio
from typing import List
from unittest.mock import AsyncMock

from hypothesis import given, settings, strategies as st

from aggbridge.bridge.bridge_types import (
    BridgeOperation,
    BridgeState,
    ClaimPayload,
    StatusRecord,
    compute_global_index,
    parse_amount,
)
from aggbridge.bridge.collaborators import BridgeClient, StatusSource, TransactionHandle
from aggbridge.bridge.config import TrackerConfig
from aggbridge.bridge.tracker import BridgeTransactionTracker
from aggbridge.errors import RetryPolicy, TrackingFailed, TransportError

TX_HASH = "0x" + "ab" * 32
RECIPIENT = "0x" + "bb" * 20

status_values = st.sampled_from(
    ["BRIDGED", "READY_TO_CLAIM", "CLAIMED", "ready-to-claim", "PENDING", None]
)


class FixedHandle(TransactionHandle):
    async def transaction_hash(self):
        return TX_HASH

    async def receipt(self):
        return {"status": 1}


class SequenceStatusSource(StatusSource):
    """Reports the given statuses in order, then CLAIMED forever."""

    def __init__(self, script):
        self.script = list(script)

    async def fetch_transactions(self, user_address):
        step = self.script.pop(0) if self.script else "CLAIMED"
        if isinstance(step, BaseException):
            raise step
        if step is None:
            return []
        return [
            StatusRecord(
                bridge_tx_hash=TX_HASH,
                status=step,
                state=BridgeState.parse(step),
                source_network=0,
                destination_network=1,
            )
        ]


def make_tracker(script, max_retries=3):
    client = AsyncMock(spec=BridgeClient)
    client.submit.return_value = FixedHandle()
    config = TrackerConfig(
        poll_interval=0.001,
        tracking_timeout=10.0,
        retry_policy=RetryPolicy(
            max_retries=max_retries, base_delay=0.001, max_delay=0.001, jitter=False
        ),
    )
    return BridgeTransactionTracker(client, SequenceStatusSource(script), config=config)


async def run_tracking(tracker) -> List[BridgeState]:
    record = await tracker.submit(BridgeOperation(0, 1, 1, RECIPIENT))
    recorded = []
    async for snapshot in tracker.track(record.transaction_ref):
        recorded.append(record.state)
        assert snapshot.state == record.state
    return recorded


class TestTrackerProperties:
    """Property-based tests for tracking."""

    @given(script=st.lists(status_values, max_size=12))
    @settings(max_examples=50, deadline=None)
    def test_recorded_state_is_monotonic(self, script):
        """Test the recorded state never decreases whatever the API reports."""
        tracker = make_tracker(script)

        recorded = asyncio.run(run_tracking(tracker))

        assert recorded == sorted(recorded)
        assert recorded[-1] == BridgeState.CLAIMED
        assert tracker.list_transactions()[0].state == BridgeState.CLAIMED

    @given(
        failures=st.integers(min_value=0, max_value=6),
        ceiling=st.integers(min_value=0, max_value=6),
    )
    @settings(max_examples=40, deadline=None)
    def test_retry_ceiling(self, failures, ceiling):
        """Test N consecutive failures succeed iff the ceiling is at least N."""
        script = [TransportError("status API down")] * failures
        tracker = make_tracker(script, max_retries=ceiling)

        try:
            recorded = asyncio.run(run_tracking(tracker))
        except TrackingFailed as e:
            assert failures > ceiling
            assert e.attempts == ceiling + 1
        else:
            assert failures <= ceiling
            assert recorded == [BridgeState.CLAIMED]

    @given(script=st.lists(status_values, min_size=1, max_size=8))
    @settings(max_examples=30, deadline=None)
    def test_no_snapshot_without_state(self, script):
        """Test every snapshot carries a recognised state."""
        tracker = make_tracker(script)

        recorded = asyncio.run(run_tracking(tracker))

        assert all(isinstance(state, BridgeState) for state in recorded)


class TestValueProperties:
    """Property-based tests for amounts and claim indices."""

    @given(amount=st.integers(min_value=0, max_value=2 ** 256 - 1))
    def test_amount_parsing_is_exact(self, amount):
        """Test decimal strings parse without precision loss."""
        assert parse_amount(str(amount)) == amount
        assert parse_amount(amount) == amount

    @given(
        deposit_count=st.integers(min_value=0, max_value=2 ** 32 - 1),
        network=st.integers(min_value=0, max_value=1000),
    )
    def test_global_index_layout(self, deposit_count, network):
        """Test the global index keeps the deposit count in the low bits."""
        index = compute_global_index(deposit_count, network)

        assert index & 0xFFFFFFFF == deposit_count
        assert bool(index >> 64) == (network == 0)
        if network:
            assert (index >> 32) & 0xFFFFFFFF == network - 1

    @given(amount=st.integers(min_value=0, max_value=2 ** 256 - 1))
    def test_claim_payload_preserves_amount(self, amount):
        """Test payload dictionaries keep large amounts intact."""
        payload = ClaimPayload.from_dict(
            {
                "smtProof": ["0x" + "00" * 32] * 32,
                "smtProofRollup": ["0x" + "00" * 32] * 32,
                "globalIndex": 0,
                "mainnetExitRoot": "0x" + "11" * 32,
                "rollupExitRoot": "0x" + "22" * 32,
                "originNetwork": 0,
                "originTokenAddress": RECIPIENT,
                "destinationNetwork": 1,
                "destinationAddress": RECIPIENT,
                "amount": str(amount),
            }
        )

        assert payload.amount == amount
        assert ClaimPayload.from_dict(payload.to_dict()).amount == amount
