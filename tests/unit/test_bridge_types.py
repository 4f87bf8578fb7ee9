"""
Unit tests for bridge types module.
"""

import pytest

from aggbridge.bridge.bridge_types import (
    ZERO_ADDRESS,
    BridgeKind,
    BridgeOperation,
    BridgeState,
    BridgeTransaction,
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
from aggbridge.errors import StatusApiError, ValidationError

TX_HASH = "0x" + "ab" * 32
RECIPIENT = "0x" + "bb" * 20


class TestBridgeState:
    """Test BridgeState enum."""

    def test_bridge_state_ordering(self):
        """Test that states are ordered by lifecycle progress."""
        assert BridgeState.BRIDGED < BridgeState.READY_TO_CLAIM < BridgeState.CLAIMED
        assert BridgeState.CLAIMED.is_terminal
        assert not BridgeState.READY_TO_CLAIM.is_terminal

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("BRIDGED", BridgeState.BRIDGED),
            ("ready_to_claim", BridgeState.READY_TO_CLAIM),
            ("Ready-To-Claim", BridgeState.READY_TO_CLAIM),
            (" claimed ", BridgeState.CLAIMED),
            (BridgeState.CLAIMED, BridgeState.CLAIMED),
        ],
    )
    def test_parse_known_values(self, value, expected):
        """Test parsing status strings from the API."""
        assert BridgeState.parse(value) is expected

    @pytest.mark.parametrize("value", ["PENDING", "", None, 1])
    def test_parse_unknown_values(self, value):
        """Test unrecognised statuses parse to None."""
        assert BridgeState.parse(value) is None


class TestHelpers:
    """Test module helper functions."""

    def test_normalize_ref(self):
        """Test hashes are lower-cased and prefixed."""
        assert normalize_ref("0x" + "AB" * 32) == TX_HASH
        assert normalize_ref("ab" * 32) == TX_HASH

    @pytest.mark.parametrize("value", ["0x1234", "0x" + "zz" * 32, None, 12])
    def test_normalize_ref_invalid(self, value):
        """Test malformed hashes are rejected."""
        with pytest.raises(ValidationError):
            normalize_ref(value)

    def test_parse_amount(self):
        """Test amounts are parsed without precision loss."""
        assert parse_amount("10000000000000000") == 10 ** 16
        assert parse_amount("115792089237316195423570985008687907853269984665640564039457584007913129639935") == 2 ** 256 - 1
        assert parse_amount(0) == 0

    @pytest.mark.parametrize("value", [-1, "-1", "1e18", "0x10", 1.5, True, None])
    def test_parse_amount_invalid(self, value):
        """Test negative and non-integer amounts are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parse_amount(value)
        assert exc_info.value.field == "amount"

    def test_compute_global_index(self):
        """Test global index layout for mainnet and rollup deposits."""
        assert compute_global_index(5, 0) == (1 << 64) | 5
        assert compute_global_index(5, 1) == 5
        assert compute_global_index(7, 2) == (1 << 32) | 7


class TestBridgeOperation:
    """Test BridgeOperation."""

    def test_kind_resolution(self):
        """Test the payload shape is derived from call data and fallback."""
        asset = BridgeOperation(0, 1, 1, RECIPIENT)
        message = BridgeOperation(0, 1, 0, RECIPIENT, call_data="0x")
        call = BridgeOperation(0, 1, 1, RECIPIENT, call_data="0x12", fallback_address=RECIPIENT)

        assert asset.resolved_kind == BridgeKind.ASSET
        assert asset.is_native_token
        assert message.resolved_kind == BridgeKind.MESSAGE
        assert call.resolved_kind == BridgeKind.ASSET_AND_CALL

    def test_validate_normalises_amount(self):
        """Test validation converts decimal strings in place."""
        operation = BridgeOperation(0, 1, "42", RECIPIENT).validate()
        assert operation.amount == 42
        assert operation.to_dict()["amount"] == "42"

    def test_validate_rejects_bad_call_data(self):
        """Test call data must be hex."""
        with pytest.raises(ValidationError):
            BridgeOperation(0, 1, 0, RECIPIENT, call_data="hello").validate()

    def test_validate_requires_fallback_for_call(self):
        """Test an explicit bridge-and-call needs a fallback address."""
        operation = BridgeOperation(
            0, 1, 1, RECIPIENT, call_data="0x", kind=BridgeKind.ASSET_AND_CALL
        )
        with pytest.raises(ValidationError) as exc_info:
            operation.validate()
        assert exc_info.value.field == "fallback_address"

    def test_validate_rejects_negative_network(self):
        """Test network ids must be non-negative integers."""
        with pytest.raises(ValidationError):
            BridgeOperation(-1, 1, 1, RECIPIENT).validate()


class TestBridgeTransaction:
    """Test BridgeTransaction."""

    def make_record(self, **overrides):
        fields = {
            "transaction_ref": TX_HASH,
            "source_network": 0,
            "destination_network": 1,
            "amount": 10,
        }
        fields.update(overrides)
        return BridgeTransaction(**fields)

    def test_defaults(self):
        """Test a new record starts BRIDGED with no attempts."""
        record = self.make_record()
        assert record.state == BridgeState.BRIDGED
        assert record.poll_attempts == 0
        assert record.claim is None

    def test_same_networks_rejected(self):
        """Test source and destination must differ."""
        with pytest.raises(ValidationError):
            self.make_record(destination_network=0)

    def test_advance_forward_only(self):
        """Test transitions never go backwards."""
        record = self.make_record()

        assert record.advance_to(BridgeState.READY_TO_CLAIM) is True
        assert record.advance_to(BridgeState.READY_TO_CLAIM) is False
        with pytest.raises(ValidationError):
            record.advance_to(BridgeState.BRIDGED)
        assert record.state == BridgeState.READY_TO_CLAIM

    def test_error_context(self):
        """Test error context carries the record identity."""
        record = self.make_record(state=BridgeState.READY_TO_CLAIM)
        context = record.error_context("claim")

        assert context.transaction_ref == TX_HASH
        assert context.last_state == "READY_TO_CLAIM"
        assert context.operation == "claim"

    def test_dict_restoration(self):
        """Test a serialised record restores its state and claim."""
        record = self.make_record(amount=2 ** 200)
        record.advance_to(BridgeState.CLAIMED)
        record.claim = ClaimTransaction(
            bridge_ref=TX_HASH, source_network=0, destination_network=1, claim_ref="0x" + "cd" * 32
        )

        restored = BridgeTransaction.from_dict(record.to_dict())

        assert restored.amount == 2 ** 200
        assert restored.state == BridgeState.CLAIMED
        assert restored.claim.claim_ref == "0x" + "cd" * 32
        assert restored.claim.is_submitted

    def test_from_status_requires_networks(self):
        """Test adopting a status row needs both network ids."""
        status = StatusRecord(bridge_tx_hash=TX_HASH, status="BRIDGED")
        with pytest.raises(StatusApiError):
            BridgeTransaction.from_status(status)


class TestStatusRecord:
    """Test StatusRecord parsing."""

    def test_from_api(self):
        """Test a status API row is parsed."""
        record = StatusRecord.from_api(
            {
                "transactionHash": "0x" + "AB" * 32,
                "status": "READY_TO_CLAIM",
                "amount": "10000000000000000",
                "sourceNetwork": 0,
                "destinationNetwork": "1",
                "receiver": RECIPIENT,
                "counter": 12,
            }
        )

        assert record.bridge_tx_hash == TX_HASH
        assert record.state == BridgeState.READY_TO_CLAIM
        assert record.amount == 10 ** 16
        assert record.destination_network == 1
        assert record.recipient == RECIPIENT
        assert record.deposit_count == 12

    def test_from_api_unknown_status(self):
        """Test an unknown status is kept raw with no state."""
        record = StatusRecord.from_api({"tx_hash": TX_HASH, "status": "PROCESSING"})
        assert record.state is None
        assert record.status == "PROCESSING"

    @pytest.mark.parametrize(
        "row",
        [
            "not-a-dict",
            {"status": "BRIDGED"},
            {"tx_hash": TX_HASH},
            {"tx_hash": "0x12", "status": "BRIDGED"},
            {"tx_hash": TX_HASH, "status": "BRIDGED", "amount": "-3"},
        ],
    )
    def test_from_api_malformed(self, row):
        """Test malformed rows raise StatusApiError."""
        with pytest.raises(StatusApiError):
            StatusRecord.from_api(row)


class TestClaimPayload:
    """Test ClaimPayload."""

    def proof(self):
        return ["0x" + "00" * 32] * ClaimPayload.PROOF_DEPTH

    def test_from_camel_case(self):
        """Test building from camelCase keys with hex and decimal strings."""
        payload = ClaimPayload.from_dict(
            {
                "smtProof": self.proof(),
                "smtProofRollup": self.proof(),
                "globalIndex": hex(1 << 64),
                "mainnetExitRoot": "0x" + "11" * 32,
                "rollupExitRoot": "0x" + "22" * 32,
                "originNetwork": "0",
                "originTokenAddress": ZERO_ADDRESS,
                "destinationNetwork": 1,
                "destinationAddress": RECIPIENT,
                "amount": "1000",
            }
        )

        assert payload.global_index == 1 << 64
        assert payload.amount == 1000
        assert payload.metadata == "0x"
        args = payload.as_args()
        assert len(args) == 11
        assert args[2] == 1 << 64
        assert args[8] == RECIPIENT

    def test_missing_fields(self):
        """Test missing required fields are reported."""
        with pytest.raises(ValidationError) as exc_info:
            ClaimPayload.from_dict({"smtProof": self.proof()})
        assert "smt_proof_rollup_exit_root" in exc_info.value.message

    def test_wrong_proof_depth(self):
        """Test proofs must have 32 siblings."""
        with pytest.raises(ValidationError):
            ClaimPayload(
                smt_proof_local_exit_root=self.proof()[:5],
                smt_proof_rollup_exit_root=self.proof(),
                global_index=0,
                mainnet_exit_root="0x",
                rollup_exit_root="0x",
                origin_network=0,
                origin_token_address=ZERO_ADDRESS,
                destination_network=1,
                destination_address=RECIPIENT,
                amount=0,
            )


class TestTrackingResult:
    """Test TrackingResult."""

    def test_to_dict(self):
        """Test result serialisation."""
        snapshot = StateSnapshot(
            transaction_ref=TX_HASH,
            state=BridgeState.CLAIMED,
            previous_state=BridgeState.BRIDGED,
            observed_at=1.0,
            attempt=3,
            changed=True,
        )
        result = TrackingResult(
            transaction_ref=TX_HASH,
            outcome=TrackingOutcome.COMPLETED,
            state=BridgeState.CLAIMED,
            snapshots=[snapshot],
        )

        data = result.to_dict()

        assert result.succeeded
        assert data["outcome"] == "completed"
        assert data["snapshots"][0]["previous_state"] == "BRIDGED"
        assert data["error"] is None
