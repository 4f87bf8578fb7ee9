"""
web3-backed bridge client for the unified bridge contracts.

This module provides the on-chain side of the tracker's collaborators:

- bridgeAsset, bridgeMessage and bridge-and-call submission
- claimAsset and claimMessage with proofs from a ProofBuilder
- Local signing with a single account key
- Revert decoding into the claim error taxonomy

web3 calls block, so every chain interaction runs in a worker thread.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Union

from web3 import Account, Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from ....errors import (
    AggBridgeError,
    AlreadyClaimed,
    ClaimReverted,
    ConfigurationError,
    ErrorContext,
    ProofUnavailable,
    SubmissionFailed,
    TransportError,
)
from ....logging import get_logger
from ...bridge_types import BridgeOperation, ClaimPayload
from ...collaborators import (
    BridgeClient,
    ProofBuilder,
    TransactionHandle,
    classify_claim_failure,
)
from ...config import NetworkConfig
from .abi import (
    BRIDGE_ABI,
    BRIDGE_EXTENSION_ABI,
    BRIDGE_EXTENSION_PERMIT_ABI,
    decode_error_name,
)

logger = get_logger(__name__)


def revert_reason(error: ContractLogicError) -> str:
    """Custom error name if the revert data carries a known selector."""
    return decode_error_name(getattr(error, "data", None)) or str(error)


class Web3TransactionHandle(TransactionHandle):
    """Handle of a transaction sent through web3."""

    def __init__(self, web3: Web3, tx_hash: str, receipt_timeout: float = 300.0):
        self.web3 = web3
        self.tx_hash = tx_hash
        self.receipt_timeout = receipt_timeout

    async def transaction_hash(self) -> str:
        return self.tx_hash

    async def receipt(self) -> Dict[str, Any]:
        try:
            receipt = await asyncio.to_thread(
                self.web3.eth.wait_for_transaction_receipt,
                self.tx_hash,
                timeout=self.receipt_timeout,
            )
        except TimeExhausted as e:
            raise TransportError(
                f"No receipt for {self.tx_hash} within {self.receipt_timeout}s",
                cause=e,
            ) from e
        return dict(receipt)


class AgglayerBridgeClient(BridgeClient):
    """Submits bridge operations and claims with a local signing key."""

    def __init__(
        self,
        networks: Dict[int, NetworkConfig],
        private_key: str,
        proof_builder: ProofBuilder,
        receipt_timeout: float = 300.0,
        web3_factory: Optional[Callable[[NetworkConfig], Web3]] = None,
    ):
        self.networks = networks
        self.proof_builder = proof_builder
        self.receipt_timeout = receipt_timeout
        self._private_key = private_key
        self.address = Account.from_key(private_key).address
        self._web3_factory = web3_factory or (
            lambda network: Web3(Web3.HTTPProvider(network.rpc_url))
        )
        self._web3: Dict[int, Web3] = {}
        logger.info(
            f"Initialized bridge client for {self.address} on networks "
            f"{sorted(networks)}"
        )

    def _network(self, network_id: int) -> NetworkConfig:
        network = self.networks.get(network_id)
        if network is None:
            raise ConfigurationError(
                f"No configuration for network {network_id}",
                config_key=f"networks.{network_id}",
            )
        return network

    def web3_for(self, network_id: int) -> Web3:
        if network_id not in self._web3:
            self._web3[network_id] = self._web3_factory(self._network(network_id))
        return self._web3[network_id]

    def _bridge_contract(self, network_id: int):
        network = self._network(network_id)
        return self.web3_for(network_id).eth.contract(
            address=Web3.to_checksum_address(network.bridge_address), abi=BRIDGE_ABI
        )

    def _extension_contract(self, network_id: int):
        network = self._network(network_id)
        if not network.bridge_extension_address:
            raise ConfigurationError(
                f"Network {network_id} has no bridge extension address",
                config_key=f"networks.{network_id}.bridge_extension_address",
            )
        abi = (
            BRIDGE_EXTENSION_PERMIT_ABI
            if network.bridge_and_call_with_permit
            else BRIDGE_EXTENSION_ABI
        )
        return self.web3_for(network_id).eth.contract(
            address=Web3.to_checksum_address(network.bridge_extension_address), abi=abi
        )

    def _tx_params(self, network_id: int, value: int) -> Dict[str, Any]:
        web3 = self.web3_for(network_id)
        network = self._network(network_id)
        return {
            "from": self.address,
            "value": value,
            "chainId": network.chain_id if network.chain_id is not None else web3.eth.chain_id,
        }

    def _build_sync(self, network_id: int, function, value: int = 0) -> Dict[str, Any]:
        return dict(function.build_transaction(self._tx_params(network_id, value)))

    def _send_sync(self, network_id: int, function, value: int) -> str:
        web3 = self.web3_for(network_id)
        params = self._tx_params(network_id, value)
        params["nonce"] = web3.eth.get_transaction_count(self.address, "pending")
        transaction = function.build_transaction(params)
        signed = web3.eth.account.sign_transaction(transaction, self._private_key)
        return Web3.to_hex(web3.eth.send_raw_transaction(signed.raw_transaction))

    async def _send(self, network_id: int, function, value: int = 0) -> Web3TransactionHandle:
        tx_hash = await asyncio.to_thread(self._send_sync, network_id, function, value)
        logger.debug(f"Sent transaction {tx_hash} on network {network_id}")
        return Web3TransactionHandle(self.web3_for(network_id), tx_hash, self.receipt_timeout)

    async def _submit(self, operation: BridgeOperation, function, value: int) -> TransactionHandle:
        try:
            return await self._send(operation.source_network, function, value)
        except ContractLogicError as e:
            reason = revert_reason(e)
            raise SubmissionFailed(
                f"Bridge call reverted on network {operation.source_network}: {reason}",
                reason=reason,
                context=ErrorContext(
                    source_network=operation.source_network,
                    destination_network=operation.destination_network,
                    operation="submit",
                ),
                cause=e,
            ) from e

    async def bridge_asset(self, operation: BridgeOperation) -> TransactionHandle:
        function = self._bridge_contract(operation.source_network).functions.bridgeAsset(
            operation.destination_network,
            Web3.to_checksum_address(operation.recipient),
            operation.amount,
            Web3.to_checksum_address(operation.token),
            operation.force_update_global_exit_root,
            b"",
        )
        value = operation.amount if operation.is_native_token else 0
        return await self._submit(operation, function, value)

    async def bridge_message(self, operation: BridgeOperation) -> TransactionHandle:
        function = self._bridge_contract(operation.source_network).functions.bridgeMessage(
            operation.destination_network,
            Web3.to_checksum_address(operation.recipient),
            operation.force_update_global_exit_root,
            operation.call_data,
        )
        return await self._submit(operation, function, operation.amount)

    async def bridge_and_call(self, operation: BridgeOperation) -> TransactionHandle:
        network = self._network(operation.source_network)
        head = [Web3.to_checksum_address(operation.token), operation.amount]
        if network.bridge_and_call_with_permit:
            head.append(b"")
        function = self._extension_contract(operation.source_network).functions.bridgeAndCall(
            *head,
            operation.destination_network,
            Web3.to_checksum_address(operation.recipient),
            Web3.to_checksum_address(operation.fallback_address),
            operation.call_data,
            operation.force_update_global_exit_root,
        )
        value = operation.amount if operation.is_native_token else 0
        return await self._submit(operation, function, value)

    @staticmethod
    def _claim_args(payload: ClaimPayload) -> tuple:
        args = list(payload.as_args())
        args[6] = Web3.to_checksum_address(args[6])
        args[8] = Web3.to_checksum_address(args[8])
        return tuple(args)

    def _claim_error(self, error: BaseException, context: ErrorContext) -> AggBridgeError:
        if isinstance(error, ContractLogicError):
            name = decode_error_name(getattr(error, "data", None))
            if name == "AlreadyClaimed":
                return AlreadyClaimed("Bridge reports the deposit as claimed", context=context, cause=error)
            if name == "GlobalExitRootInvalid":
                return ProofUnavailable(
                    "Global exit root not yet valid on the destination",
                    context=context,
                    cause=error,
                )
            if name:
                return ClaimReverted(
                    f"Claim reverted with {name}", reason=name, context=context, cause=error
                )
        if isinstance(error, OSError):
            return TransportError(f"RPC request failed: {error}", context=context, cause=error)
        return classify_claim_failure(error, context)

    async def _claim(
        self, method: str, payload: ClaimPayload, return_transaction: bool
    ) -> Union[TransactionHandle, Dict[str, Any]]:
        network_id = payload.destination_network
        context = ErrorContext(
            destination_network=network_id,
            source_network=payload.origin_network,
            operation=method,
        )
        function = getattr(self._bridge_contract(network_id).functions, method)(
            *self._claim_args(payload)
        )
        try:
            if return_transaction:
                return await asyncio.to_thread(self._build_sync, network_id, function)
            return await self._send(network_id, function)
        except (ContractLogicError, OSError) as e:
            raise self._claim_error(e, context) from e

    async def claim_asset(
        self,
        bridge_tx_hash: str,
        source_network: int,
        return_transaction: bool = False,
        bridge_index: int = 0,
    ) -> Union[TransactionHandle, Dict[str, Any]]:
        payload = await self.proof_builder.build_payload(
            bridge_tx_hash, source_network, bridge_index
        )
        if isinstance(payload, dict):
            payload = ClaimPayload.from_dict(payload)
        return await self._claim("claimAsset", payload, return_transaction)

    async def claim_message(
        self, payload: ClaimPayload, return_transaction: bool = False
    ) -> Union[TransactionHandle, Dict[str, Any]]:
        return await self._claim("claimMessage", payload, return_transaction)
