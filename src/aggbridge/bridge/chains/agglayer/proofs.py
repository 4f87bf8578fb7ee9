"""
Claim payload assembly from the bridge service REST API.

For a source-chain deposit the builder looks up the deposit in
``/bridge/v1/bridges``, resolves the L1 info tree index that covers it, fetches
the Merkle proofs from ``/bridge/v1/claim-proof`` and combines the pieces
into a :class:`ClaimPayload`. The proofs themselves are computed by the
service.
"""

from typing import Any, Dict, List, Optional

import aiohttp

from ....errors import AggBridgeError, ConfigurationError, ErrorContext, ProofUnavailable
from ....logging import get_logger
from ...bridge_types import ClaimPayload, compute_global_index, normalize_ref
from ...collaborators import ProofBuilder
from ...config import NetworkConfig
from ...http import JsonHttpClient, RateLimiter

logger = get_logger(__name__)

API_PREFIX = "/bridge/v1"


class BridgeServiceProofBuilder(JsonHttpClient, ProofBuilder):
    """Builds claim payloads from the source network's bridge service."""

    def __init__(
        self,
        networks: Dict[int, NetworkConfig],
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(
            request_timeout=request_timeout, session=session, rate_limiter=rate_limiter
        )
        self.networks = networks

    def _service_url(self, network_id: int) -> str:
        network = self.networks.get(network_id)
        if network is None or not network.bridge_service_url:
            raise ConfigurationError(
                f"No bridge service URL for network {network_id}",
                config_key=f"networks.{network_id}.bridge_service_url",
            )
        return network.bridge_service_url.rstrip("/") + API_PREFIX

    def _rejection(self, url: str, status: int, body: str) -> AggBridgeError:
        if status in (400, 404):
            return ProofUnavailable(
                f"Bridge service has no data yet: HTTP {status}: {body[:200]}",
                metadata={"endpoint": url},
            )
        return super()._rejection(url, status, body)

    async def find_deposits(self, bridge_tx_hash: str, source_network: int) -> List[Dict[str, Any]]:
        """Deposits emitted by ``bridge_tx_hash``, in deposit-count order."""
        ref = normalize_ref(bridge_tx_hash)
        data = await self._get_json(
            f"{self._service_url(source_network)}/bridges",
            params={"network_id": source_network},
        )
        bridges = data.get("bridges", []) if isinstance(data, dict) else data
        matches = [
            bridge
            for bridge in bridges or []
            if isinstance(bridge, dict)
            and str(bridge.get("tx_hash") or bridge.get("bridge_tx_hash") or "").lower() == ref
        ]
        return sorted(matches, key=lambda bridge: int(bridge.get("deposit_count", 0)))

    async def l1_info_tree_index(self, source_network: int, deposit_count: int) -> int:
        data = await self._get_json(
            f"{self._service_url(source_network)}/l1-info-tree-index",
            params={"network_id": source_network, "deposit_count": deposit_count},
        )
        if isinstance(data, dict):
            data = data.get("l1_info_tree_index", data.get("index"))
        if data is None:
            raise ProofUnavailable(
                f"Deposit {deposit_count} is not yet in the L1 info tree"
            )
        return int(data)

    async def claim_proof(
        self, source_network: int, leaf_index: int, deposit_count: int
    ) -> Dict[str, Any]:
        data = await self._get_json(
            f"{self._service_url(source_network)}/claim-proof",
            params={
                "network_id": source_network,
                "leaf_index": leaf_index,
                "deposit_count": deposit_count,
            },
        )
        if not isinstance(data, dict):
            raise ProofUnavailable("Bridge service returned no claim proof")
        return data

    async def build_payload(
        self, bridge_tx_hash: str, source_network: int, bridge_index: int = 0
    ) -> ClaimPayload:
        context = ErrorContext(
            transaction_ref=normalize_ref(bridge_tx_hash),
            source_network=source_network,
            operation="build_claim_payload",
        )
        deposits = await self.find_deposits(bridge_tx_hash, source_network)
        if len(deposits) <= bridge_index:
            raise ProofUnavailable(
                f"Deposit {bridge_index} of {bridge_tx_hash} not indexed on network "
                f"{source_network}",
                context=context,
            )
        deposit = deposits[bridge_index]
        deposit_count = int(deposit["deposit_count"])

        leaf_index = await self.l1_info_tree_index(source_network, deposit_count)
        proof = await self.claim_proof(source_network, leaf_index, deposit_count)
        leaf = proof.get("l1_info_tree_leaf") or {}

        logger.debug(
            f"Built claim payload for deposit {deposit_count} of network "
            f"{source_network} (leaf {leaf_index})"
        )
        return ClaimPayload.from_dict(
            {
                "smt_proof_local_exit_root": proof.get("proof_local_exit_root"),
                "smt_proof_rollup_exit_root": proof.get("proof_rollup_exit_root"),
                "global_index": compute_global_index(deposit_count, source_network),
                "mainnet_exit_root": leaf.get("mainnet_exit_root"),
                "rollup_exit_root": leaf.get("rollup_exit_root"),
                "origin_network": deposit.get("origin_network"),
                "origin_token_address": deposit.get("origin_address"),
                "destination_network": deposit.get("destination_network"),
                "destination_address": deposit.get("destination_address"),
                "amount": deposit.get("amount"),
                "metadata": deposit.get("metadata") or "0x",
                "leaf_type": deposit.get("leaf_type", 0),
            }
        )
