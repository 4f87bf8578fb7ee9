"""Agglayer unified bridge collaborators: web3 bridge client and proof builder."""

from .abi import BRIDGE_ABI, BRIDGE_EXTENSION_ABI, BRIDGE_EXTENSION_PERMIT_ABI, decode_error_name
from .client import AgglayerBridgeClient, Web3TransactionHandle
from .proofs import BridgeServiceProofBuilder

__all__ = [
    "BRIDGE_ABI",
    "BRIDGE_EXTENSION_ABI",
    "BRIDGE_EXTENSION_PERMIT_ABI",
    "decode_error_name",
    "AgglayerBridgeClient",
    "Web3TransactionHandle",
    "BridgeServiceProofBuilder",
]
