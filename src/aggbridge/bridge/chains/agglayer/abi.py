"""ABI fragments of the unified bridge and bridge extension contracts."""

from typing import Any, Dict, List

from web3 import Web3


def _param(name: str, abi_type: str) -> Dict[str, str]:
    return {"name": name, "type": abi_type, "internalType": abi_type}


def _function(
    name: str, inputs: List[Dict[str, str]], payable: bool = False
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": [],
        "stateMutability": "payable" if payable else "nonpayable",
    }


_CLAIM_INPUTS = [
    _param("smtProofLocalExitRoot", "bytes32[32]"),
    _param("smtProofRollupExitRoot", "bytes32[32]"),
    _param("globalIndex", "uint256"),
    _param("mainnetExitRoot", "bytes32"),
    _param("rollupExitRoot", "bytes32"),
    _param("originNetwork", "uint32"),
    _param("originTokenAddress", "address"),
    _param("destinationNetwork", "uint32"),
    _param("destinationAddress", "address"),
    _param("amount", "uint256"),
    _param("metadata", "bytes"),
]

BRIDGE_ABI: List[Dict[str, Any]] = [
    _function(
        "bridgeAsset",
        [
            _param("destinationNetwork", "uint32"),
            _param("destinationAddress", "address"),
            _param("amount", "uint256"),
            _param("token", "address"),
            _param("forceUpdateGlobalExitRoot", "bool"),
            _param("permitData", "bytes"),
        ],
        payable=True,
    ),
    _function(
        "bridgeMessage",
        [
            _param("destinationNetwork", "uint32"),
            _param("destinationAddress", "address"),
            _param("forceUpdateGlobalExitRoot", "bool"),
            _param("metadata", "bytes"),
        ],
        payable=True,
    ),
    _function("claimAsset", _CLAIM_INPUTS),
    _function(
        "claimMessage",
        [
            param if param["name"] != "originTokenAddress" else _param("originAddress", "address")
            for param in _CLAIM_INPUTS
        ],
    ),
]

_BRIDGE_AND_CALL_HEAD = [
    _param("token", "address"),
    _param("amount", "uint256"),
]
_BRIDGE_AND_CALL_TAIL = [
    _param("destinationNetwork", "uint32"),
    _param("callAddress", "address"),
    _param("fallbackAddress", "address"),
    _param("callData", "bytes"),
    _param("forceUpdateGlobalExitRoot", "bool"),
]

BRIDGE_EXTENSION_ABI: List[Dict[str, Any]] = [
    _function("bridgeAndCall", _BRIDGE_AND_CALL_HEAD + _BRIDGE_AND_CALL_TAIL, payable=True)
]

BRIDGE_EXTENSION_PERMIT_ABI: List[Dict[str, Any]] = [
    _function(
        "bridgeAndCall",
        _BRIDGE_AND_CALL_HEAD + [_param("permitData", "bytes")] + _BRIDGE_AND_CALL_TAIL,
        payable=True,
    )
]

# Custom errors of the bridge contract that matter to claim classification.
BRIDGE_ERRORS = (
    "AlreadyClaimed()",
    "GlobalExitRootInvalid()",
    "InvalidSmtProof()",
    "DestinationNetworkInvalid()",
    "AmountDoesNotMatchMsgValue()",
    "MsgValueNotZero()",
    "MessageFailed()",
    "NotValidAmount()",
)

ERROR_SELECTORS: Dict[str, str] = {
    Web3.to_hex(Web3.keccak(text=signature)[:4]): signature[:-2]
    for signature in BRIDGE_ERRORS
}


def decode_error_name(data: Any) -> str:
    """Name of the custom error whose selector starts ``data``, or ''."""
    if isinstance(data, (bytes, bytearray)):
        data = Web3.to_hex(data)
    if not isinstance(data, str):
        return ""
    return ERROR_SELECTORS.get(data[:10].lower(), "")
