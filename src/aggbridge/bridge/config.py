"""
Configuration for the bridge tracker and its collaborators.

Configuration is passed explicitly at construction time. ``AggBridgeConfig``
bundles the status API endpoint, tracking behaviour and per-network chain
settings, and can be loaded from a mapping or from ``AGGBRIDGE_*``
environment variables.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from ..errors import ConfigurationError, RetryPolicy

ENV_PREFIX = "AGGBRIDGE_"


class StatusNetwork(Enum):
    """Network enumeration understood by the transaction status API."""

    TESTNET = "testnet"
    MAINNET = "mainnet"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class StatusApiConfig:
    """Transaction status API settings."""

    base_url: str = "https://api-gateway.polygon.technology/api/v3"
    api_key: Optional[str] = None
    api_key_header: str = "x-api-key"
    network: StatusNetwork = StatusNetwork.MAINNET
    request_timeout: float = 30.0
    max_requests_per_second: float = 5.0

    def validate(self) -> None:
        if not self.base_url or not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Status API URL must be http(s): {self.base_url!r}",
                config_key="status_api.base_url",
                config_value=self.base_url,
            )
        if self.request_timeout <= 0:
            raise ConfigurationError(
                "Status API request timeout must be positive",
                config_key="status_api.request_timeout",
                config_value=self.request_timeout,
            )
        if self.max_requests_per_second <= 0:
            raise ConfigurationError(
                "Status API rate limit must be positive",
                config_key="status_api.max_requests_per_second",
                config_value=self.max_requests_per_second,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "api_key": self.api_key,
            "api_key_header": self.api_key_header,
            "network": self.network.value,
            "request_timeout": self.request_timeout,
            "max_requests_per_second": self.max_requests_per_second,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusApiConfig":
        try:
            return cls(
                base_url=data.get("base_url", cls.base_url),
                api_key=data.get("api_key"),
                api_key_header=data.get("api_key_header", cls.api_key_header),
                network=StatusNetwork(data.get("network", StatusNetwork.MAINNET.value)),
                request_timeout=float(data.get("request_timeout", cls.request_timeout)),
                max_requests_per_second=float(
                    data.get("max_requests_per_second", cls.max_requests_per_second)
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid status API configuration: {e}", config_key="status_api"
            ) from e


@dataclass
class NetworkConfig:
    """Chain settings for one bridge network id."""

    network_id: int
    rpc_url: str
    bridge_address: str
    bridge_extension_address: Optional[str] = None
    bridge_service_url: Optional[str] = None
    chain_id: Optional[int] = None
    bridge_and_call_with_permit: bool = False

    def validate(self) -> None:
        if self.network_id < 0:
            raise ConfigurationError(
                "Network id must be non-negative",
                config_key="network_id",
                config_value=self.network_id,
            )
        if not self.rpc_url:
            raise ConfigurationError(
                f"Network {self.network_id} has no RPC URL",
                config_key=f"networks.{self.network_id}.rpc_url",
            )
        if not self.bridge_address:
            raise ConfigurationError(
                f"Network {self.network_id} has no bridge address",
                config_key=f"networks.{self.network_id}.bridge_address",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network_id": self.network_id,
            "rpc_url": self.rpc_url,
            "bridge_address": self.bridge_address,
            "bridge_extension_address": self.bridge_extension_address,
            "bridge_service_url": self.bridge_service_url,
            "chain_id": self.chain_id,
            "bridge_and_call_with_permit": self.bridge_and_call_with_permit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkConfig":
        try:
            chain_id = data.get("chain_id")
            return cls(
                network_id=int(data["network_id"]),
                rpc_url=data["rpc_url"],
                bridge_address=data["bridge_address"],
                bridge_extension_address=data.get("bridge_extension_address"),
                bridge_service_url=data.get("bridge_service_url"),
                chain_id=int(chain_id) if chain_id is not None else None,
                bridge_and_call_with_permit=bool(
                    data.get("bridge_and_call_with_permit", False)
                ),
            )
        except KeyError as e:
            raise ConfigurationError(
                f"Network configuration missing {e.args[0]}", config_key=e.args[0]
            ) from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid network configuration: {e}") from e


@dataclass
class TrackerConfig:
    """Polling and claim behaviour of the tracker."""

    poll_interval: float = 10.0
    tracking_timeout: float = 1800.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    require_ready_for_claim: bool = False
    wait_for_receipts: bool = False

    def validate(self) -> None:
        if self.poll_interval <= 0:
            raise ConfigurationError(
                "Poll interval must be positive",
                config_key="tracker.poll_interval",
                config_value=self.poll_interval,
            )
        if self.tracking_timeout <= 0:
            raise ConfigurationError(
                "Tracking timeout must be positive",
                config_key="tracker.tracking_timeout",
                config_value=self.tracking_timeout,
            )
        if self.retry_policy.max_retries < 0:
            raise ConfigurationError(
                "Retry ceiling must be non-negative",
                config_key="tracker.retry_policy.max_retries",
                config_value=self.retry_policy.max_retries,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poll_interval": self.poll_interval,
            "tracking_timeout": self.tracking_timeout,
            "retry_policy": self.retry_policy.to_dict(),
            "require_ready_for_claim": self.require_ready_for_claim,
            "wait_for_receipts": self.wait_for_receipts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackerConfig":
        try:
            return cls(
                poll_interval=float(data.get("poll_interval", cls.poll_interval)),
                tracking_timeout=float(
                    data.get("tracking_timeout", cls.tracking_timeout)
                ),
                retry_policy=RetryPolicy.from_dict(data.get("retry_policy", {})),
                require_ready_for_claim=bool(data.get("require_ready_for_claim", False)),
                wait_for_receipts=bool(data.get("wait_for_receipts", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid tracker configuration: {e}", config_key="tracker"
            ) from e


@dataclass
class AggBridgeConfig:
    """Complete client configuration."""

    status_api: StatusApiConfig = field(default_factory=StatusApiConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    networks: Dict[int, NetworkConfig] = field(default_factory=dict)

    def network(self, network_id: int) -> NetworkConfig:
        try:
            return self.networks[network_id]
        except KeyError:
            raise ConfigurationError(
                f"No configuration for network {network_id}",
                config_key=f"networks.{network_id}",
            ) from None

    def validate(self) -> "AggBridgeConfig":
        self.status_api.validate()
        self.tracker.validate()
        for network_id, network in self.networks.items():
            if network.network_id != network_id:
                raise ConfigurationError(
                    f"Network entry {network_id} declares id {network.network_id}",
                    config_key=f"networks.{network_id}.network_id",
                )
            network.validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_api": self.status_api.to_dict(),
            "tracker": self.tracker.to_dict(),
            "networks": {
                str(network_id): network.to_dict()
                for network_id, network in self.networks.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggBridgeConfig":
        networks = {}
        for entry in data.get("networks", {}).values():
            network = NetworkConfig.from_dict(entry)
            networks[network.network_id] = network
        return cls(
            status_api=StatusApiConfig.from_dict(data.get("status_api", {})),
            tracker=TrackerConfig.from_dict(data.get("tracker", {})),
            networks=networks,
        ).validate()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AggBridgeConfig":
        """Load configuration from ``AGGBRIDGE_*`` environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        env_mappings: Dict[str, tuple] = {
            "STATUS_API_URL": (config.status_api, "base_url", str),
            "STATUS_API_KEY": (config.status_api, "api_key", str),
            "STATUS_API_KEY_HEADER": (config.status_api, "api_key_header", str),
            "STATUS_NETWORK": (config.status_api, "network", StatusNetwork),
            "STATUS_RATE_LIMIT": (config.status_api, "max_requests_per_second", float),
            "POLL_INTERVAL": (config.tracker, "poll_interval", float),
            "TRACKING_TIMEOUT": (config.tracker, "tracking_timeout", float),
            "MAX_RETRIES": (config.tracker.retry_policy, "max_retries", int),
            "REQUIRE_READY_FOR_CLAIM": (config.tracker, "require_ready_for_claim", _parse_bool),
            "WAIT_FOR_RECEIPTS": (config.tracker, "wait_for_receipts", _parse_bool),
        }

        for suffix, (target, attr_name, convert) in env_mappings.items():
            env_value = env.get(ENV_PREFIX + suffix)
            if env_value is not None:
                setattr(target, attr_name, _convert(suffix, env_value, convert))

        network_ids = env.get(ENV_PREFIX + "NETWORK_IDS", "")
        for raw_id in filter(None, (part.strip() for part in network_ids.split(","))):
            network_id = _convert("NETWORK_IDS", raw_id, int)
            chain_id = env.get(f"{ENV_PREFIX}CHAIN_ID_{network_id}")
            config.networks[network_id] = NetworkConfig(
                network_id=network_id,
                rpc_url=env.get(f"{ENV_PREFIX}RPC_URL_{network_id}", ""),
                bridge_address=env.get(f"{ENV_PREFIX}BRIDGE_ADDRESS_{network_id}", ""),
                bridge_extension_address=env.get(
                    f"{ENV_PREFIX}BRIDGE_EXTENSION_ADDRESS_{network_id}"
                ),
                bridge_service_url=env.get(
                    f"{ENV_PREFIX}BRIDGE_SERVICE_URL_{network_id}"
                ),
                chain_id=(
                    _convert(f"CHAIN_ID_{network_id}", chain_id, int)
                    if chain_id is not None
                    else None
                ),
                bridge_and_call_with_permit=_parse_bool(
                    env.get(f"{ENV_PREFIX}BRIDGE_AND_CALL_PERMIT_{network_id}", "false")
                ),
            )

        return config.validate()


def _convert(suffix: str, value: str, convert: Callable[[str], Any]) -> Any:
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid environment variable {ENV_PREFIX}{suffix}={value!r}: {e}",
            config_key=ENV_PREFIX + suffix,
            config_value=value,
        ) from e
