"""Registry connection configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final, Literal, cast

from .env import env_choice, env_positive_int, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

type RegistryMode = Literal["aptos", "mock"]
type Network = Literal["devnet", "testnet", "mainnet"]

REGISTRY_MODES: Final[tuple[str, ...]] = ("aptos", "mock")
NETWORKS: Final[tuple[str, ...]] = ("devnet", "testnet", "mainnet")
DEFAULT_NETWORK: Final[str] = "devnet"
DEFAULT_MODULE_NAME: Final[str] = "upi_registry"
DEFAULT_MAX_GAS_AMOUNT: Final[int] = 10_000
DEFAULT_GAS_UNIT_PRICE: Final[int] = 100
DEFAULT_EXPIRATION_SECONDS: Final[int] = 60
DEFAULT_MOCK_IDENTITY: Final[str] = "0xa11ce"

NODE_URLS: Final[dict[str, str]] = {
    "devnet": "https://fullnode.devnet.aptoslabs.com/v1",
    "testnet": "https://fullnode.testnet.aptoslabs.com/v1",
    "mainnet": "https://fullnode.mainnet.aptoslabs.com/v1",
}

# mainnet has no deployment yet
CONTRACT_ADDRESSES: Final[dict[str, str]] = {
    "devnet": "0xf9d57e56266876b07459f919263caf276b07978766ace8e17b65003bd227fea5",
    "testnet": "0xf9d57e56266876b07459f919263caf276b07978766ace8e17b65003bd227fea5",
}

_REGISTRY_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True, slots=True)
class GasSettings:
    max_gas_amount: int = DEFAULT_MAX_GAS_AMOUNT
    gas_unit_price: int = DEFAULT_GAS_UNIT_PRICE
    expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Holds the registry mode and, for ``aptos`` mode, the node connection values."""

    mode: RegistryMode
    network: Network = "devnet"
    node_url: str | None = None
    contract_address: str | None = None
    private_key: str | None = field(default=None, repr=False)
    mock_identity: str = DEFAULT_MOCK_IDENTITY
    module_name: str = DEFAULT_MODULE_NAME
    gas: GasSettings = field(default_factory=GasSettings)
    confirmation_timeout_seconds: float = 30.0
    resilience: ResilienceConfig | None = None


def default_resilience(node_url: str) -> ResilienceConfig:
    return ResilienceConfig(
        name="aptos",
        base_url=node_url,
        timeout_seconds=_REGISTRY_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=8, per_seconds=1.0),
        retry=RetryPolicy(total=3),
        default_headers={"Accept": "application/json"},
    )


def get_registry_config(*, resilience: ResilienceConfig | None = None) -> RegistryConfig:
    mode = env_choice("UPILINK_REGISTRY_MODE", REGISTRY_MODES, default="mock")
    network = cast("Network", env_choice("UPILINK_NETWORK", NETWORKS, default=DEFAULT_NETWORK))
    if mode == "mock":
        return RegistryConfig(
            mode="mock",
            network=network,
            mock_identity=os.getenv("UPILINK_MOCK_IDENTITY") or DEFAULT_MOCK_IDENTITY,
        )

    values = require_env_vars(("UPILINK_PRIVATE_KEY",))
    node_url = os.getenv("UPILINK_NODE_URL") or NODE_URLS[network]
    contract_address = os.getenv("UPILINK_CONTRACT_ADDRESS") or CONTRACT_ADDRESSES.get(network)
    if contract_address is None:
        raise ConfigurationError(
            f"No registry contract is known for {network}; set UPILINK_CONTRACT_ADDRESS"
        )

    return RegistryConfig(
        mode="aptos",
        network=network,
        node_url=node_url,
        contract_address=contract_address,
        private_key=values["UPILINK_PRIVATE_KEY"],
        gas=GasSettings(
            max_gas_amount=env_positive_int(
                "UPILINK_MAX_GAS_AMOUNT", default=DEFAULT_MAX_GAS_AMOUNT
            ),
            gas_unit_price=env_positive_int(
                "UPILINK_GAS_UNIT_PRICE", default=DEFAULT_GAS_UNIT_PRICE
            ),
        ),
        resilience=resilience or default_resilience(node_url),
    )
