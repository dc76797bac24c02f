"""Public configuration API."""

from .loader import ConfigFiles, load_network_config
from .models import (
    ChaincodeConfig,
    ChannelConfig,
    EngineConfig,
    NetworkConfig,
    OrdererConfig,
    OrganizationConfig,
    PeerConfig,
)

__all__ = [
    "ConfigFiles",
    "load_network_config",
    "NetworkConfig",
    "OrdererConfig",
    "OrganizationConfig",
    "PeerConfig",
    "ChannelConfig",
    "ChaincodeConfig",
    "EngineConfig",
]
