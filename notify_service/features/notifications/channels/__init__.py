"""Channel adapters for notification delivery."""

from .base import (
    BaseChannelAdapter,
    ChannelAdapter,
    ChannelConfigData,
    ConfigValidation,
    OutboundMessage,
    SendResult,
)
from .registry import ChannelAdapterRegistry, build_default_registry

__all__ = [
    "BaseChannelAdapter",
    "ChannelAdapter",
    "ChannelAdapterRegistry",
    "ChannelConfigData",
    "ConfigValidation",
    "OutboundMessage",
    "SendResult",
    "build_default_registry",
]
