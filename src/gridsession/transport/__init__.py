"""Channel construction and pooling for the control-plane connection."""

from .channel import Endpoint, SecureChannelFactory, build_channel, channel_options
from .credentials import ClientIdentity, require_complete_pair
from .pool import ChannelPool, is_transport_failure

__all__ = [
    "ChannelPool",
    "ClientIdentity",
    "Endpoint",
    "SecureChannelFactory",
    "build_channel",
    "channel_options",
    "is_transport_failure",
    "require_complete_pair",
]
