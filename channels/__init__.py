"""Transport adapters consumed by the dialog engine."""
from channels.base import ChannelAdapter, ChannelError, TurnHandler
from channels.loopback import LoopbackAdapter

__all__ = ["ChannelAdapter", "ChannelError", "TurnHandler", "LoopbackAdapter"]
