from .console import (
    ConsoleMessage,
    ConsolePubSub,
    ConsoleSubscription,
    input_topic,
    output_topic,
)
from .websocket import relay_console

__all__ = [
    "ConsoleMessage",
    "ConsolePubSub",
    "ConsoleSubscription",
    "input_topic",
    "output_topic",
    "relay_console",
]
