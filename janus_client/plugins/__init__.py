"""Handles for specific gateway plugins."""

from .echotest import EchoTestEvent, EchoTestHandle

__all__ = ["EchoTestEvent", "EchoTestHandle"]
