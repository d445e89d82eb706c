"""Relay emotion and participant triggers to SwitchBot device commands."""

__version__ = "0.1.0"
