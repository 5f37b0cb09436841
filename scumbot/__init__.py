"""SCUM server log relay: tails the server logs and posts events to Discord."""

__version__ = "0.1"
