"""
Protocols
Lightweight Protocols for the seams between sync components.
"""

from .command_channel import CommandChannel

__all__ = [
    "CommandChannel",
]
