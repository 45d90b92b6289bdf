"""
Tunnel Module - Black Box Interface

Purpose: Track each client's current tunnel URL
Interface: store(), fetch(), list(), delete()
Hidden: Partition layout, token comparison, timestamps

Possession of the most recently issued token is the only credential needed
to move a client's tunnel to a new URL.
"""

from .registry import TunnelRecord, TunnelRegistry

__all__ = ["TunnelRecord", "TunnelRegistry"]
