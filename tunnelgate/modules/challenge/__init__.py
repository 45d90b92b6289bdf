"""
Challenge Module - Black Box Interface

Purpose: Issue and consume single-use, time-bounded challenges
Interface: issue(), consume()
Hidden: Storage layout, expiry bookkeeping, random source

Only the most recent challenge per client is ever valid.
"""

from .challenge import Challenge, ChallengeLedger, ConsumeResult

__all__ = ["Challenge", "ChallengeLedger", "ConsumeResult"]
