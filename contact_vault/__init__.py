"""
contact_vault - Local-first contact persistence and recovery engine.

Keeps an authoritative in-memory contact/group set, replicates it across a
synchronous key-value store and an asynchronous structured store, and
recovers the best surviving dataset after partial data loss.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
