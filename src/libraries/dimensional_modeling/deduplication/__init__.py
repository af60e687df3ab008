"""
Fact deduplication modules.
"""

from .fact_deduplicator import FactDeduplicator

__all__ = [
    "FactDeduplicator"
]
