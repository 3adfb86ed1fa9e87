"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the cache/metadata/rule tables used by ``spending_analysis``.
"""

from .analysis import AnalysisMetadataRow, Base, CategoryRuleRow, MessageCacheRow

__all__ = [
    "Base",
    "MessageCacheRow",
    "AnalysisMetadataRow",
    "CategoryRuleRow",
]
