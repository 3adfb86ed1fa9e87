"""Persistence layer for spending analysis: ORM tables plus engine helpers.

``db.models.analysis`` defines the ``sa_*`` tables; ``db.client`` owns engines
and sessions. The table classes are re-exported here.
"""

from __future__ import annotations

from .models.analysis import AnalysisMetadataRow, Base, CategoryRuleRow, MessageCacheRow

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "MessageCacheRow",
    "AnalysisMetadataRow",
    "CategoryRuleRow",
]
