"""Public interface for the ``spending_analysis`` package.

Symbol re-exports only; importing the package has no side effects (no
environment reads, no logging handlers, no database connections).
"""

from .aggregation import AggregationEngine, check_rollup, top_n
from .cache import IncrementalCache
from .categories import BuiltIn, BuiltInCategory, Category, Custom, parse_category
from .classifier import MessageClassifier
from .config import AnalysisSettings
from .errors import CacheWriteError, RollupInvariantError, SpendingAnalysisError
from .models import (
    AnalysisMetadata,
    CacheEntry,
    CategoryMatch,
    CategoryRule,
    DailySummary,
    Direction,
    DirectionHint,
    GatePolicy,
    MonthlySummary,
    RawMessage,
    SenderSummary,
    SpendingReport,
    Transaction,
    YearlySummary,
)
from .pipeline import AnalysisResult, run_analysis
from .rule_store import RuleStore
from .rules import categorize, categorize_all, rule_from_transaction

__all__ = [
    # Components
    "MessageClassifier",
    "AggregationEngine",
    "IncrementalCache",
    "RuleStore",
    "AnalysisSettings",
    # Operations
    "run_analysis",
    "categorize",
    "categorize_all",
    "rule_from_transaction",
    "check_rollup",
    "top_n",
    "parse_category",
    # Models / types
    "RawMessage",
    "Transaction",
    "Direction",
    "DirectionHint",
    "GatePolicy",
    "CategoryRule",
    "CategoryMatch",
    "CacheEntry",
    "AnalysisMetadata",
    "DailySummary",
    "MonthlySummary",
    "YearlySummary",
    "SenderSummary",
    "SpendingReport",
    "AnalysisResult",
    "Category",
    "BuiltIn",
    "Custom",
    "BuiltInCategory",
    # Errors
    "SpendingAnalysisError",
    "CacheWriteError",
    "RollupInvariantError",
]
