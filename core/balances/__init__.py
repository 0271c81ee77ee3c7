"""Balance tracking engine.

Normalization, baseline selection, diffing, retention and transfer
aggregation for one tracked entity.
"""

from .baseline import Baseline, BaselineSelector
from .diff import compute_diff, pct_change
from .normalizer import normalize, normalize_transfers, parse_amount
from .retention import RetentionManager, RetentionResult
from .service import BalanceService, Reconciliation
from .transfers import TransferAggregator, aggregate_transfers

__all__ = [
    "Baseline",
    "BaselineSelector",
    "BalanceService",
    "Reconciliation",
    "RetentionManager",
    "RetentionResult",
    "TransferAggregator",
    "aggregate_transfers",
    "compute_diff",
    "normalize",
    "normalize_transfers",
    "parse_amount",
    "pct_change",
]
