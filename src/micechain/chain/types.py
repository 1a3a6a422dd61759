"""
Chain Data Structures and Type Definitions.

This module contains the core data structures passed through the controller:
- ChainState: Immutable snapshot of a multiple-imputation chain
- SamplerResult: What a sampler hands back for one continuation range
- Sampler: Protocol a sampling step must satisfy
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

import numpy as np
import pandas as pd


# Columns of the event log, in order
LOG_COLUMNS = ('it', 'im', 'dep', 'meth', 'out')


@dataclass(frozen=True, eq=False)
class ChainState:
    """
    Immutable snapshot of a multiple-imputation chain after `iteration` rounds.

    A new ChainState is produced by every call to extend(); the old one stays
    valid. Arrays stored in states built by this package are read-only.

    Fields:
        data: Original dataset (numeric columns, NaN for missing)
        mask: Boolean matrix, True where a cell is imputed. None means
              "derive from data" on the next extend().
        imputations: Column name -> (n_where_j, m) array of current draws
        m: Number of parallel replicates
        visit_sequence: Column indices in processing order
        method: Method name per column ('' = not imputed)
        predictor_matrix: (p, p) 0/1 array, row j selects predictors of column j
        post: Column name -> post-processing callable
        iteration: Number of completed rounds
        chain_mean: (n_visit, iteration, m) per-round mean of imputations
        chain_var: (n_visit, iteration, m) per-round variance of imputations
        rng_snapshot: Raw PRNG key to continue the chain with
        logged_events: Event log DataFrame, or None if nothing was ever logged
        seed: Seed the chain was constructed from (informational)
    """
    data: pd.DataFrame
    mask: Optional[np.ndarray]
    imputations: Mapping[str, np.ndarray]
    m: int
    visit_sequence: Tuple[int, ...]
    method: Tuple[str, ...]
    predictor_matrix: np.ndarray
    post: Mapping[str, Callable] = field(default_factory=dict)
    iteration: int = 0
    chain_mean: Optional[np.ndarray] = None
    chain_var: Optional[np.ndarray] = None
    rng_snapshot: Optional[np.ndarray] = None
    logged_events: Optional[pd.DataFrame] = None
    seed: Optional[int] = None

    @property
    def variable_names(self) -> List[str]:
        return [str(c) for c in self.data.columns]

    @property
    def visited_names(self) -> List[str]:
        """Column names in visit order (row labels of chain_mean/chain_var)."""
        return [self.variable_names[j] for j in self.visit_sequence]

    @property
    def nmis(self) -> Dict[str, int]:
        """Missing cell count per column of the incomplete data."""
        return {str(c): int(n) for c, n in self.data.isna().sum().items()}


@dataclass(frozen=True)
class SamplerResult:
    """
    Output of one sampler invocation over a closed iteration range.

    chain_mean and chain_var are indexed only over the rounds actually run:
    shape (n_visit, to_it - from_it + 1, m). logged_events holds one dict per
    anomaly with keys LOG_COLUMNS. rng_snapshot is set only by samplers that
    manage their own generator state; otherwise the controller captures the
    key store after the run.
    """
    imputations: Dict[str, np.ndarray]
    chain_mean: np.ndarray
    chain_var: np.ndarray
    logged_events: List[Dict[str, Any]] = field(default_factory=list)
    rng_snapshot: Optional[np.ndarray] = None


class Sampler(Protocol):
    def __call__(
        self,
        data: pd.DataFrame,
        m: int,
        mask: np.ndarray,
        imputations: Mapping[str, np.ndarray],
        setup: Dict[str, Any],
        iteration_range: Tuple[int, int],
        key_store: Any,
        print_flag: bool = False,
        **options: Any,
    ) -> SamplerResult:
        ...


def freeze_array(arr, dtype=None) -> np.ndarray:
    """Return a read-only copy of arr."""
    out = np.array(arr, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out
