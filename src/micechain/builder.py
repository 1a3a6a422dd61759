"""
Chain construction and completion.

This module provides functions for:
- Building an iteration-0 chain from a DataFrame with missing values
- Running a fresh chain for a number of rounds (impute)
- Materializing a completed dataset for one replicate (complete)
- Post-processing rules applied to draws (squeeze)

The resumable part of the package is chain.controller.extend(); everything
here either produces its first input or consumes its output.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import jax
import numpy as np
import pandas as pd

from .chain.config import derive_mask
from .chain.continuity import KeyStore, capture, default_key_store, key_from_seed, restore
from .chain.merge import merge_logged_events
from .chain.sampler import log_event
from .chain.controller import extend
from .chain.types import ChainState, freeze_array
from .error_handling import InvalidStateError, DimensionMismatchError
from .methods import register_builtin_methods
from .methods.sample import sample_method

import logging
logger = logging.getLogger('micechain')

DEFAULT_METHOD = 'pmm'


def _validate_inputs(data, m, mask):
    if not isinstance(data, pd.DataFrame):
        raise InvalidStateError(f"data should be a pandas DataFrame, got {type(data).__name__}")

    errors = []
    if data.shape[1] < 1:
        errors.append("data must have at least one column")
    non_numeric = [str(c) for c in data.columns if not pd.api.types.is_numeric_dtype(data[c])]
    if non_numeric:
        errors.append(f"Columns must be numeric, got non-numeric: {non_numeric}")
    if len(set(str(c) for c in data.columns)) != data.shape[1]:
        errors.append("Column names must be unique")
    if not isinstance(m, (int, np.integer)) or m < 1:
        errors.append(f"m must be an integer >= 1, got {m!r}")
    if errors:
        raise InvalidStateError("Invalid imputation input:\n  " + "\n  ".join(errors))

    if mask is not None and np.shape(mask) != data.shape:
        raise DimensionMismatchError(
            f"mask shape {np.shape(mask)} does not match data shape {data.shape}"
        )


def default_predictor_matrix(n_vars: int) -> np.ndarray:
    """Every column predicts every other column."""
    return np.ones((n_vars, n_vars), dtype=int) - np.eye(n_vars, dtype=int)


def initialize_chain(
    data: pd.DataFrame,
    m: int = 5,
    method: Optional[Sequence[str]] = None,
    predictor_matrix: Optional[np.ndarray] = None,
    visit_sequence: Optional[Sequence[int]] = None,
    post: Optional[Mapping[str, Callable]] = None,
    mask: Optional[np.ndarray] = None,
    seed: Optional[int] = None,
    key_store: Optional[KeyStore] = None,
) -> ChainState:
    """
    Build an iteration-0 chain with starting imputations.

    Starting values for each masked cell are drawn at random from the
    observed values of its column (zero when a column has none). Masked
    cells of columns without a method stay NaN, and such columns are removed
    from the predictor matrix; each removal is an event-log row at
    iteration 0.

    Args:
        data: DataFrame of numeric columns, NaN for missing
        m: Number of replicates
        method: Method name per column; defaults to 'pmm' for columns with
                masked cells and '' otherwise
        predictor_matrix: (p, p) 0/1 matrix; defaults to all other columns
        visit_sequence: Column indices to visit; defaults to columns with a
                        method, left to right
        post: Column name -> callable applied to every draw of that column
        mask: Boolean mask of cells to impute; defaults to isnan(data)
        seed: Seed for the chain's generator. When None, the chain continues
              from the current state of key_store, or from a fresh random
              seed if the store has never been set.
        key_store: Generator used for the starting draws (process-wide if None)

    Returns:
        ChainState with iteration 0
    """
    # Starting draws are float64 like every later draw
    jax.config.update("jax_enable_x64", True)
    register_builtin_methods()
    _validate_inputs(data, m, mask)

    var_names = [str(c) for c in data.columns]
    n_vars = len(var_names)
    mask = derive_mask(data) if mask is None else np.asarray(mask, dtype=bool)
    n_where = mask.sum(axis=0)

    if method is None:
        method = tuple(DEFAULT_METHOD if n_where[j] > 0 else '' for j in range(n_vars))
    else:
        method = tuple(method)
        if len(method) != n_vars:
            raise InvalidStateError(f"method has {len(method)} entries, data has {n_vars} columns")

    if predictor_matrix is None:
        predictor_matrix = default_predictor_matrix(n_vars)
    predictor_matrix = np.array(predictor_matrix, dtype=int, copy=True)
    if predictor_matrix.shape != (n_vars, n_vars):
        raise InvalidStateError(
            f"predictor_matrix must be ({n_vars}, {n_vars}), got {predictor_matrix.shape}"
        )

    events = []
    for j, name in enumerate(var_names):
        if n_where[j] > 0 and not method[j] and predictor_matrix[:, j].any():
            predictor_matrix[:, j] = 0
            log_event(events, 0, 0, name, method[j], "incomplete and not imputed; removed as predictor")

    if visit_sequence is None:
        visit_sequence = tuple(j for j in range(n_vars) if method[j])

    key_store = key_store if key_store is not None else default_key_store()
    if seed is None and not key_store.is_set:
        seed = int(np.random.default_rng().integers(0, 2**31 - 1))
    if seed is not None:
        restore(key_from_seed(seed), key_store)

    data_values = data.to_numpy(dtype=np.float64)
    imputations: Dict[str, np.ndarray] = {}
    for j, name in enumerate(var_names):
        if not method[j]:
            imputations[name] = freeze_array(np.full((int(n_where[j]), m), np.nan))
            continue
        values = np.zeros((int(n_where[j]), m), dtype=np.float64)
        observed = data_values[~mask[:, j] & ~np.isnan(data_values[:, j]), j]
        if values.shape[0] > 0 and observed.shape[0] > 0:
            placeholder = np.empty((values.shape[0], 0))
            for i in range(m):
                values[:, i] = np.asarray(sample_method(key_store.next_key(), observed, None, placeholder))
        imputations[name] = freeze_array(values)

    n_vis = len(visit_sequence)
    empty = np.zeros((n_vis, 0, m), dtype=np.float64)

    logger.info(f"Initialized chain: {n_vars} variables, {int(mask.sum())} imputed cells, m={m}")

    return ChainState(
        data=data,
        mask=freeze_array(mask),
        imputations=imputations,
        m=int(m),
        visit_sequence=tuple(int(j) for j in visit_sequence),
        method=method,
        predictor_matrix=freeze_array(predictor_matrix, dtype=int),
        post=dict(post or {}),
        iteration=0,
        chain_mean=freeze_array(empty),
        chain_var=freeze_array(empty),
        rng_snapshot=capture(key_store),
        logged_events=merge_logged_events(None, events),
        seed=seed,
    )


def impute(
    data: pd.DataFrame,
    m: int = 5,
    max_iter: int = 5,
    print_flag: bool = False,
    key_store: Optional[KeyStore] = None,
    **kwargs: Any,
) -> ChainState:
    """
    Build a chain and run max_iter rounds.

    Keyword arguments are split between initialize_chain() (method,
    predictor_matrix, visit_sequence, post, mask, seed) and the sampler
    (donors, ridge, ...).
    """
    init_keys = ('method', 'predictor_matrix', 'visit_sequence', 'post', 'mask', 'seed')
    init_kwargs = {k: kwargs.pop(k) for k in init_keys if k in kwargs}
    state = initialize_chain(data, m=m, key_store=key_store, **init_kwargs)
    return extend(state, max_iter, print_flag=print_flag, key_store=key_store, **kwargs)


def complete(state: ChainState, replicate: int = 0) -> pd.DataFrame:
    """
    Return the data with masked cells filled from one replicate.

    Args:
        state: Chain state
        replicate: Replicate index in [0, m)

    Returns:
        New DataFrame with the same index and columns as state.data
    """
    if not isinstance(state, ChainState):
        raise InvalidStateError(f"Object should be a ChainState, got {type(state).__name__}")
    if not 0 <= replicate < state.m:
        raise ValueError(f"replicate must be in [0, {state.m}), got {replicate}")

    mask = state.mask if state.mask is not None else derive_mask(state.data)
    completed = state.data.astype(np.float64)
    for j, name in enumerate(state.variable_names):
        values = state.imputations[name]
        if values.shape[0] > 0:
            completed.iloc[np.flatnonzero(mask[:, j]), j] = values[:, replicate]
    return completed


def squeeze(lower: float = -np.inf, upper: float = np.inf) -> Callable[[np.ndarray], np.ndarray]:
    """Post-processing rule that clips draws into [lower, upper]."""
    if lower > upper:
        raise ValueError(f"lower ({lower}) must not exceed upper ({upper})")

    def _squeeze(values):
        return np.clip(values, lower, upper)

    return _squeeze
