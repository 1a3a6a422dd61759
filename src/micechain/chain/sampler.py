"""
Gibbs Sampler - default sampling step for imputation chains.

run_sampler() performs rounds from_it..to_it of chained-equation imputation.
Within a round, each replicate is updated in turn, and within a replicate the
variables are visited in visit-sequence order; every fit uses the current
imputed values of the other variables, so the order is part of the result.

For one (round, replicate, variable) the sampler:
1. completes the data with the replicate's current imputations
2. selects predictors from the predictor matrix, dropping constant or
   collinear ones (logged)
3. takes a key from the key store and calls the variable's method
4. applies the variable's post-processing rule
5. records the mean and variance of the replicate's imputations

Degenerate fits never raise; they are reported as event-log rows.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

import jax
import numpy as np
import pandas as pd

from ..methods import register_builtin_methods
from ..methods.common import build_design, remove_lindep
from ..registry import get_method
from .types import SamplerResult

import logging
logger = logging.getLogger('micechain')

# Methods that fit a regression and need at least this many observed cases
MIN_OBSERVED_FOR_FIT = 2


def complete_replicate(
    data_values: np.ndarray,
    mask: np.ndarray,
    imputations: Mapping[str, np.ndarray],
    var_names: List[str],
    replicate: int,
) -> np.ndarray:
    """
    Fill masked cells of the data with one replicate's imputations.

    Args:
        data_values: Data as a float array (n_rows, n_cols)
        mask: Boolean imputation mask (n_rows, n_cols)
        imputations: Column name -> (n_where_j, m) draws
        var_names: Column names in column order
        replicate: Replicate index

    Returns:
        Completed data (n_rows, n_cols), a new array
    """
    completed = np.array(data_values, dtype=np.float64, copy=True)
    for j, name in enumerate(var_names):
        values = imputations[name]
        if values.shape[0] > 0:
            completed[mask[:, j], j] = values[:, replicate]
    return completed


def log_event(events, it, im, dep, meth, out):
    """Log an anomaly and append it as an event-log row."""
    logger.warning(f"Iteration {it}, replicate {im}, '{dep}' ({meth}): {out}")
    events.append({'it': it, 'im': im, 'dep': dep, 'meth': meth, 'out': out})


def _impute_variable(
    completed: np.ndarray,
    data_values: np.ndarray,
    mask: np.ndarray,
    j: int,
    setup: Dict[str, Any],
    key_store,
    options: Dict[str, Any],
    events: List[Dict[str, Any]],
    it: int,
    im: int,
) -> Optional[np.ndarray]:
    """
    Draw new imputations for column j of one replicate.

    Returns:
        New values for the masked cells of column j, or None to keep the
        current ones
    """
    var_names = setup['var_names']
    name = var_names[j]
    method = setup['method'][j]

    predictors = np.flatnonzero(setup['predictor_matrix'][j])
    predictors = predictors[predictors != j]

    # Incomplete columns that are never imputed have no values to predict from
    unusable = [int(k) for k in predictors if not setup['method'][k] and setup['n_where'][k] > 0]
    if unusable:
        log_event(events, it, im, name, method,
                  ", ".join(var_names[k] for k in unusable) + " (incomplete, not imputed)")
        predictors = predictors[~np.isin(predictors, unusable)]

    # Fit on cells that are observed, not themselves being imputed, and have
    # complete predictors
    fit_rows = ~mask[:, j] & ~np.isnan(data_values[:, j])
    fit_rows &= np.isfinite(completed[:, predictors]).all(axis=1)
    y_obs = data_values[fit_rows, j]
    n_mis = int(mask[:, j].sum())

    if y_obs.shape[0] == 0:
        log_event(events, it, im, name, method, "no observed values; imputations kept")
        return None

    keep, removed = remove_lindep(
        completed[np.ix_(fit_rows, predictors)], y_obs, predictors,
        options['collinearity_threshold'],
    )
    if removed and method not in ('sample', 'mean'):
        log_event(events, it, im, name, method,
                   ", ".join(var_names[k] for k in removed))

    if method not in ('sample', 'mean') and y_obs.shape[0] < MIN_OBSERVED_FOR_FIT:
        log_event(events, it, im, name, method,
                   f"{y_obs.shape[0]} observed case(s); drawn by sample")
        method = 'sample'

    design = build_design(completed, keep)
    draws = get_method(method)(
        key_store.next_key(), y_obs, design[fit_rows], design[mask[:, j]], **options
    )
    draws = np.asarray(jax.device_get(draws), dtype=np.float64).reshape(n_mis)

    post = setup['post'].get(name)
    if post is not None:
        draws = np.asarray(post(draws), dtype=np.float64).reshape(n_mis)

    return draws


def run_sampler(
    data: pd.DataFrame,
    m: int,
    mask: np.ndarray,
    imputations: Mapping[str, np.ndarray],
    setup: Dict[str, Any],
    iteration_range: Tuple[int, int],
    key_store,
    print_flag: bool = False,
    **options: Any,
) -> SamplerResult:
    """
    Run rounds from_it..to_it (inclusive) of the Gibbs sampler.

    Args:
        data: Original data
        m: Number of replicates
        mask: Boolean imputation mask
        imputations: Current draws, column name -> (n_where_j, m); not modified
        setup: Configuration from configure_chain()
        iteration_range: (from_it, to_it), 1-based global round numbers
        key_store: KeyStore every draw is taken from
        print_flag: Log progress at INFO instead of DEBUG
        options: Method options from clean_sampler_options()

    Returns:
        SamplerResult with the updated imputations, diagnostics over the
        requested rounds only, and the anomalies encountered
    """
    register_builtin_methods()

    from_it, to_it = iteration_range
    n_rounds = to_it - from_it + 1
    visit_sequence = setup['visit_sequence']
    var_names = setup['var_names']
    n_vis = len(visit_sequence)

    data_values = data.to_numpy(dtype=np.float64)
    current = {name: np.array(values, dtype=np.float64, copy=True)
               for name, values in imputations.items()}

    chain_mean = np.full((n_vis, n_rounds, m), np.nan)
    chain_var = np.full((n_vis, n_rounds, m), np.nan)
    events: List[Dict[str, Any]] = []
    log = logger.info if print_flag else logger.debug

    for k, it in enumerate(range(from_it, to_it + 1)):
        for i in range(m):
            log(f" iter {it}  imp {i + 1}")
            completed = complete_replicate(data_values, mask, current, var_names, i)

            for v, j in enumerate(visit_sequence):
                name = var_names[j]
                if not setup['method'][j] or setup['n_where'][j] == 0:
                    continue

                draws = _impute_variable(
                    completed, data_values, mask, j, setup, key_store,
                    options, events, it, i + 1,
                )
                if draws is not None:
                    current[name][:, i] = draws
                    completed[mask[:, j], j] = draws

                values = current[name][:, i]
                chain_mean[v, k, i] = np.mean(values)
                chain_var[v, k, i] = np.var(values, ddof=1) if values.shape[0] > 1 else np.nan

    return SamplerResult(
        imputations=current,
        chain_mean=chain_mean,
        chain_var=chain_var,
        logged_events=events,
    )
