"""
Chain Configuration.

This module derives the configuration snapshot the sampler consumes:
- derive_mask: Default missingness mask (cell is NaN)
- configure_chain: Setup dictionary recomputed on every extend() call
- clean_sampler_options: Fill default sampler tuning options

The setup dictionary is rebuilt from the chain state on every call rather
than cached, so counts always agree with the data and mask actually passed.
All setup keys use lowercase with underscores (e.g., 'n_where', 'visit_sequence').
"""

from typing import Any, Dict, Optional

import jax
import numpy as np
import pandas as pd

from ..error_handling import validate_sampler_options


def derive_mask(data: pd.DataFrame) -> np.ndarray:
    """Missingness mask: True where data is NaN."""
    return data.isna().to_numpy(dtype=bool)


def configure_chain(state, mask: Optional[np.ndarray] = None) -> Dict[str, Any]:
    """
    Configure the sampler from a chain state.

    Args:
        state: ChainState being extended
        mask: Mask to use; defaults to state.mask, or one derived from
              state.data when the state carries none

    Returns:
        setup: Dict with
            mask: Boolean (n_rows, n_cols) mask
            n_observed: Non-missing count per column
            n_missing: Missing count per column
            n_where: Masked (imputed) cell count per column
            n_imputed: Cells imputed per replicate (0 for columns without a method)
            visit_sequence, method, predictor_matrix, post: passed through
            n_var: Number of columns
            var_names: Column names
    """
    # Imputation arithmetic is float64 throughout
    jax.config.update("jax_enable_x64", True)

    if mask is None:
        mask = state.mask if state.mask is not None else derive_mask(state.data)
    mask = np.asarray(mask, dtype=bool)

    is_missing = state.data.isna().to_numpy(dtype=bool)
    n_where = mask.sum(axis=0).astype(int)
    has_method = np.array([bool(meth) for meth in state.method], dtype=bool)

    setup = {
        'mask': mask,
        'n_observed': (~is_missing).sum(axis=0).astype(int),
        'n_missing': is_missing.sum(axis=0).astype(int),
        'n_where': n_where,
        'n_imputed': np.where(has_method, n_where, 0),
        'visit_sequence': tuple(int(j) for j in state.visit_sequence),
        'method': tuple(state.method),
        'predictor_matrix': np.asarray(state.predictor_matrix, dtype=int),
        'post': dict(state.post),
        'n_var': state.data.shape[1],
        'var_names': state.variable_names,
    }

    return setup


def clean_sampler_options(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Copy sampler options and set defaults.

    Defaults:
        donors: 5 (pmm donor pool size)
        ridge: 1e-5 (ridge penalty for regression fits)
        collinearity_threshold: 0.999 (|corr| above which a predictor is dropped)
    """
    options = dict(options or {})

    options.setdefault('donors', 5)
    options.setdefault('ridge', 1e-5)
    options.setdefault('collinearity_threshold', 0.999)

    validate_sampler_options(options)
    return options
