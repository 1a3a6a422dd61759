"""
Chain history merging.

Each extend() call allocates fresh diagnostic arrays at the chain's new total
length, while the sampler only computes statistics for the rounds it ran.
This module stitches the two together, and does the same for the event log:

- merge_chain_diagnostics: copy old rounds verbatim, fill new rounds from the slice
- merge_logged_events: append new log rows, keeping "never logged" as None
"""

from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..error_handling import DimensionMismatchError
from .types import LOG_COLUMNS


def merge_chain_diagnostics(
    old_mean: Optional[np.ndarray],
    old_var: Optional[np.ndarray],
    new_mean: np.ndarray,
    new_var: np.ndarray,
    prior_iterations: int,
    new_rounds: int,
    n_visit: Optional[int] = None,
    m: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Splice per-round diagnostics of the new rounds onto the existing history.

    Args:
        old_mean: Existing chain means (n_visit, prior_iterations, m)
        old_var: Existing chain variances (n_visit, prior_iterations, m)
        new_mean: Means for the new rounds only (n_visit, new_rounds, m)
        new_var: Variances for the new rounds only (n_visit, new_rounds, m)
        prior_iterations: Rounds completed before this extension
        new_rounds: Rounds run in this extension
        n_visit: Expected number of visited variables (not checked if None)
        m: Expected number of replicates (not checked if None)

    Returns:
        (chain_mean, chain_var): Arrays (n_visit, prior_iterations + new_rounds, m)
        where [:, :prior_iterations] equals the old arrays element for element
        and [:, prior_iterations:] equals the new slices.

    Raises:
        DimensionMismatchError: If any input does not fit the target shape
    """
    new_mean = np.asarray(new_mean, dtype=np.float64)
    new_var = np.asarray(new_var, dtype=np.float64)
    if new_mean.ndim != 3 or new_var.shape != new_mean.shape:
        raise DimensionMismatchError(
            f"New diagnostic slices must be 3-D and equal in shape, "
            f"got {new_mean.shape} and {new_var.shape}"
        )
    n_vis = new_mean.shape[0] if n_visit is None else n_visit
    m = new_mean.shape[2] if m is None else m
    if new_mean.shape != (n_vis, new_rounds, m):
        raise DimensionMismatchError(
            f"Sampler returned diagnostics of shape {new_mean.shape}, "
            f"expected {(n_vis, new_rounds, m)} (n_visit, rounds, m)"
        )

    total = prior_iterations + new_rounds
    chain_mean = np.zeros((n_vis, total, m), dtype=np.float64)
    chain_var = np.zeros((n_vis, total, m), dtype=np.float64)

    if prior_iterations == 0:
        # Nothing to preserve; whatever the state carried is an empty history
        chain_mean[:] = new_mean
        chain_var[:] = new_var
        return chain_mean, chain_var

    expected_old = (n_vis, prior_iterations, m)
    for label, arr in (('chain_mean', old_mean), ('chain_var', old_var)):
        if arr is None or np.shape(arr) != expected_old:
            raise DimensionMismatchError(
                f"Existing {label} has shape {np.shape(arr)}, expected {expected_old}"
            )

    chain_mean[:, :prior_iterations, :] = old_mean
    chain_var[:, :prior_iterations, :] = old_var
    chain_mean[:, prior_iterations:, :] = new_mean
    chain_var[:, prior_iterations:, :] = new_var

    return chain_mean, chain_var


def merge_logged_events(
    prior: Optional[pd.DataFrame],
    new_entries: List[Dict[str, Any]],
) -> Optional[pd.DataFrame]:
    """
    Append new event rows to the chain's event log.

    Args:
        prior: Existing log (None if the chain never logged anything)
        new_entries: Rows emitted during this extension, keys LOG_COLUMNS

    Returns:
        None if there is no prior log and no new entry; otherwise one
        DataFrame with prior rows first, re-indexed 0..n-1.
    """
    if prior is None and not new_entries:
        return None

    frames = []
    if prior is not None:
        frames.append(prior)
    if new_entries:
        frames.append(pd.DataFrame(new_entries, columns=list(LOG_COLUMNS)))

    if len(frames) == 1:
        merged = frames[0].copy()
    else:
        merged = pd.concat(frames, ignore_index=True)
    return merged.reset_index(drop=True)
