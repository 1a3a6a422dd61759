"""
Common utilities for imputation methods.

This module provides shared functions used across several imputation methods
and by the sampler when it prepares a fit.

Constants:
    MIN_VARIANCE: Predictor variance below which a column counts as constant

Functions:
    build_design: Intercept-augmented design matrix for selected predictors
    remove_lindep: Drop constant and collinear predictors before a fit
    norm_draw: Bayesian linear regression draw of (coef, beta*, sigma*)
"""

from typing import List, Tuple

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np


# Columns with smaller variance over the observed cases carry no information
MIN_VARIANCE = 1e-8


def build_design(completed: np.ndarray, predictors: np.ndarray) -> np.ndarray:
    """
    Build the design matrix: a column of ones followed by the predictor columns.

    Args:
        completed: Completed data for one replicate (n_rows, n_cols)
        predictors: Column indices to use as predictors

    Returns:
        Design matrix (n_rows, 1 + len(predictors))
    """
    n_rows = completed.shape[0]
    return np.column_stack([np.ones(n_rows), completed[:, predictors]])


def remove_lindep(
    x_obs: np.ndarray,
    y_obs: np.ndarray,
    predictors: np.ndarray,
    threshold: float,
) -> Tuple[np.ndarray, List[int]]:
    """
    Select predictors that can be fit on the observed cases.

    A predictor is dropped when it is constant over the observed cases, when
    its absolute correlation with an already kept predictor exceeds threshold,
    or when it reproduces the target almost exactly.

    Args:
        x_obs: Predictor values at observed cases, no intercept (n_obs, n_pred)
        y_obs: Target values at observed cases (n_obs,)
        predictors: Column indices matching the columns of x_obs
        threshold: Absolute correlation above which a predictor is dropped

    Returns:
        keep: Column indices kept, in original order
        removed: Column indices dropped, in original order
    """
    keep = []
    removed = []
    if x_obs.shape[0] < 2:
        return np.asarray(keep, dtype=int), [int(p) for p in predictors]

    y_var = np.var(y_obs)
    kept_cols = []
    for col, pred in enumerate(predictors):
        x = x_obs[:, col]
        if np.var(x) < MIN_VARIANCE:
            removed.append(int(pred))
            continue
        if y_var >= MIN_VARIANCE and abs(np.corrcoef(x, y_obs)[0, 1]) > threshold:
            removed.append(int(pred))
            continue
        if any(abs(np.corrcoef(x, x_obs[:, k])[0, 1]) > threshold for k in kept_cols):
            removed.append(int(pred))
            continue
        kept_cols.append(col)
        keep.append(int(pred))

    return np.asarray(keep, dtype=int), removed


@jax.jit
def norm_draw(key, y, x, ridge):
    """
    Draw regression parameters from their posterior under a flat prior.

    Ridge-stabilized least squares, residual scale from a chi-square draw,
    then coefficients from N(coef, sigma*^2 (X'X + ridge*diag(X'X))^-1).

    Args:
        key: JAX random key
        y: Observed target (n_obs,)
        x: Design matrix at observed cases (n_obs, p)
        ridge: Ridge penalty relative to the diagonal of X'X

    Returns:
        coef: Least squares estimate (p,)
        beta_star: Posterior draw of the coefficients (p,)
        sigma_star: Posterior draw of the residual standard deviation
    """
    n, p = x.shape
    chi_key, beta_key = random.split(key)

    xtx = x.T @ x
    penalty = ridge * jnp.diag(xtx)
    v = jnp.linalg.inv(xtx + jnp.diag(penalty))
    v = 0.5 * (v + v.T)
    coef = v @ (x.T @ y)

    residuals = y - x @ coef
    df = max(n - p, 1)
    # chi-square(df) = 2 * gamma(df / 2)
    chi2 = 2.0 * random.gamma(chi_key, df / 2.0)
    sigma_star = jnp.sqrt(jnp.sum(residuals ** 2) / chi2)

    L = jnp.linalg.cholesky(v)
    beta_star = coef + sigma_star * (L @ random.normal(beta_key, shape=(p,)))

    return coef, beta_star, sigma_star
