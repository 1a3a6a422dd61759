"""
Chain Convergence Diagnostics.

Convergence diagnostics computed from a chain's per-round history:
- compute_rhat: Gelman-Rubin R-hat with replicates as chains
- compute_chain_rhat: R-hat per visited variable from a ChainState
- print_rhat_summary: Log R-hat statistics with a convergence check

Replicates of an imputation chain start from independent random draws, so
they play the role of independent chains; the per-round mean of a
variable's imputations is the traced quantity.
"""

from typing import Dict, Optional

import jax
import jax.numpy as jnp
import numpy as np

from .chain.types import ChainState
from .error_handling import InvalidStateError

import logging
logger = logging.getLogger('micechain')

# Conventional cut-off for declaring convergence
RHAT_THRESHOLD = 1.1


@jax.jit
def compute_rhat(history: jnp.ndarray) -> jnp.ndarray:
    """
    Standard Gelman-Rubin R-hat.

    Args:
        history: Trace array (n_samples, n_chains, n_params)

    Returns:
        rhat: (n_params,) array of R-hat values
    """
    n, m, _ = history.shape

    chain_means = jnp.mean(history, axis=0)              # (m, n_params)
    B = n * jnp.var(chain_means, axis=0, ddof=1)         # between-chain
    W = jnp.mean(jnp.var(history, axis=0, ddof=1), axis=0)  # within-chain

    V_hat = ((n - 1) / n) * W + B / n + B / (m * n)
    return jnp.sqrt(V_hat / W)


def compute_chain_rhat(
    state: ChainState,
    min_iteration: int = 0,
    statistic: str = 'mean',
) -> Dict[str, float]:
    """
    R-hat per visited variable over the chain's diagnostic history.

    Args:
        state: Chain state with at least two rounds after min_iteration
        min_iteration: Discard rounds numbered <= min_iteration (burn-in)
        statistic: 'mean' to trace chain_mean, 'var' to trace chain_var

    Returns:
        Dict of visited variable name -> R-hat (NaN where undefined)
    """
    if not isinstance(state, ChainState):
        raise InvalidStateError(f"Object should be a ChainState, got {type(state).__name__}")
    if statistic not in ('mean', 'var'):
        raise ValueError(f"statistic must be 'mean' or 'var', got {statistic!r}")

    trace = state.chain_mean if statistic == 'mean' else state.chain_var
    trace = np.asarray(trace)[:, min_iteration:, :]      # (n_vis, n, m)
    n_rounds = trace.shape[1]
    if n_rounds < 2 or state.m < 2:
        raise ValueError(
            f"R-hat needs at least 2 rounds and 2 replicates, got {n_rounds} rounds, m={state.m}"
        )

    history = np.transpose(trace, (1, 2, 0))             # (n, m, n_vis)
    rhat = np.asarray(jax.device_get(compute_rhat(jnp.asarray(history))))
    return {name: float(r) for name, r in zip(state.visited_names, rhat)}


def print_rhat_summary(rhat: Dict[str, float], threshold: Optional[float] = None) -> None:
    """Log R-hat values and whether every finite value is below threshold."""
    threshold = RHAT_THRESHOLD if threshold is None else threshold
    values = np.array(list(rhat.values()), dtype=np.float64)
    if values.size == 0:
        logger.info("No visited variables; nothing to report")
        return

    logger.info(f"\n--- R-hat ({values.size} variables) ---")
    for name, r in rhat.items():
        logger.info(f"  {name}: {r:.4f}")

    n_nan = int(np.sum(~np.isfinite(values)))
    if n_nan > 0:
        logger.warning(f"  WARNING: {n_nan} variable(s) have NaN/Inf R-hat (constant traces)")

    if n_nan == values.size:
        logger.info("  Convergence undefined (no finite R-hat)")
    elif np.nanmax(values) < threshold:
        logger.info(f"  Converged (max < {threshold:.4f})")
    else:
        logger.info(f"  Not Converged (max = {np.nanmax(values):.4f} >= {threshold:.4f})")
