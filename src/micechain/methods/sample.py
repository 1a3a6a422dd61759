"""
Random Sample and Unconditional Mean Imputation

Two methods that ignore the predictors:

- sample: draw each imputed value uniformly from the observed values. Also the
  fallback when a column has too few observed cases to fit a model, and the
  draw used to start a chain.
- mean: fill every imputed cell with the observed mean. Deterministic; the
  key is not used.
"""

import jax.numpy as jnp
import jax.random as random


def sample_method(key, y_obs, x_obs, x_mis, **options):
    """
    Random draw from the observed values.

    Args:
        key: JAX random key
        y_obs: Observed target values (n_obs,), at least one
        x_obs: Unused
        x_mis: Only its row count is used (n_mis, p)

    Returns:
        Imputed values (n_mis,)
    """
    del x_obs  # Unused
    y_obs = jnp.asarray(y_obs)
    return random.choice(key, y_obs, shape=(x_mis.shape[0],), replace=True)


def mean_method(key, y_obs, x_obs, x_mis, **options):
    """Unconditional mean of the observed values."""
    del key, x_obs  # Unused
    return jnp.full((x_mis.shape[0],), jnp.mean(jnp.asarray(y_obs)))
