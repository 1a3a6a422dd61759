"""
Bayesian Linear Regression Imputation

Draws imputations from the posterior predictive of a normal linear model:

    beta*, sigma* ~ p(beta, sigma | y_obs, X_obs)
    y_mis = X_mis @ beta* + sigma* * z,   z ~ N(0, I)

Options used:
    ridge - Ridge penalty relative to diag(X'X) (default 1e-5)
"""

import jax.numpy as jnp
import jax.random as random

from .common import norm_draw


def norm_method(key, y_obs, x_obs, x_mis, ridge=1e-5, **options):
    """
    Normal linear regression imputation with parameter uncertainty.

    Args:
        key: JAX random key
        y_obs: Observed target values (n_obs,)
        x_obs: Design matrix at observed cases (n_obs, p)
        x_mis: Design matrix at imputed cells (n_mis, p)
        ridge: Ridge penalty

    Returns:
        Imputed values (n_mis,)
    """
    param_key, noise_key = random.split(key)
    _, beta_star, sigma_star = norm_draw(
        param_key, jnp.asarray(y_obs), jnp.asarray(x_obs), ridge
    )
    noise = random.normal(noise_key, shape=(x_mis.shape[0],))
    return jnp.asarray(x_mis) @ beta_star + sigma_star * noise
