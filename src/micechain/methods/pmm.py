"""
Predictive Mean Matching Imputation

For each imputed cell, finds the `donors` observed cases whose predicted
values are closest to the cell's predicted value and copies the observed
value of one of them, chosen uniformly at random.

Observed cases are predicted with the least squares coefficients, imputed
cells with a posterior draw of the coefficients (type-1 matching), so
parameter uncertainty propagates into the choice of donors.

Imputed values are always values that occur in the data, which keeps
draws within the observed range and preserves discreteness.

Options used:
    donors - Size of the donor pool (default 5)
    ridge  - Ridge penalty relative to diag(X'X) (default 1e-5)
"""

from functools import partial

import jax
import jax.numpy as jnp
import jax.random as random

from .common import norm_draw


@partial(jax.jit, static_argnames=('donors',))
def _match_donors(key, y_obs, yhat_obs, yhat_mis, donors):
    """Pick one of the `donors` nearest observed predictions for each cell."""
    distance = jnp.abs(yhat_mis[:, None] - yhat_obs[None, :])
    nearest = jnp.argsort(distance, axis=1)[:, :donors]
    pick = random.randint(key, shape=(yhat_mis.shape[0],), minval=0, maxval=donors)
    chosen = jnp.take_along_axis(nearest, pick[:, None], axis=1)[:, 0]
    return y_obs[chosen]


def pmm_method(key, y_obs, x_obs, x_mis, donors=5, ridge=1e-5, **options):
    """
    Predictive mean matching.

    Args:
        key: JAX random key
        y_obs: Observed target values (n_obs,)
        x_obs: Design matrix at observed cases (n_obs, p)
        x_mis: Design matrix at imputed cells (n_mis, p)
        donors: Donor pool size (capped at n_obs)
        ridge: Ridge penalty

    Returns:
        Imputed values (n_mis,), each one an element of y_obs
    """
    param_key, match_key = random.split(key)
    y_obs = jnp.asarray(y_obs)
    x_obs = jnp.asarray(x_obs)

    coef, beta_star, _ = norm_draw(param_key, y_obs, x_obs, ridge)
    yhat_obs = x_obs @ coef
    yhat_mis = jnp.asarray(x_mis) @ beta_star

    donors = int(min(donors, y_obs.shape[0]))
    return _match_donors(match_key, y_obs, yhat_obs, yhat_mis, donors)
