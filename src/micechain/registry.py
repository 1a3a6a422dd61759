"""
Imputation Method Registration System

This module provides a registry for univariate imputation methods used by the
Gibbs sampler. The built-in methods register themselves when
micechain.methods is imported; user code may add its own via register_method().

Example usage:
    from micechain import register_method

    def median_method(key, y_obs, x_obs, x_mis, **options):
        return jnp.full(x_mis.shape[0], jnp.median(y_obs))

    register_method('median', median_method)

    state = initialize_chain(df, method=['median', '', 'pmm'])
"""

_REGISTRY = {}


def register_method(name, fn, overwrite=False):
    """
    Register an imputation method with the sampler.

    Args:
        name: Unique method identifier string (e.g., 'pmm')
        fn: Callable fn(key, y_obs, x_obs, x_mis, **options) -> array
            key: JAX PRNG key reserved for this draw
            y_obs: Observed values of the target column (n_obs,)
            x_obs: Design matrix rows for observed cases (n_obs, n_pred)
            x_mis: Design matrix rows for cells being imputed (n_mis, n_pred)
            options: Sampler options (donors, ridge, ...)
            Returns the imputed values (n_mis,).
        overwrite: Allow replacing an existing registration

    Raises:
        ValueError: If the name is empty or already registered.
    """
    if not name:
        raise ValueError("Method name must be a non-empty string")
    if name in _REGISTRY and not overwrite:
        raise ValueError(f"Method '{name}' is already registered")
    if not callable(fn):
        raise ValueError(f"Method '{name}' must be callable, got {type(fn)}")

    _REGISTRY[name] = fn


def get_method(name):
    """
    Get a registered imputation method by name.

    Raises:
        KeyError: If the method is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown imputation method '{name}'. Available: {available}")
    return _REGISTRY[name]


def list_methods():
    """List all registered method names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered methods. Primarily for testing.
    """
    _REGISTRY.clear()
