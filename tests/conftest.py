"""
Pytest configuration and shared fixtures for micechain tests.
"""

import pytest
import numpy as np
import pandas as pd

from micechain import KeyStore, initialize_chain
from micechain.registry import _REGISTRY

import jax

# Exact comparisons of draws assume float64 even if jax was imported first
jax.config.update("jax_enable_x64", True)


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def incomplete_data():
    """
    Three correlated columns, 30 rows, 10 missing cells.

    'x' is complete, 'y' misses rows 0-4 and 'z' misses rows 5-9.
    """
    rng = np.random.default_rng(7)
    n = 30
    x = rng.normal(size=n)
    y = 1.0 + 2.0 * x + rng.normal(scale=0.5, size=n)
    z = -x + rng.normal(scale=0.8, size=n)
    df = pd.DataFrame({'x': x, 'y': y, 'z': z})
    df.loc[0:4, 'y'] = np.nan
    df.loc[5:9, 'z'] = np.nan
    return df


@pytest.fixture
def start_state(incomplete_data, rng_seed):
    """Iteration-0 chain with m=5, built on its own key store."""
    return initialize_chain(incomplete_data, m=5, seed=rng_seed, key_store=KeyStore())


@pytest.fixture
def constant_column_data(incomplete_data):
    """Incomplete data plus a complete constant column 'c'."""
    df = incomplete_data.copy()
    df['c'] = 1.0
    return df


@pytest.fixture
def register_test_methods():
    """
    Fixture to register test-only imputation methods and clean up after test.

    Usage:
        def test_something(register_test_methods):
            # 'constant_seven' and 'observed_max' are now registered
            ...
    """
    import jax.numpy as jnp

    def constant_seven(key, y_obs, x_obs, x_mis, **options):
        return jnp.full((x_mis.shape[0],), 7.0)

    def observed_max(key, y_obs, x_obs, x_mis, **options):
        return jnp.full((x_mis.shape[0],), jnp.max(jnp.asarray(y_obs)))

    test_methods = {'constant_seven': constant_seven, 'observed_max': observed_max}

    # Save any existing registrations
    original_registrations = {}
    for name, fn in test_methods.items():
        if name in _REGISTRY:
            original_registrations[name] = _REGISTRY[name]
        _REGISTRY[name] = fn

    yield test_methods  # Run the test

    # Restore original registry state
    for name in test_methods:
        if name in original_registrations:
            _REGISTRY[name] = original_registrations[name]
        elif name in _REGISTRY:
            del _REGISTRY[name]
