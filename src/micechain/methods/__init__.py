"""
Univariate Imputation Methods

This package implements the per-variable conditional models the Gibbs
sampler cycles through. Importing it registers the built-in methods.

To add a new method:
1. Create a new file in methods/ with a function
   fn(key, y_obs, x_obs, x_mis, **options) -> values
2. Register it below (or call register_method() from user code)

x_obs and x_mis include an intercept column. Methods must draw every random
number from the key they receive, so that a chain is reproducible from its
stored PRNG snapshot.
"""

from ..registry import register_method, list_methods
from .norm import norm_method
from .pmm import pmm_method
from .sample import sample_method, mean_method

BUILTIN_METHODS = {
    'norm': norm_method,
    'pmm': pmm_method,
    'sample': sample_method,
    'mean': mean_method,
}


def register_builtin_methods():
    """Register built-in methods that are not already registered."""
    registered = set(list_methods())
    for name, fn in BUILTIN_METHODS.items():
        if name not in registered:
            register_method(name, fn)


register_builtin_methods()

__all__ = [
    'norm_method',
    'pmm_method',
    'sample_method',
    'mean_method',
    'BUILTIN_METHODS',
    'register_builtin_methods',
]
