"""
micechain - Resumable Multiple Imputation by Chained Equations

Public API:
    Chains:
        initialize_chain - Build an iteration-0 chain from a DataFrame
        impute - Build a chain and run a number of rounds
        extend - Run additional rounds on an existing chain
        complete - Completed DataFrame for one replicate
        ChainState - Immutable chain snapshot

    Random-State Continuity:
        KeyStore - Holder of the PRNG key draws are taken from
        capture / restore - Snapshot and reinstate a key store
        key_from_seed - Build a PRNG snapshot from an integer seed

    Methods:
        register_method - Register a univariate imputation method
        get_method - Retrieve a registered method
        list_methods - List all registered methods
        squeeze - Post-processing rule clipping draws to a range

    Diagnostics:
        compute_chain_rhat - R-hat per visited variable
        diagnose_chain - Inspect a chain for common issues

    Errors:
        InvalidStateError, DimensionMismatchError

Example:
    from micechain import impute, extend, complete

    state = impute(df, m=5, max_iter=5, seed=123)
    state = extend(state, max_iter=10)     # same as impute(..., max_iter=15)
    completed = complete(state, replicate=0)
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

# Import methods to register the built-in imputation methods
from . import methods as _methods  # noqa: F401

from .registry import register_method, get_method, list_methods
from .chain import (
    ChainState,
    SamplerResult,
    KeyStore,
    default_key_store,
    key_from_seed,
    capture,
    restore,
    merge_chain_diagnostics,
    merge_logged_events,
    run_sampler,
    extend,
)
from .builder import initialize_chain, impute, complete, squeeze
from .diagnostics import compute_chain_rhat, print_rhat_summary
from .error_handling import (
    ChainError,
    InvalidStateError,
    DimensionMismatchError,
    diagnose_chain,
    print_diagnostics,
)
