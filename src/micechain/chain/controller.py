"""
Chain Controller - resume and extend an imputation chain.

extend() takes a chain state produced by initialize_chain(), impute() or an
earlier extend() call, runs additional Gibbs rounds and returns a new state.
The generator state travels with the chain, so extending by k1 and then by
k2 rounds gives the same imputations and diagnostics as extending by k1 + k2
rounds in one call.

Steps:
1. validate the state (no work is done on an invalid state)
2. derive the configuration snapshot, including the mask when absent
3. restore the PRNG snapshot into the key store
4. run the sampler over rounds iteration+1 .. iteration+max_iter
5. capture the key store
6. merge diagnostics and event log, assemble the new state
"""

from dataclasses import replace
from typing import Any, Optional

import numpy as np
import pandas as pd

from ..error_handling import DimensionMismatchError, InvalidStateError, validate_chain_state
from ..methods import register_builtin_methods
from .config import configure_chain, clean_sampler_options, derive_mask
from .continuity import KeyStore, capture, default_key_store, restore
from .merge import merge_chain_diagnostics, merge_logged_events
from .sampler import run_sampler
from .types import ChainState, Sampler, freeze_array

import logging
logger = logging.getLogger('micechain')

__all__ = ['extend', 'continuation_range']


def continuation_range(iteration: int, max_iter: int):
    """Closed range of global round numbers run when extending by max_iter."""
    from_it = iteration + 1
    to_it = from_it + max_iter - 1
    return from_it, to_it


def _check_state_type(state) -> None:
    if not isinstance(state, ChainState):
        raise InvalidStateError(
            f"Object should be a ChainState, got {type(state).__name__}"
        )
    if not isinstance(state.data, pd.DataFrame):
        raise InvalidStateError(
            f"ChainState.data should be a pandas DataFrame, got {type(state.data).__name__}"
        )


def _check_sampler_imputations(state, imputations) -> None:
    errors = []
    for name in state.variable_names:
        expected = np.shape(state.imputations[name])
        actual = np.shape(imputations[name]) if name in imputations else None
        if actual != expected:
            errors.append(f"sampler returned {actual} for '{name}', expected {expected}")
    if errors:
        raise DimensionMismatchError("Sampler output does not fit the chain:\n  " + "\n  ".join(errors))


def extend(
    state: ChainState,
    max_iter: int = 1,
    print_flag: bool = False,
    sampler: Optional[Sampler] = None,
    key_store: Optional[KeyStore] = None,
    **sampler_options: Any,
) -> ChainState:
    """
    Run max_iter additional rounds of the chain.

    Args:
        state: Chain to continue; never modified
        max_iter: Number of rounds to add. Values < 1 return state unchanged.
        print_flag: Log per-round progress at INFO
        sampler: Sampling step (run_sampler if None)
        key_store: Generator to draw from (process-wide store if None). The
                   store is set from state.rng_snapshot before sampling, so
                   its previous contents do not affect the result.
        sampler_options: Passed to the sampler (donors, ridge, ...)

    Returns:
        New ChainState with iteration = state.iteration + max_iter

    Raises:
        InvalidStateError: If state is not a valid ChainState
        DimensionMismatchError: If mask, imputations or diagnostics disagree in shape
    """
    _check_state_type(state)
    if max_iter < 1:
        return state

    register_builtin_methods()

    # Mask is derived once and travels with the chain from then on
    mask = state.mask if state.mask is not None else derive_mask(state.data)
    mask = np.asarray(mask, dtype=bool)
    validate_chain_state(state, mask)

    setup = configure_chain(state, mask)
    options = clean_sampler_options(sampler_options)
    sampler = sampler if sampler is not None else run_sampler
    key_store = key_store if key_store is not None else default_key_store()

    from_it, to_it = continuation_range(int(state.iteration), int(max_iter))
    logger.info(f"Resuming chain at iteration {state.iteration}: running rounds {from_it}-{to_it}")

    restore(state.rng_snapshot, key_store)
    result = sampler(
        state.data, int(state.m), mask, state.imputations, setup,
        (from_it, to_it), key_store, print_flag=print_flag, **options,
    )
    if result.rng_snapshot is not None:
        rng_snapshot = freeze_array(result.rng_snapshot, dtype=np.uint32)
    else:
        rng_snapshot = capture(key_store)

    chain_mean, chain_var = merge_chain_diagnostics(
        state.chain_mean, state.chain_var,
        result.chain_mean, result.chain_var,
        prior_iterations=int(state.iteration),
        new_rounds=int(max_iter),
        n_visit=len(state.visit_sequence),
        m=int(state.m),
    )
    logged_events = merge_logged_events(state.logged_events, result.logged_events)

    _check_sampler_imputations(state, result.imputations)
    imputations = {
        name: freeze_array(result.imputations[name], dtype=np.float64)
        for name in state.variable_names
    }

    return replace(
        state,
        mask=state.mask if state.mask is not None else freeze_array(mask),
        imputations=imputations,
        iteration=int(state.iteration) + int(max_iter),
        chain_mean=freeze_array(chain_mean),
        chain_var=freeze_array(chain_var),
        rng_snapshot=rng_snapshot,
        logged_events=logged_events,
    )
