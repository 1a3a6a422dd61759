"""
Chain Subpackage - resumable imputation chain.

This package contains the core of the chain machinery:
- controller: extend() - validate, sample, merge, return a new state
- sampler: Default Gibbs sampling step (run_sampler)
- continuity: PRNG key store with capture/restore
- merge: Diagnostic and event-log merging across resumptions
- config: Configuration snapshot and sampler options
- types: Core data structures (ChainState, SamplerResult)
"""

# Import types first (needed by other modules)
from .types import ChainState, SamplerResult, Sampler, LOG_COLUMNS

from .continuity import (
    KeyStore,
    default_key_store,
    key_from_seed,
    capture,
    restore,
)
from .merge import merge_chain_diagnostics, merge_logged_events
from .config import configure_chain, clean_sampler_options, derive_mask
from .sampler import run_sampler
from .controller import extend, continuation_range

__all__ = [
    # Main entry point
    'extend',
    'continuation_range',
    # Types
    'ChainState',
    'SamplerResult',
    'Sampler',
    'LOG_COLUMNS',
    # Continuity
    'KeyStore',
    'default_key_store',
    'key_from_seed',
    'capture',
    'restore',
    # Merge
    'merge_chain_diagnostics',
    'merge_logged_events',
    # Config
    'configure_chain',
    'clean_sampler_options',
    'derive_mask',
    # Sampler
    'run_sampler',
]
