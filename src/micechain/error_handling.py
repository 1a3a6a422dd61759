"""
Error Handling and Validation Utilities for Imputation Chains

This module provides the exception types raised by the chain controller,
validation functions run before any sampling work, and diagnostic tools
for inspecting a finished chain.
"""

from typing import Any, Dict

import numpy as np

import logging
logger = logging.getLogger('micechain')


class ChainError(ValueError):
    """Base class for errors raised while extending an imputation chain."""


class InvalidStateError(ChainError):
    """Input is not a recognized chain state, or one of its fields is malformed."""


class DimensionMismatchError(ChainError):
    """Mask, data, imputation or diagnostic shapes disagree."""


def validate_chain_state(state, mask: np.ndarray) -> None:
    """
    Validates that a chain state is structurally sound and internally consistent.

    Structural problems are collected and raised together as InvalidStateError.
    Shape disagreements are checked only once the structure is known to be
    sound, and raised together as DimensionMismatchError.

    Args:
        state: ChainState to validate
        mask: Missingness mask to validate against (the state's own mask,
              or the one derived from its data)

    Raises:
        InvalidStateError: If a structural field is invalid
        DimensionMismatchError: If shapes disagree
    """
    from .registry import list_methods

    errors = []
    n_rows, n_cols = state.data.shape

    if not isinstance(state.m, (int, np.integer)) or isinstance(state.m, bool) or state.m < 1:
        errors.append(f"m must be an integer >= 1, got {state.m!r}")

    if not isinstance(state.iteration, (int, np.integer)) or state.iteration < 0:
        errors.append(f"iteration must be an integer >= 0, got {state.iteration!r}")

    if len(state.method) != n_cols:
        errors.append(f"method has {len(state.method)} entries, data has {n_cols} columns")
    else:
        known = set(list_methods())
        unknown = [meth for meth in state.method if meth and meth not in known]
        if unknown:
            errors.append(f"Unknown imputation method(s): {unknown}. Available: {sorted(known)}")

    for j in state.visit_sequence:
        if not isinstance(j, (int, np.integer)) or j < 0 or j >= n_cols:
            errors.append(f"visit_sequence entry {j!r} is not a column index in [0, {n_cols})")

    predictor_matrix = np.asarray(state.predictor_matrix)
    if predictor_matrix.shape != (n_cols, n_cols):
        errors.append(
            f"predictor_matrix must be ({n_cols}, {n_cols}), got {predictor_matrix.shape}"
        )

    if state.rng_snapshot is None:
        errors.append("rng_snapshot is missing")

    if errors:
        raise InvalidStateError("Invalid chain state:\n  " + "\n  ".join(errors))

    # Shape checks
    errors = []
    m = int(state.m)
    n_vis = len(state.visit_sequence)

    if mask.shape != (n_rows, n_cols):
        errors.append(f"mask shape {mask.shape} does not match data shape {(n_rows, n_cols)}")
    else:
        n_where = mask.sum(axis=0)
        for j, name in enumerate(state.variable_names):
            if name not in state.imputations:
                errors.append(f"imputations missing entry for column '{name}'")
                continue
            expected = (int(n_where[j]), m)
            actual = np.shape(state.imputations[name])
            if actual != expected:
                errors.append(f"imputations['{name}'] has shape {actual}, expected {expected}")

    expected_diag = (n_vis, int(state.iteration), m)
    for label, arr in (('chain_mean', state.chain_mean), ('chain_var', state.chain_var)):
        # An iteration-0 chain has no history to keep
        if arr is None and state.iteration == 0:
            continue
        if np.shape(arr) != expected_diag:
            errors.append(f"{label} has shape {np.shape(arr)}, expected {expected_diag}")

    if errors:
        raise DimensionMismatchError("Chain state dimensions disagree:\n  " + "\n  ".join(errors))


def validate_sampler_options(options: Dict[str, Any]) -> None:
    """
    Validates that sampler tuning options are sensible.

    Args:
        options: Sampler options dictionary (after clean_sampler_options)

    Raises:
        ValueError: If options are invalid
    """
    errors = []

    if 'donors' in options and options['donors'] < 1:
        errors.append(f"donors must be >= 1, got {options['donors']}")

    if 'ridge' in options and options['ridge'] < 0:
        errors.append(f"ridge must be >= 0, got {options['ridge']}")

    if errors:
        raise ValueError("Invalid sampler options:\n  " + "\n  ".join(errors))


def diagnose_chain(state, diagnostics: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Analyzes a chain state to identify common issues.

    Args:
        state: ChainState to inspect
        diagnostics: Optional existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = (diagnostics or {}) | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    for name, meth in zip(state.variable_names, state.method):
        values = np.asarray(state.imputations[name])
        # Columns without a method are never imputed and hold NaN
        if not meth or values.size == 0:
            continue
        if not np.all(np.isfinite(values)):
            diagnostics['issues'].append(
                f"Imputations for '{name}' contain NaN or Inf values"
            )
        # Replicates that never move signal a degenerate conditional model
        if values.shape[0] > 1:
            stuck = int(np.sum(np.var(values, axis=0) < 1e-12))
            if stuck > 0:
                diagnostics['warnings'].append(
                    f"'{name}': {stuck} replicate(s) have near-zero variance"
                )

    n_events = 0 if state.logged_events is None else len(state.logged_events)
    if n_events:
        diagnostics['warnings'].append(f"{n_events} logged event(s) during sampling")

    diagnostics['info'].append(f"Completed iterations: {state.iteration}")
    diagnostics['info'].append(f"Number of replicates: {state.m}")
    diagnostics['info'].append(f"Visited variables: {len(state.visit_sequence)}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log diagnostics from diagnose_chain, grouped by severity."""
    logger.info("\n--- Imputation chain diagnostics ---")
    if diagnostics['issues']:
        logger.error("\n[ERROR] Imputation problems:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("\n[WARN] Chain warnings (see logged_events for per-round detail):")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("\n[INFO] Chain summary:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("\n[OK] Imputations finite and every replicate moving")
