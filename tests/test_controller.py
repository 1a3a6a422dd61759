"""
Tests for the chain controller (extend).

Covers resumption equivalence, the identity on non-positive round counts,
validation before any sampling work, mask derivation, and merging of the
history a sampler hands back.

Run with: pytest tests/test_controller.py -v
"""

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from micechain import (
    ChainState,
    DimensionMismatchError,
    InvalidStateError,
    KeyStore,
    SamplerResult,
    capture,
    extend,
    impute,
    initialize_chain,
    key_from_seed,
    restore,
)
from micechain.chain import continuation_range


def assert_same_chain(a, b):
    """Two chains hold bit-identical imputations, diagnostics and generator state."""
    assert a.iteration == b.iteration
    for name in a.variable_names:
        np.testing.assert_array_equal(a.imputations[name], b.imputations[name])
    np.testing.assert_array_equal(a.chain_mean, b.chain_mean)
    np.testing.assert_array_equal(a.chain_var, b.chain_var)
    np.testing.assert_array_equal(a.rng_snapshot, b.rng_snapshot)
    if a.logged_events is None:
        assert b.logged_events is None
    else:
        pd.testing.assert_frame_equal(a.logged_events, b.logged_events)


class RecordingSampler:
    """Sampler that writes the global round number into every diagnostic cell."""

    def __init__(self, events_per_call=0):
        self.calls = []
        self.events_per_call = events_per_call

    def __call__(self, data, m, mask, imputations, setup, iteration_range,
                 key_store, print_flag=False, **options):
        self.calls.append(iteration_range)
        from_it, to_it = iteration_range
        n_vis = len(setup['visit_sequence'])
        rounds = np.arange(from_it, to_it + 1, dtype=np.float64)
        chain_mean = np.broadcast_to(rounds[None, :, None], (n_vis, rounds.size, m)).copy()
        chain_var = -chain_mean
        events = [
            {'it': from_it, 'im': 1, 'dep': 'y', 'meth': 'pmm', 'out': f"event {k}"}
            for k in range(self.events_per_call)
        ]
        return SamplerResult(
            imputations={k: np.array(v) for k, v in imputations.items()},
            chain_mean=chain_mean,
            chain_var=chain_var,
            logged_events=events,
        )


# ============================================================================
# RESUMPTION EQUIVALENCE
# ============================================================================

class TestResumptionEquivalence:
    """Extending by k1 then k2 rounds equals extending by k1 + k2 rounds."""

    def test_one_plus_one_equals_two(self, start_state):
        """Chain with 10 missing cells and m=5."""
        assert int(start_state.mask.sum()) == 10
        assert start_state.m == 5

        once = extend(start_state, 2, key_store=KeyStore())
        twice = extend(extend(start_state, 1, key_store=KeyStore()), 1, key_store=KeyStore())

        assert_same_chain(once, twice)
        assert once.chain_mean.shape == (2, 2, 5)

    @pytest.mark.parametrize("k1,k2", [(1, 2), (2, 1), (2, 3)])
    def test_split_runs_match_single_run(self, start_state, k1, k2):
        single = extend(start_state, k1 + k2, key_store=KeyStore())
        first = extend(start_state, k1, key_store=KeyStore())
        split = extend(first, k2, key_store=KeyStore())
        assert_same_chain(single, split)

    def test_key_store_contents_do_not_matter(self, start_state):
        """The store is set from the chain's snapshot before sampling."""
        clean = extend(start_state, 2, key_store=KeyStore())

        polluted = KeyStore(key_from_seed(999))
        for _ in range(7):
            polluted.next_key()
        dirty = extend(start_state, 2, key_store=polluted)

        assert_same_chain(clean, dirty)

    def test_default_store_between_calls(self, start_state):
        """Draws taken from the process-wide store between calls do not leak in."""
        single = extend(start_state, 2)
        first = extend(start_state, 1)
        restore(key_from_seed(12345))
        second = extend(first, 1)
        assert_same_chain(single, second)

    def test_impute_then_extend_matches_longer_impute(self, incomplete_data):
        long_run = impute(incomplete_data, m=3, max_iter=3, seed=11, key_store=KeyStore())
        short_run = impute(incomplete_data, m=3, max_iter=1, seed=11, key_store=KeyStore())
        resumed = extend(short_run, 2, key_store=KeyStore())
        assert_same_chain(long_run, resumed)

    def test_equivalence_with_logged_events(self, constant_column_data):
        """Event logs concatenate exactly like the single-run log."""
        start = initialize_chain(constant_column_data, m=2, seed=3, key_store=KeyStore())
        single = extend(start, 3, key_store=KeyStore())
        split = extend(extend(start, 2, key_store=KeyStore()), 1, key_store=KeyStore())

        assert single.logged_events is not None
        assert_same_chain(single, split)

    def test_equivalence_with_norm_method(self, incomplete_data):
        start = initialize_chain(
            incomplete_data, m=2, method=['', 'norm', 'norm'], seed=5, key_store=KeyStore()
        )
        single = extend(start, 3, key_store=KeyStore())
        split = extend(extend(start, 1, key_store=KeyStore()), 2, key_store=KeyStore())
        assert_same_chain(single, split)

    def test_snapshot_advances(self, start_state):
        result = extend(start_state, 1, key_store=KeyStore())
        assert not np.array_equal(result.rng_snapshot, start_state.rng_snapshot)

    def test_store_left_at_new_snapshot(self, start_state):
        store = KeyStore()
        result = extend(start_state, 1, key_store=store)
        np.testing.assert_array_equal(capture(store), result.rng_snapshot)


# ============================================================================
# ITERATION COUNT AND IDENTITY
# ============================================================================

class TestIterationCount:
    """Iteration bookkeeping and the non-positive max_iter identity."""

    @pytest.mark.parametrize("max_iter", [0, -1, -10])
    def test_non_positive_is_identity(self, start_state, max_iter):
        store = KeyStore(key_from_seed(1))
        before = capture(store)

        result = extend(start_state, max_iter, key_store=store)

        assert result is start_state
        np.testing.assert_array_equal(capture(store), before)

    @pytest.mark.parametrize("max_iter", [-1, 0, 1, 3])
    def test_iteration_is_monotonic(self, start_state, max_iter):
        result = extend(start_state, max_iter, key_store=KeyStore())
        assert result.iteration == start_state.iteration + max(max_iter, 0)

    def test_history_length_matches_iteration(self, start_state):
        result = extend(extend(start_state, 2, key_store=KeyStore()), 3, key_store=KeyStore())
        n_vis = len(start_state.visit_sequence)
        assert result.iteration == 5
        assert result.chain_mean.shape == (n_vis, 5, start_state.m)
        assert result.chain_var.shape == (n_vis, 5, start_state.m)

    def test_continuation_range(self):
        assert continuation_range(0, 1) == (1, 1)
        assert continuation_range(5, 3) == (6, 8)

    def test_sampler_receives_global_rounds(self, start_state):
        sampler = RecordingSampler()
        first = extend(start_state, 2, sampler=sampler, key_store=KeyStore())
        extend(first, 3, sampler=sampler, key_store=KeyStore())
        assert sampler.calls == [(1, 2), (3, 5)]


# ============================================================================
# HISTORY MERGING THROUGH THE CONTROLLER
# ============================================================================

class TestHistoryThroughController:
    """The controller keeps old rounds verbatim and appends the sampler's slice."""

    def test_old_rounds_preserved(self, start_state):
        real = extend(start_state, 2, key_store=KeyStore())
        result = extend(real, 2, sampler=RecordingSampler(), key_store=KeyStore())

        np.testing.assert_array_equal(result.chain_mean[:, :2, :], real.chain_mean)
        np.testing.assert_array_equal(result.chain_var[:, :2, :], real.chain_var)
        expected = np.broadcast_to(3.0 + np.arange(2)[None, :, None], result.chain_mean[:, 2:, :].shape)
        np.testing.assert_array_equal(result.chain_mean[:, 2:, :], expected)

    def test_no_events_keeps_log_absent(self, start_state):
        result = extend(start_state, 2, sampler=RecordingSampler(), key_store=KeyStore())
        assert result.logged_events is None

    def test_events_present_iff_logged(self, start_state):
        quiet = extend(start_state, 1, sampler=RecordingSampler(), key_store=KeyStore())
        noisy = extend(quiet, 1, sampler=RecordingSampler(events_per_call=2), key_store=KeyStore())
        quiet_again = extend(noisy, 1, sampler=RecordingSampler(), key_store=KeyStore())
        more = extend(quiet_again, 1, sampler=RecordingSampler(events_per_call=1), key_store=KeyStore())

        assert quiet.logged_events is None
        assert len(noisy.logged_events) == 2
        assert len(quiet_again.logged_events) == 2
        assert len(more.logged_events) == 3
        assert list(more.logged_events.index) == [0, 1, 2]
        assert list(more.logged_events['it']) == [2, 2, 4]
        assert list(more.logged_events.columns) == ['it', 'im', 'dep', 'meth', 'out']

    def test_sampler_snapshot_is_used(self, start_state):
        own = np.array([3, 4], dtype=np.uint32)

        def sampler(data, m, mask, imputations, setup, iteration_range, key_store,
                    print_flag=False, **options):
            n_rounds = iteration_range[1] - iteration_range[0] + 1
            shape = (len(setup['visit_sequence']), n_rounds, m)
            return SamplerResult(
                imputations=dict(imputations),
                chain_mean=np.zeros(shape),
                chain_var=np.zeros(shape),
                rng_snapshot=own,
            )

        result = extend(start_state, 1, sampler=sampler, key_store=KeyStore())
        np.testing.assert_array_equal(result.rng_snapshot, own)

    def test_wrong_slice_length_rejected(self, start_state):
        def sampler(data, m, mask, imputations, setup, iteration_range, key_store,
                    print_flag=False, **options):
            shape = (len(setup['visit_sequence']), 1, m)
            return SamplerResult(dict(imputations), np.zeros(shape), np.zeros(shape))

        with pytest.raises(DimensionMismatchError, match="diagnostics of shape"):
            extend(start_state, 3, sampler=sampler, key_store=KeyStore())

    @pytest.mark.parametrize("extra_rows,extra_reps", [(1, 0), (0, 1), (-1, 0)])
    def test_wrong_slice_width_rejected_at_iteration_zero(self, start_state, extra_rows, extra_reps):
        """A first extension fails instead of returning a state with a bad history."""
        def sampler(data, m, mask, imputations, setup, iteration_range, key_store,
                    print_flag=False, **options):
            shape = (len(setup['visit_sequence']) + extra_rows, 1, m + extra_reps)
            return SamplerResult(dict(imputations), np.zeros(shape), np.zeros(shape))

        assert start_state.iteration == 0
        with pytest.raises(DimensionMismatchError, match="diagnostics of shape"):
            extend(start_state, 1, sampler=sampler, key_store=KeyStore())

    def test_wrong_imputation_shape_rejected(self, start_state):
        def sampler(data, m, mask, imputations, setup, iteration_range, key_store,
                    print_flag=False, **options):
            shape = (len(setup['visit_sequence']), 1, m)
            bad = dict(imputations)
            bad['y'] = np.zeros((1, m))
            return SamplerResult(bad, np.zeros(shape), np.zeros(shape))

        with pytest.raises(DimensionMismatchError, match="sampler returned"):
            extend(start_state, 1, sampler=sampler, key_store=KeyStore())


# ============================================================================
# MASK HANDLING AND IMMUTABILITY
# ============================================================================

class TestMaskAndImmutability:
    """Mask derivation and the guarantee that inputs are never modified."""

    def test_mask_derived_when_absent(self, start_state, incomplete_data):
        no_mask = replace(start_state, mask=None)
        result = extend(no_mask, 1, key_store=KeyStore())

        np.testing.assert_array_equal(result.mask, incomplete_data.isna().to_numpy())
        assert no_mask.mask is None

    def test_derived_mask_gives_same_draws(self, start_state):
        with_mask = extend(start_state, 2, key_store=KeyStore())
        derived = extend(replace(start_state, mask=None), 2, key_store=KeyStore())
        assert_same_chain(with_mask, derived)

    def test_input_state_unchanged(self, start_state):
        imputations = {k: v.copy() for k, v in start_state.imputations.items()}
        snapshot = start_state.rng_snapshot.copy()
        data = start_state.data.copy()

        extend(start_state, 2, key_store=KeyStore())

        assert start_state.iteration == 0
        assert start_state.chain_mean.shape[1] == 0
        assert start_state.logged_events is None
        np.testing.assert_array_equal(start_state.rng_snapshot, snapshot)
        pd.testing.assert_frame_equal(start_state.data, data)
        for name, values in imputations.items():
            np.testing.assert_array_equal(start_state.imputations[name], values)

    def test_result_arrays_read_only(self, start_state):
        result = extend(start_state, 1, key_store=KeyStore())
        assert not result.chain_mean.flags.writeable
        assert not result.rng_snapshot.flags.writeable
        assert not result.imputations['y'].flags.writeable
        with pytest.raises(ValueError):
            result.imputations['y'][0, 0] = 0.0

    def test_configuration_carried_over(self, start_state):
        result = extend(start_state, 1, key_store=KeyStore())
        assert result.m == start_state.m
        assert result.method == start_state.method
        assert result.visit_sequence == start_state.visit_sequence
        assert result.data is start_state.data
        assert result.seed == start_state.seed


# ============================================================================
# VALIDATION BEFORE SAMPLING
# ============================================================================

class TestValidation:
    """Invalid states are rejected before the sampler runs."""

    def test_not_a_state(self):
        with pytest.raises(InvalidStateError, match="ChainState"):
            extend({'data': None}, 1)

    def test_data_not_a_dataframe(self, start_state):
        with pytest.raises(InvalidStateError, match="DataFrame"):
            extend(replace(start_state, data=np.zeros((30, 3))), 1)

    @pytest.mark.parametrize("m", [0, -2, 2.5])
    def test_bad_replicate_count(self, start_state, m):
        sampler = RecordingSampler()
        with pytest.raises(InvalidStateError, match="m must be"):
            extend(replace(start_state, m=m), 1, sampler=sampler)
        assert sampler.calls == []

    def test_unknown_method(self, start_state):
        with pytest.raises(InvalidStateError, match="Unknown imputation method"):
            extend(replace(start_state, method=('', 'bogus', 'pmm')), 1)

    def test_missing_snapshot(self, start_state):
        with pytest.raises(InvalidStateError, match="rng_snapshot"):
            extend(replace(start_state, rng_snapshot=None), 1)

    def test_visit_sequence_out_of_range(self, start_state):
        with pytest.raises(InvalidStateError, match="visit_sequence"):
            extend(replace(start_state, visit_sequence=(1, 7)), 1)

    def test_mask_shape_mismatch(self, start_state):
        sampler = RecordingSampler()
        bad = replace(start_state, mask=np.zeros((4, 3), dtype=bool))
        with pytest.raises(DimensionMismatchError, match="mask shape"):
            extend(bad, 1, sampler=sampler)
        assert sampler.calls == []

    def test_imputation_shape_mismatch(self, start_state):
        sampler = RecordingSampler()
        imputations = dict(start_state.imputations)
        imputations['z'] = np.zeros((4, start_state.m))
        with pytest.raises(DimensionMismatchError, match="imputations\\['z'\\]"):
            extend(replace(start_state, imputations=imputations), 1, sampler=sampler)
        assert sampler.calls == []

    def test_history_length_mismatch(self, start_state):
        sampler = RecordingSampler()
        ran = extend(start_state, 2, key_store=KeyStore())
        with pytest.raises(DimensionMismatchError, match="chain_mean"):
            extend(replace(ran, iteration=3), 1, sampler=sampler)
        assert sampler.calls == []

    def test_errors_are_value_errors(self):
        assert issubclass(InvalidStateError, ValueError)
        assert issubclass(DimensionMismatchError, ValueError)

    def test_bad_sampler_options(self, start_state):
        with pytest.raises(ValueError, match="donors"):
            extend(start_state, 1, key_store=KeyStore(), donors=0)

    def test_state_type(self, start_state):
        assert isinstance(extend(start_state, 1, key_store=KeyStore()), ChainState)


# ============================================================================
# STATES BUILT WITHOUT A HISTORY
# ============================================================================

class TestDefaultHistoryFields:
    """An iteration-0 ChainState may leave chain_mean/chain_var unset."""

    @pytest.fixture
    def bare_state(self, start_state, incomplete_data):
        return ChainState(
            data=incomplete_data,
            mask=None,
            imputations=start_state.imputations,
            m=start_state.m,
            visit_sequence=start_state.visit_sequence,
            method=start_state.method,
            predictor_matrix=start_state.predictor_matrix,
            rng_snapshot=key_from_seed(1),
        )

    def test_extends_from_unset_history(self, bare_state):
        assert bare_state.chain_mean is None

        result = extend(bare_state, 1, key_store=KeyStore())

        assert result.iteration == 1
        assert result.chain_mean.shape == (2, 1, 5)
        assert result.chain_var.shape == (2, 1, 5)

    def test_same_as_empty_history(self, bare_state):
        empty = np.zeros((2, 0, 5))
        with_empty = replace(bare_state, chain_mean=empty, chain_var=empty)

        assert_same_chain(
            extend(bare_state, 2, key_store=KeyStore()),
            extend(with_empty, 2, key_store=KeyStore()),
        )

    def test_unset_history_rejected_after_rounds(self, bare_state):
        with pytest.raises(DimensionMismatchError, match="chain_mean"):
            extend(replace(bare_state, iteration=2), 1, key_store=KeyStore())
