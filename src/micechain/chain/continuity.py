"""
Random-State Continuity.

The sampler draws every random number from a KeyStore: a holder of the
current JAX PRNG key that hands out fresh subkeys by splitting. The stored
key is the whole generator state, so a chain that saves it after a run and
restores it before the next one continues exactly the same stream of draws
as a chain that never stopped.

- KeyStore: mutable holder of the current key
- default_key_store: the process-wide store used when none is passed
- capture / restore: snapshot and reinstate a store's key
- key_from_seed: build a fresh snapshot from an integer seed

Stores are not thread-safe. Chains advanced concurrently must each use
their own KeyStore.
"""

from typing import Optional

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np


class KeyStore:
    """
    Holder of the current PRNG key.

    Every call to next_key() splits the held key into (carry, subkey), keeps
    the carry and returns the subkey, so the sequence of subkeys depends only
    on the key the store started from and the number of draws taken.
    """

    def __init__(self, snapshot: Optional[np.ndarray] = None):
        self._key = None
        if snapshot is not None:
            self.set_snapshot(snapshot)

    @property
    def is_set(self) -> bool:
        return self._key is not None

    def set_snapshot(self, snapshot: np.ndarray) -> None:
        snapshot = np.asarray(snapshot)
        if snapshot.shape != (2,):
            raise ValueError(f"PRNG snapshot must have shape (2,), got {snapshot.shape}")
        self._key = jnp.asarray(snapshot, dtype=jnp.uint32)

    def get_snapshot(self) -> np.ndarray:
        if self._key is None:
            raise RuntimeError("KeyStore has no key; restore a snapshot first")
        return np.asarray(jax.device_get(self._key), dtype=np.uint32)

    def next_key(self):
        """Split the held key and return a fresh subkey."""
        if self._key is None:
            raise RuntimeError("KeyStore has no key; restore a snapshot first")
        self._key, subkey = random.split(self._key)
        return subkey


_DEFAULT_STORE = KeyStore()


def default_key_store() -> KeyStore:
    """Return the process-wide key store."""
    return _DEFAULT_STORE


def key_from_seed(seed: int) -> np.ndarray:
    """Generate a PRNG snapshot from an integer seed."""
    return np.asarray(jax.device_get(random.PRNGKey(seed)), dtype=np.uint32)


def restore(snapshot: np.ndarray, store: Optional[KeyStore] = None) -> KeyStore:
    """
    Make snapshot the current generator state of store.

    Args:
        snapshot: Raw key captured by capture() or built by key_from_seed()
        store: Target store (process-wide store if None)

    Returns:
        The store that was restored
    """
    store = store if store is not None else _DEFAULT_STORE
    store.set_snapshot(snapshot)
    return store


def capture(store: Optional[KeyStore] = None) -> np.ndarray:
    """Read the current generator state of store as a read-only snapshot."""
    store = store if store is not None else _DEFAULT_STORE
    snapshot = store.get_snapshot()
    snapshot.setflags(write=False)
    return snapshot
