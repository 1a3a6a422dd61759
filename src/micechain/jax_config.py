"""
JAX Configuration - MUST be imported before any JAX imports.

Imputation draws are compared bit for bit when a chain is resumed, so
micechain runs JAX in double precision. Kernels are cached on disk under
MICECHAIN_JAX_CACHE (default ~/.cache/jax/micechain_cache); set it to an
empty string to leave JAX's own cache settings alone.
"""
import os
from pathlib import Path

os.environ.setdefault("JAX_ENABLE_X64", "1")

# Imputation runs on CPU in practice; keep XLA's startup chatter quiet
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

CACHE_ENV = "MICECHAIN_JAX_CACHE"


def cache_dir():
    """Directory for compiled imputation kernels, or None if disabled."""
    configured = os.environ.get(CACHE_ENV)
    if configured == "":
        return None
    if configured is None:
        return Path.home() / ".cache" / "jax" / "micechain_cache"
    return Path(configured).expanduser()


_cache = cache_dir()
if _cache is not None:
    _cache.mkdir(parents=True, exist_ok=True)
    os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_cache))
    os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
