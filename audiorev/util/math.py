"""Numeric helper functions used across DSP logic."""

import numpy as np

DB_FLOOR = 1e-20


def db20(x: np.ndarray) -> np.ndarray:
    """Return 20 * log10(x) with floor to keep inputs positive."""
    return 20.0 * np.log10(np.maximum(x, DB_FLOOR))


def from_db20(db: np.ndarray) -> np.ndarray:
    """Inverse of db20 for amplitude values."""
    return np.power(10.0, np.asarray(db, dtype=np.float64) / 20.0)


def level_db(value: float) -> float:
    """Scalar variant of db20."""
    return float(20.0 * np.log10(max(float(value), DB_FLOOR)))
