# mms_proc/times.py
# ------------------------------------------------------------
# Epoch helpers shared by the level builders
# ------------------------------------------------------------
# All records carry datetime64[ns] epochs.  Inputs may arrive as
# TT2000 int64, datetime64 or unix seconds; window bounds may be
# ISO-8601 strings, datetimes or datetime64.
# ------------------------------------------------------------
from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

import numpy as np
import pandas as pd

TimeBound = Union[None, str, datetime, np.datetime64, pd.Timestamp]

_EPOCH2000 = np.datetime64('2000-01-01T12:00:00', 'ns')
_EPOCH1970 = np.datetime64('1970-01-01T00:00:00', 'ns')


def to_datetime64_ns(t) -> np.ndarray:
    """
    Convert TT2000-like int64, datetime64 or unix seconds to datetime64[ns].
    Any integer array whose values exceed ~1e17 is treated as TT2000
    (ns since 2000-01-01 12:00:00, leap seconds not applied).
    """
    t = np.asarray(t)
    if np.issubdtype(t.dtype, np.datetime64):
        return t.astype('datetime64[ns]')
    if t.size == 0:
        return t.astype('int64').astype('datetime64[ns]')

    if np.issubdtype(t.dtype, np.integer) and np.abs(t).max() > 1e17:
        return _EPOCH2000 + t.astype('int64').astype('timedelta64[ns]')
    return _EPOCH1970 + (t.astype('float64') * 1e9).astype('int64').astype('timedelta64[ns]')


def parse_bound(value: TimeBound) -> Optional[np.datetime64]:
    """ISO-8601 / datetime / datetime64 → naive UTC datetime64[ns]; None stays None."""
    if value is None:
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts.to_datetime64().astype('datetime64[ns]')


def window_mask(epoch: np.ndarray,
                tstart: TimeBound = None,
                tend: TimeBound = None) -> np.ndarray:
    """True for samples inside the closed window [tstart, tend]."""
    t = to_datetime64_ns(epoch)
    mask = np.ones(t.shape, dtype=bool)
    t0, t1 = parse_bound(tstart), parse_bound(tend)
    if t0 is not None and t1 is not None and t1 < t0:
        raise ValueError(f'time window ends before it starts: {tstart} > {tend}')
    if t0 is not None:
        mask &= t >= t0
    if t1 is not None:
        mask &= t <= t1
    return mask


def step_index(ref_epoch: np.ndarray, epoch: np.ndarray) -> np.ndarray:
    """
    Index of the last *ref_epoch* entry at or before each *epoch* sample
    (zero-order hold).  Samples preceding ref_epoch[0] get -1.
    """
    ref = to_datetime64_ns(ref_epoch)
    t = to_datetime64_ns(epoch)
    if ref.size > 1 and np.any(np.diff(ref) < np.timedelta64(0, 'ns')):
        raise ValueError('reference epochs must be monotonically increasing')
    return np.searchsorted(ref, t, side='right') - 1


def seconds_since(epoch: np.ndarray, ref: np.datetime64) -> np.ndarray:
    return (to_datetime64_ns(epoch) - ref) / np.timedelta64(1, 's')
