# mms_proc/calibration.py
# ------------------------------------------------------------
# Two-range (hi / lo) FGM calibration
# ------------------------------------------------------------
# • CalibrationTable   : per-interval gain, offset, orthogonalisation
#                        matrix and spin-axis (MPA) estimate
# • apply_calibration  : sensor (123) counts → OMB field + MPA series
#
# Table ingestion lives outside this package; tables arrive here
# already parsed.  A table interval i is in effect from epoch[i]
# until epoch[i+1] (the last one until `tend`, or forever).
# ------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .records import with_magnitude
from .status import CalibrationError
from .times import TimeBound, parse_bound, step_index, to_datetime64_ns


def _ro(a, dtype=float) -> np.ndarray:
    out = np.array(a, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class CalibrationTable:
    epoch: np.ndarray                 # (M,)  start of validity
    gain: np.ndarray                  # (M, 3)
    offset: np.ndarray                # (M, 3) sensor units
    ortho: np.ndarray                 # (M, 3, 3)
    mpa: np.ndarray                   # (M, 3) spin axis in OMB/BCS
    tend: Optional[np.datetime64] = None
    range_name: str = 'hi'

    def __post_init__(self):
        epoch = to_datetime64_ns(np.atleast_1d(self.epoch))
        m = len(epoch)
        object.__setattr__(self, 'epoch', _ro(epoch, 'datetime64[ns]'))
        object.__setattr__(self, 'gain', _ro(np.reshape(self.gain, (m, 3))))
        object.__setattr__(self, 'offset', _ro(np.reshape(self.offset, (m, 3))))
        object.__setattr__(self, 'ortho', _ro(np.reshape(self.ortho, (m, 3, 3))))
        object.__setattr__(self, 'mpa', _ro(np.reshape(self.mpa, (m, 3))))
        object.__setattr__(self, 'tend', parse_bound(self.tend))

        if m > 1 and np.any(np.diff(self.epoch) <= np.timedelta64(0, 'ns')):
            raise ValueError(f'{self.range_name}-range calibration epochs must increase')
        if m and self.tend is not None and self.tend <= self.epoch[-1]:
            raise ValueError('calibration tend precedes its last interval')

    def __len__(self) -> int:
        return len(self.epoch)

    # ------------------------------------------------------------------ #
    def interval_index(self, t: np.ndarray) -> np.ndarray:
        """Interval in effect at each time; -1 where there is none."""
        t = to_datetime64_ns(t)
        if len(self) == 0:
            return np.full(t.shape, -1, dtype=int)
        idx = step_index(self.epoch, t)
        if self.tend is not None:
            idx = np.where(t > self.tend, -1, idx)
        return idx

    def clip(self, tstart: TimeBound = None, tend: TimeBound = None) -> 'CalibrationTable':
        """Keep every interval that overlaps [tstart, tend]."""
        t0, t1 = parse_bound(tstart), parse_bound(tend)
        m = len(self)
        first, last = 0, m - 1
        if m and t0 is not None:
            first = max(int(step_index(self.epoch, np.array([t0]))[0]), 0)
        if m and t1 is not None:
            last = int(step_index(self.epoch, np.array([t1]))[0])
        if m and t0 is not None and self.tend is not None and t0 > self.tend:
            last = -1                                   # window after coverage

        if last < first:
            sel = slice(0, 0)
            new_end = None
        else:
            sel = slice(first, last + 1)
            new_end = self.epoch[last + 1] if last + 1 < m else self.tend
        return CalibrationTable(self.epoch[sel], self.gain[sel], self.offset[sel],
                                self.ortho[sel], self.mpa[sel],
                                tend=new_end, range_name=self.range_name)


# =========================================================================== #
#                              Calibration                                    #
# =========================================================================== #
def range_per_sample(epoch: np.ndarray,
                     epoch_stat: np.ndarray,
                     range_flags: np.ndarray) -> np.ndarray:
    """
    Step-hold status-cadence range flags onto the field epochs.
    Samples before the first status sample take the first flag.
    """
    flags = np.asarray(range_flags, dtype=int)
    if len(epoch) and not len(flags):
        raise CalibrationError('[calibration] no range flags – cannot pick hi/lo table')
    idx = np.clip(step_index(epoch_stat, epoch), 0, None)
    return flags[idx] if len(epoch) else np.empty(0, dtype=int)


def apply_calibration(b_123: np.ndarray,
                      epoch: np.ndarray,
                      range_flags: np.ndarray,
                      epoch_stat: np.ndarray,
                      cal_hi: CalibrationTable,
                      cal_lo: CalibrationTable
                      ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Calibrate sensor-frame samples into the orthogonalised (OMB) frame.

        B_omb = ortho · ((B_123 − offset) · gain)

    using, for every sample, the hi- or lo-range table interval in effect
    at that time.

    Returns
    -------
    b_omb     : (N, 4)  [Bx, By, Bz, |B|]
    epoch_mpa : (K,)    start times of the intervals that were used
    mpa       : (K, 3)  spin-axis estimate per used interval
    mpa_index : (N,)    row of *mpa* belonging to the interval that
                        calibrated each sample

    Raises
    ------
    CalibrationError
        if any sample falls outside its table's coverage.
    """
    t = to_datetime64_ns(epoch)
    b = np.asarray(b_123, dtype=float)[:, :3]
    if len(b) != len(t):
        raise ValueError('b_123 and epoch must have the same length')

    is_hi = range_per_sample(t, epoch_stat, range_flags) == 1
    b_omb = np.full((len(t), 3), np.nan)
    mpa_index = np.zeros(len(t), dtype=int)
    t_used, mpa_used = [], []
    n_used = 0

    for table, sel in ((cal_hi, is_hi), (cal_lo, ~is_hi)):
        if not sel.any():
            continue
        idx = table.interval_index(t[sel])
        if (idx < 0).any():
            t_bad = t[sel][idx < 0]
            raise CalibrationError(
                f'[calibration] no {table.range_name}-range calibration covers '
                f'{t_bad[0]} ({len(t_bad)} samples affected)')
        v = (b[sel] - table.offset[idx]) * table.gain[idx]
        b_omb[sel] = np.einsum('nij,nj->ni', table.ortho[idx], v)

        used, local = np.unique(idx, return_inverse=True)
        mpa_index[sel] = n_used + local.ravel()
        n_used += len(used)
        t_used.append(table.epoch[used])
        mpa_used.append(table.mpa[used])

    if t_used:
        epoch_mpa = np.concatenate(t_used)
        mpa = np.vstack(mpa_used)
        order = np.argsort(epoch_mpa, kind='stable')
        epoch_mpa, mpa = epoch_mpa[order], mpa[order]
        rank = np.empty_like(order)
        rank[order] = np.arange(len(order))
        mpa_index = rank[mpa_index]
    else:
        epoch_mpa = np.empty(0, dtype='datetime64[ns]')
        mpa = np.empty((0, 3))

    return with_magnitude(b_omb), epoch_mpa, mpa, mpa_index
