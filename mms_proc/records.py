# mms_proc/records.py
# ------------------------------------------------------------
# Per-stage FGM data products
# ------------------------------------------------------------
# • CoordFrame       : the coordinate frames a field can live in
# • RawRecord        : parsed L1A input (sensor-frame samples)
# • InstrumentRecord : immutable L1B / L2 product
# • RecordBuilder    : assembles a record frame-by-frame and
#                      checks lengths + frame lineage before
#                      handing it downstream
# ------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .status import RecordSchemaError
from .times import TimeBound, to_datetime64_ns, window_mask


class CoordFrame(str, Enum):
    SENSOR = '123'
    OMB = 'omb'
    SMPA = 'smpa'
    BCS = 'bcs'
    DMPA = 'dmpa'
    GSE = 'gse'

    def __str__(self) -> str:
        return self.value


# frame → the frame it is rotated out of
FRAME_PARENT: Dict[CoordFrame, Optional[CoordFrame]] = {
    CoordFrame.SENSOR: None,
    CoordFrame.OMB: CoordFrame.SENSOR,
    CoordFrame.SMPA: CoordFrame.OMB,
    CoordFrame.BCS: CoordFrame.SMPA,
    CoordFrame.DMPA: CoordFrame.SMPA,
    CoordFrame.GSE: CoordFrame.DMPA,
}


def with_magnitude(b: np.ndarray) -> np.ndarray:
    """(N, 3) or (N, ≥4) → (N, 4) with |B| recomputed in column 3."""
    b = np.asarray(b, dtype=float)
    if b.ndim != 2 or b.shape[1] < 3:
        raise ValueError(f'field must be (N, 3) or (N, 4), got {b.shape}')
    vec = b[:, :3]
    return np.column_stack([vec, np.linalg.norm(vec, axis=1)])


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a


# =========================================================================== #
#                               L1A input                                     #
# =========================================================================== #
@dataclass(frozen=True, eq=False)
class RawRecord:
    """Parsed L1A telemetry: sensor-frame samples plus status-cadence series."""
    epoch: np.ndarray            # (N,)
    b_123: np.ndarray            # (N, 3|4) sensor units
    epoch_stat: np.ndarray       # (M,)
    range: np.ndarray            # (M,) 1 = hi, 0 = lo
    sample_rate: np.ndarray      # (M,) samples / s

    def __post_init__(self):
        object.__setattr__(self, 'epoch', _readonly(to_datetime64_ns(self.epoch)))
        object.__setattr__(self, 'epoch_stat', _readonly(to_datetime64_ns(self.epoch_stat)))
        object.__setattr__(self, 'b_123', _readonly(np.asarray(self.b_123, dtype=float)))
        object.__setattr__(self, 'range', _readonly(np.asarray(self.range, dtype=int)))
        object.__setattr__(self, 'sample_rate', _readonly(np.asarray(self.sample_rate, dtype=float)))

        if self.b_123.ndim != 2 or self.b_123.shape[1] not in (3, 4):
            raise RecordSchemaError(f'b_123 must be (N, 3|4), got {self.b_123.shape}')
        if len(self.b_123) != len(self.epoch):
            raise RecordSchemaError(
                f'b_123 has {len(self.b_123)} rows, epoch has {len(self.epoch)}')
        n_stat = len(self.epoch_stat)
        if len(self.range) != n_stat or len(self.sample_rate) != n_stat:
            raise RecordSchemaError('range / sample_rate must align with epoch_stat')

    def clip(self, tstart: TimeBound = None, tend: TimeBound = None) -> 'RawRecord':
        """
        Restrict to [tstart, tend].  The status sample in effect at
        tstart is kept so the first field samples still have a range.
        """
        keep = window_mask(self.epoch, tstart, tend)
        keep_stat = window_mask(self.epoch_stat, tstart, tend)
        if tstart is not None and keep_stat.size:
            lead = np.searchsorted(self.epoch_stat, self.epoch[keep][:1], side='right') - 1
            if lead.size and lead[0] >= 0:
                keep_stat[lead[0]] = True
        return RawRecord(self.epoch[keep], self.b_123[keep],
                         self.epoch_stat[keep_stat], self.range[keep_stat],
                         self.sample_rate[keep_stat])


# =========================================================================== #
#                               L1B / L2                                      #
# =========================================================================== #
@dataclass(frozen=True, eq=False)
class InstrumentRecord:
    epoch: np.ndarray
    epoch_stat: np.ndarray
    range: np.ndarray
    sample_rate: np.ndarray
    epoch_mpa: np.ndarray
    mpa: np.ndarray
    fields: Mapping[CoordFrame, np.ndarray] = field(default_factory=dict)
    level: str = 'l1b'
    notes: Tuple[str, ...] = ()
    skipped: FrozenSet[CoordFrame] = frozenset()

    def __post_init__(self):
        self.validate()

    # ------------------------------------------------------------------ #
    def validate(self) -> None:
        n = len(self.epoch)
        for frame, data in self.fields.items():
            if data.shape != (n, 4):
                raise RecordSchemaError(
                    f'{frame} field has shape {data.shape}, expected ({n}, 4)')
        n_stat = len(self.epoch_stat)
        if len(self.range) != n_stat or len(self.sample_rate) != n_stat:
            raise RecordSchemaError('range / sample_rate must align with epoch_stat')
        if self.mpa.shape != (len(self.epoch_mpa), 3):
            raise RecordSchemaError(f'mpa has shape {self.mpa.shape}')
        overlap = self.skipped & set(self.fields)
        if overlap:
            raise RecordSchemaError(f'frames both present and skipped: {sorted(map(str, overlap))}')

    @property
    def frames(self) -> Tuple[CoordFrame, ...]:
        return tuple(self.fields)

    def has(self, frame: CoordFrame | str) -> bool:
        return CoordFrame(frame) in self.fields

    def get_field(self, frame: CoordFrame | str) -> np.ndarray:
        frame = CoordFrame(frame)
        try:
            return self.fields[frame]
        except KeyError:
            raise KeyError(f'{self.level} record has no {frame} field '
                           f'(present: {[str(f) for f in self.fields]})') from None

    def to_dataframe(self, frame: CoordFrame | str) -> pd.DataFrame:
        """One frame as a DataFrame indexed by epoch (columns x, y, z, mag)."""
        frame = CoordFrame(frame)
        idx = pd.DatetimeIndex(self.epoch, name='epoch')
        return pd.DataFrame(self.get_field(frame), index=idx,
                            columns=['x', 'y', 'z', 'mag'])


class RecordBuilder:
    """
    Incremental assembly of an InstrumentRecord.

    Every frame handed to :meth:`add` is *computed*; only those added with
    ``include=True`` end up in the output.  Lineage is checked against the
    computed set, so a DMPA field can be published without its SMPA parent
    as long as SMPA was computed in the same build.  Frames carried over
    from an upstream record were checked upstream and are exempt.
    """

    def __init__(self, epoch, epoch_stat, range_flags, sample_rate, *,
                 level: str):
        self._epoch = to_datetime64_ns(epoch)
        self._epoch_stat = to_datetime64_ns(epoch_stat)
        self._range = np.asarray(range_flags, dtype=int)
        self._rate = np.asarray(sample_rate, dtype=float)
        self._level = level
        self._computed: Dict[CoordFrame, np.ndarray] = {}
        self._include: Dict[CoordFrame, bool] = {}
        self._inherited: set = set()
        self._epoch_mpa: Optional[np.ndarray] = None
        self._mpa: Optional[np.ndarray] = None
        self._notes: list = []
        self._skipped: set = set()

    @classmethod
    def from_record(cls, rec: InstrumentRecord, *, level: str) -> 'RecordBuilder':
        b = cls(rec.epoch, rec.epoch_stat, rec.range, rec.sample_rate, level=level)
        b.set_spin_axis(rec.epoch_mpa, rec.mpa)
        for frame, data in rec.fields.items():
            b._computed[frame] = data
            b._include[frame] = True
            b._inherited.add(frame)
        b._notes.extend(rec.notes)
        return b

    # ------------------------------------------------------------------ #
    def add(self, frame: CoordFrame | str, data: np.ndarray,
            *, include: bool = True) -> 'RecordBuilder':
        frame = CoordFrame(frame)
        data = with_magnitude(data)
        if len(data) != len(self._epoch):
            raise RecordSchemaError(
                f'{frame} field has {len(data)} samples, epoch has {len(self._epoch)}')
        self._computed[frame] = data
        self._include[frame] = bool(include)
        self._inherited.discard(frame)
        return self

    def include(self, frame: CoordFrame | str, flag: bool) -> 'RecordBuilder':
        """Change whether an already-computed frame is published."""
        frame = CoordFrame(frame)
        if frame not in self._computed:
            raise RecordSchemaError(f'{frame} was never computed')
        self._include[frame] = bool(flag)
        return self

    def fill(self, frame: CoordFrame | str, rows: np.ndarray,
             value: float) -> 'RecordBuilder':
        """Overwrite *rows* of a computed frame, magnitude included, with *value*."""
        frame = CoordFrame(frame)
        if frame not in self._computed:
            raise RecordSchemaError(f'{frame} was never computed')
        data = np.array(self._computed[frame], copy=True)
        data[np.asarray(rows, dtype=bool)] = value
        self._computed[frame] = data
        return self

    def set_spin_axis(self, epoch_mpa, mpa) -> 'RecordBuilder':
        self._epoch_mpa = to_datetime64_ns(epoch_mpa)
        self._mpa = np.asarray(mpa, dtype=float).reshape(-1, 3)
        return self

    def skip(self, frame: CoordFrame | str, note: str) -> 'RecordBuilder':
        frame = CoordFrame(frame)
        self._skipped.add(frame)
        self._include.pop(frame, None)
        self._computed.pop(frame, None)
        self._notes.append(note)
        return self

    def note(self, message: str) -> 'RecordBuilder':
        self._notes.append(message)
        return self

    def computed(self) -> Iterable[CoordFrame]:
        return tuple(self._computed)

    # ------------------------------------------------------------------ #
    def _check_lineage(self) -> None:
        for frame in self._computed:
            if frame in self._inherited:
                continue
            parent = FRAME_PARENT[frame]
            if parent is not None and parent not in self._computed:
                raise RecordSchemaError(
                    f'{frame} field requires its {parent} parent in the same build')

    def build(self) -> InstrumentRecord:
        if self._mpa is None:
            raise RecordSchemaError('spin-axis estimate (mpa) is mandatory')
        self._check_lineage()
        fields = {f: _readonly(d) for f, d in self._computed.items() if self._include[f]}
        return InstrumentRecord(
            epoch=_readonly(self._epoch),
            epoch_stat=_readonly(self._epoch_stat),
            range=_readonly(self._range),
            sample_rate=_readonly(self._rate),
            epoch_mpa=_readonly(self._epoch_mpa),
            mpa=_readonly(self._mpa),
            fields=fields,
            level=self._level,
            notes=tuple(self._notes),
            skipped=frozenset(self._skipped),
        )
