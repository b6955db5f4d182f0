# mms_proc/config.py
# ------------------------------------------------------------
# Instrument constants and processing knobs
# ------------------------------------------------------------
# One immutable object, passed explicitly to fg_l1b / fg_l2 /
# edi_classify.  Nothing in the package reads module-level
# mutable state, so a config can be shared freely between
# threads or worker processes.
# ------------------------------------------------------------
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np

from .status import DEFAULT_STATUS_MESSAGES, StatusCode

# OMB → SMPA: 90° about the sensor z axis (fixed by the boom mounting)
OMB_TO_SMPA = np.array([[0.0, -1.0, 0.0],
                        [1.0,  0.0, 0.0],
                        [0.0,  0.0, 1.0]])

FILL_VALUE = -1.0e31            # ISTP float fill
ELECTRON_SPEED_1KEV = 18.73     # m/µs, relativistic 1 keV electron
GYRO_TIME_CONSTANT = 35723.8    # µs·nT  (2π m_e / e)


def _frozen_matrix(m: Any, name: str) -> np.ndarray:
    arr = np.array(m, dtype=float)
    if arr.shape != (3, 3):
        raise ValueError(f'{name} must be 3×3, got {arr.shape}')
    if not np.allclose(arr @ arr.T, np.eye(3), atol=1e-9):
        raise ValueError(f'{name} is not orthonormal')
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ProcessingConfig:
    """
    Read-only processing context.

    Attributes
    ----------
    omb_to_smpa : fixed OMB → SMPA rotation (3×3)
    fill_value  : value written into unused output slots
    status_messages : StatusCode → message table
    edi_min_beams : minimum eligible beams for the parallelism test
    edi_max_parallel_stdev : axial spread (deg) above which beams are
        not considered parallel
    edi_min_class_a : class-A beams needed on *each* side before the
        SMT estimator restricts itself to class A
    edi_electron_speed : m/µs
    gyro_time_constant : µs·nT, tg = constant / |B|
    """
    omb_to_smpa: np.ndarray = field(default_factory=lambda: OMB_TO_SMPA.copy())
    fill_value: float = FILL_VALUE
    status_messages: Mapping[int, str] = field(
        default_factory=lambda: dict(DEFAULT_STATUS_MESSAGES))
    edi_min_beams: int = 2
    edi_max_parallel_stdev: float = 10.0
    edi_min_class_a: int = 2
    edi_electron_speed: float = ELECTRON_SPEED_1KEV
    gyro_time_constant: float = GYRO_TIME_CONSTANT

    def __post_init__(self):
        object.__setattr__(self, 'omb_to_smpa',
                           _frozen_matrix(self.omb_to_smpa, 'omb_to_smpa'))

        messages = {StatusCode(k): str(v) for k, v in dict(self.status_messages).items()}
        missing = [c.name for c in StatusCode if c not in messages]
        if missing:
            raise ValueError(f'status_messages lacks entries for {missing}')
        object.__setattr__(self, 'status_messages', MappingProxyType(messages))

        if self.edi_min_beams < 1:
            raise ValueError('edi_min_beams must be ≥ 1')
        if self.edi_max_parallel_stdev <= 0:
            raise ValueError('edi_max_parallel_stdev must be positive')
        if self.edi_electron_speed <= 0 or self.gyro_time_constant <= 0:
            raise ValueError('physical constants must be positive')

    # ------------------------------------------------------------------ #
    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'ProcessingConfig':
        known = {f.name for f in dataclasses.fields(cls)}
        for k in values:
            if k not in known:
                raise ValueError(f'Unknown ProcessingConfig key {k}')
        return cls(**values)

    def with_overrides(self, **kw) -> 'ProcessingConfig':
        """Copy with selected fields replaced (validated like from_dict)."""
        current = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        current.update(kw)
        return self.from_dict(current)


def default_config() -> ProcessingConfig:
    return ProcessingConfig()
