# mms_proc/despin.py
# ------------------------------------------------------------
# SMPA → DMPA despin
# ------------------------------------------------------------
# Two interchangeable strategies, picked by what the caller has:
#   AttitudeDespin  – definitive attitude spin phase (preferred)
#   SunPulseDespin  – digital-sun-sensor pulse times (fallback)
# Neither supplied → DespinInputMissing.  There is no default.
# ------------------------------------------------------------
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.interpolate import interp1d

from .rotate import RotationSpec, rotation_z
from .status import DespinInputMissing
from .times import seconds_since, step_index, to_datetime64_ns


@dataclass(frozen=True, eq=False)
class AttitudeData:
    """
    Spin phase of the body x axis about the rotation axis, measured from
    the sun direction (deg).  Only the angular-momentum axis 'L' is
    supported; the major principal axis is assumed to coincide with it.
    """
    epoch: np.ndarray
    spin_phase: np.ndarray
    axis: str = 'L'

    def __post_init__(self):
        object.__setattr__(self, 'epoch', to_datetime64_ns(self.epoch))
        object.__setattr__(self, 'spin_phase', np.asarray(self.spin_phase, dtype=float))
        if self.spin_phase.shape != self.epoch.shape:
            raise ValueError('attitude epoch and spin_phase lengths differ')


@dataclass(frozen=True, eq=False)
class SunPulseData:
    """Sun-pulse times and, optionally, the spin period (s) following each pulse."""
    epoch: np.ndarray
    period: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, 'epoch', to_datetime64_ns(self.epoch))
        if self.period is not None:
            per = np.broadcast_to(np.asarray(self.period, dtype=float), self.epoch.shape)
            object.__setattr__(self, 'period', per)


# =========================================================================== #
#                               Strategies                                    #
# =========================================================================== #
class DespinStrategy(ABC):
    name: str = ''

    @abstractmethod
    def spin_phase(self, epoch: np.ndarray) -> np.ndarray:
        """Spin phase (deg, [0, 360)) at each epoch."""

    def rotation(self, epoch: np.ndarray) -> RotationSpec:
        """Per-sample SMPA → DMPA rotation: +phase about the spin axis."""
        return RotationSpec(rotation_z(self.spin_phase(epoch)).reshape(-1, 3, 3))


class AttitudeDespin(DespinStrategy):
    name = 'attitude'

    def __init__(self, attitude: AttitudeData):
        if attitude.axis.upper() != 'L':
            raise ValueError(f"despin about axis '{attitude.axis}' is not supported; use 'L'")
        if len(attitude.epoch) < 2:
            raise ValueError('attitude despin needs at least two phase samples')
        self.attitude = attitude

    def spin_phase(self, epoch: np.ndarray) -> np.ndarray:
        att = self.attitude
        ref = att.epoch[0]
        phase = np.rad2deg(np.unwrap(np.deg2rad(att.spin_phase)))
        f = interp1d(seconds_since(att.epoch, ref), phase, kind='linear',
                     bounds_error=False, fill_value='extrapolate',
                     assume_sorted=True)
        return np.mod(f(seconds_since(epoch, ref)), 360.0)


class SunPulseDespin(DespinStrategy):
    name = 'sunpulse'

    def __init__(self, sunpulse: SunPulseData):
        n = len(sunpulse.epoch)
        if n == 0 or (sunpulse.period is None and n < 2):
            raise ValueError('sun-pulse despin needs a period or at least two pulses')
        self.sunpulse = sunpulse

    def _periods(self) -> np.ndarray:
        sp = self.sunpulse
        if sp.period is not None:
            return sp.period
        gaps = np.diff(seconds_since(sp.epoch, sp.epoch[0]))
        return np.append(gaps, gaps[-1])

    def spin_phase(self, epoch: np.ndarray) -> np.ndarray:
        sp = self.sunpulse
        periods = self._periods()
        if np.any(periods <= 0):
            raise ValueError('spin period must be positive')
        idx = np.clip(step_index(sp.epoch, epoch), 0, None)
        dt = seconds_since(epoch, sp.epoch[0]) - seconds_since(sp.epoch[idx], sp.epoch[0])
        return np.mod(360.0 * dt / periods[idx], 360.0)


# ------------------------------------------------------------------
# Selection
# ------------------------------------------------------------------
def select_despin_strategy(attitude: Optional[AttitudeData] = None,
                           sunpulse: Optional[SunPulseData] = None) -> DespinStrategy:
    """Attitude wins when both are given."""
    if attitude is not None:
        return AttitudeDespin(attitude)
    if sunpulse is not None:
        return SunPulseDespin(sunpulse)
    raise DespinInputMissing('[despin] neither attitude nor sun-pulse data supplied')


def resolve_despin(epoch: np.ndarray,
                   attitude: Optional[AttitudeData] = None,
                   sunpulse: Optional[SunPulseData] = None
                   ) -> Tuple[RotationSpec, DespinStrategy]:
    strategy = select_despin_strategy(attitude, sunpulse)
    return strategy.rotation(epoch), strategy
