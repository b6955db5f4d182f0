# mms_proc/edi_methods.py
# ------------------------------------------------------------
# EDI beam containers + the estimators the classification
# engine dispatches to
# ------------------------------------------------------------
# 1. parallelism_test – axial mean / spread of beam firing angles
# 2. smt_estimate     – single-method time-of-flight drift step:
#                       splits beams towards / away and class A /
#                       non-A, then resolves the drift step from the
#                       ToF contrast between the two directions
# ------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from scipy.stats import circmean, circstd

from .config import ProcessingConfig
from .status import Status, StatusCode


# =========================================================================== #
#                               Containers                                    #
# =========================================================================== #
@dataclass(frozen=True, eq=False)
class Beams:
    alpha: np.ndarray                 # firing angle in the drift plane (deg)
    tri_ok: np.ndarray                # 1 = usable for triangulation
    beam_class: np.ndarray            # quality class, 'A' is best
    tof: np.ndarray                   # time of flight (µs)

    def __post_init__(self):
        object.__setattr__(self, 'alpha', np.asarray(self.alpha, dtype=float).ravel())
        object.__setattr__(self, 'tri_ok', np.asarray(self.tri_ok, dtype=int).ravel())
        object.__setattr__(self, 'beam_class',
                           np.asarray(self.beam_class, dtype=str).ravel())
        object.__setattr__(self, 'tof', np.asarray(self.tof, dtype=float).ravel())
        n = len(self.alpha)
        if any(len(a) != n for a in (self.tri_ok, self.beam_class, self.tof)):
            raise ValueError('beam attribute arrays must have equal length')

    def __len__(self) -> int:
        return len(self.alpha)


@dataclass(frozen=True, eq=False)
class BeamSet:
    """
    One EDI triangulation interval.

    xd, yd : gun position of each beam in the drift plane (m)
    tg     : gyro time (µs); NaN → derived from bmag
    bmag   : |B| over the interval (nT)
    """
    beams: Beams
    xd: np.ndarray
    yd: np.ndarray
    tg: float = np.nan
    bmag: float = np.nan

    def __post_init__(self):
        n = len(self.beams)
        xd = np.broadcast_to(np.asarray(self.xd, dtype=float), (n,))
        yd = np.broadcast_to(np.asarray(self.yd, dtype=float), (n,))
        object.__setattr__(self, 'xd', xd)
        object.__setattr__(self, 'yd', yd)

    def eligible(self) -> np.ndarray:
        """Indices of beams flagged tri_ok == 1 with a finite firing angle."""
        b = self.beams
        return np.flatnonzero((b.tri_ok == 1) & np.isfinite(b.alpha))

    def gyro_time(self, cfg: ProcessingConfig) -> float:
        if np.isfinite(self.tg):
            return float(self.tg)
        if np.isfinite(self.bmag) and self.bmag > 0:
            return cfg.gyro_time_constant / float(self.bmag)
        return np.nan


@dataclass(frozen=True, eq=False)
class BeamPartition:
    """Index arrays into the original BeamSet; disjoint by construction."""
    classA_towards: np.ndarray
    nonA_towards: np.ndarray
    classA_away: np.ndarray
    nonA_away: np.ndarray

    @classmethod
    def empty(cls) -> 'BeamPartition':
        e = np.empty(0, dtype=int)
        return cls(e, e, e, e)

    @property
    def towards(self) -> np.ndarray:
        return np.sort(np.concatenate([self.classA_towards, self.nonA_towards]))

    @property
    def away(self) -> np.ndarray:
        return np.sort(np.concatenate([self.classA_away, self.nonA_away]))

    def all(self) -> np.ndarray:
        return np.sort(np.concatenate([self.towards, self.away]))


# =========================================================================== #
#                           Parallelism test                                  #
# =========================================================================== #
@dataclass(frozen=True)
class ParallelismResult:
    mean_angle: float          # axial mean, [0, 180)
    stdev_angle: float         # axial spread (deg)
    ifin: bool                 # beams parallel enough for SMT
    n_beams: int


def parallelism_test(alpha: np.ndarray, cfg: ProcessingConfig) -> ParallelismResult:
    """
    Beams fired in opposite directions along one line count as parallel,
    so the statistics are axial: angles are doubled, averaged on the
    circle and halved again.
    """
    a = np.asarray(alpha, dtype=float)
    a = a[np.isfinite(a)]
    n = len(a)
    if n == 0:
        return ParallelismResult(np.nan, np.nan, False, 0)

    doubled = np.mod(2.0 * a, 360.0)
    mean = float(circmean(doubled, high=360.0, low=0.0)) / 2.0
    stdev = float(circstd(doubled, high=360.0, low=0.0)) / 2.0
    if np.isnan(stdev):
        stdev = 0.0                 # resultant length rounded past 1
    ifin = n >= cfg.edi_min_beams and stdev <= cfg.edi_max_parallel_stdev
    return ParallelismResult(float(np.mod(mean, 180.0)), stdev, bool(ifin), n)


# =========================================================================== #
#                               SMT                                           #
# =========================================================================== #
@dataclass(frozen=True, eq=False)
class SmtResult:
    status: Status
    partition: BeamPartition
    values: Optional[np.ndarray] = None   # [dtof, sigma_dtof, drift_step_m, drift_angle]
    diagnostics: dict = field(default_factory=dict)


def _wrap180(deg: np.ndarray) -> np.ndarray:
    return (np.asarray(deg) + 180.0) % 360.0 - 180.0


def _mean_and_se(x: np.ndarray):
    if len(x) > 1:
        return float(np.mean(x)), float(np.std(x, ddof=1) / np.sqrt(len(x)))
    return float(np.mean(x)), 0.0


def smt_estimate(beamset: BeamSet,
                 eligible: np.ndarray,
                 mean_angle: float,
                 stdev_angle: float,
                 cfg: ProcessingConfig) -> SmtResult:
    """
    Time-of-flight drift-step estimate for near-parallel beams.

    Beams within ±90° of *mean_angle* form one side, the rest the other.
    The side with the shorter mean ToF is "towards".  ToFs are corrected
    for the gun offset along the beam, (xd cos α + yd sin α) / v_e.

    values = [dtof, sigma_dtof, drift_step, drift_angle]
        dtof        mean(away) − mean(towards), µs (> 0)
        sigma_dtof  combined standard error, µs
        drift_step  v_e · dtof / 2, m
        drift_angle firing direction of the towards side, deg [0, 360)

    TOO_FEW_BEAMS only guards direct calls; edi_classify gates on the
    parallelism test first, which already requires edi_min_beams.
    """
    beams = beamset.beams
    idx = np.asarray(eligible, dtype=int)
    msgs = cfg.status_messages

    alpha = beams.alpha[idx]
    side_p = np.abs(_wrap180(alpha - mean_angle)) <= 90.0
    is_a = beams.beam_class[idx] == 'A'

    rad = np.deg2rad(alpha)
    tof = beams.tof[idx] + (beamset.xd[idx] * np.cos(rad)
                            + beamset.yd[idx] * np.sin(rad)) / cfg.edi_electron_speed

    def _partition(towards: np.ndarray) -> BeamPartition:
        return BeamPartition(idx[towards & is_a], idx[towards & ~is_a],
                             idx[~towards & is_a], idx[~towards & ~is_a])

    diag = {'n_eligible': len(idx), 'stdev_angle': stdev_angle}

    if len(idx) < cfg.edi_min_beams:
        return SmtResult(Status.from_code(StatusCode.TOO_FEW_BEAMS, msgs, **diag),
                         _partition(side_p), diagnostics=diag)
    if side_p.all() or not side_p.any():
        return SmtResult(Status.from_code(StatusCode.SMT_ONE_SIDED, msgs, **diag),
                         _partition(side_p), diagnostics=diag)

    # class A only when both sides have enough of them
    use = np.ones(len(idx), dtype=bool)
    n_a_p, n_a_q = int((is_a & side_p).sum()), int((is_a & ~side_p).sum())
    if min(n_a_p, n_a_q) >= cfg.edi_min_class_a:
        use = is_a
    diag['class_a_only'] = bool(use is is_a)

    tof_p, tof_q = tof[use & side_p], tof[use & ~side_p]
    if not (np.isfinite(tof_p).all() and np.isfinite(tof_q).all()):
        return SmtResult(Status.from_code(StatusCode.SMT_BAD_TOF, msgs, **diag),
                         _partition(side_p), diagnostics=diag)

    m_p, se_p = _mean_and_se(tof_p)
    m_q, se_q = _mean_and_se(tof_q)
    if m_p == m_q:
        return SmtResult(Status.from_code(StatusCode.SMT_NO_TOF_CONTRAST, msgs, **diag),
                         _partition(side_p), diagnostics=diag)

    p_is_towards = m_p < m_q
    towards = side_p if p_is_towards else ~side_p
    dtof = abs(m_q - m_p)
    sigma = float(np.hypot(se_p, se_q))
    drift_step = cfg.edi_electron_speed * dtof / 2.0
    drift_angle = float(np.mod(mean_angle + (0.0 if p_is_towards else 180.0), 360.0))

    values = np.array([dtof, sigma, drift_step, drift_angle])
    diag.update(n_towards=int(towards.sum()), n_away=int((~towards).sum()))
    return SmtResult(Status.from_code(StatusCode.SMT_OK, msgs, **diag),
                     _partition(towards), values=values, diagnostics=diag)
