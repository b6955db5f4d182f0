# mms_proc/edi.py
# ------------------------------------------------------------
# EDI beam classification engine
# ------------------------------------------------------------
#   Start ─▶ ParallelismTested ─┬─▶ MethodAttempted ─┬─▶ Success
#                               │                    └─▶ SoftFailure
#                               └─▶ HardFailure
#
# Every branch ends with a Status (code + message).  Soft failures
# from the estimator are forwarded untouched; nothing here raises
# for a method-level failure.
# ------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from .config import ProcessingConfig
from .edi_methods import BeamPartition, BeamSet, parallelism_test, smt_estimate
from .status import Status, StatusCode


class EdiState(str, Enum):
    START = 'start'
    PARALLELISM_TESTED = 'parallelism_tested'
    METHOD_ATTEMPTED = 'method_attempted'
    SUCCESS = 'success'
    SOFT_FAILURE = 'soft_failure'
    HARD_FAILURE = 'hard_failure'


@dataclass(frozen=True, eq=False)
class EdiResult:
    """
    status     : outcome code + message (check before using anything else)
    out        : [dtof, sigma_dtof, drift_step, drift_angle, tg, fill] on
                 success, None otherwise
    partition  : towards/away × class-A/non-A beam indices
    ambiguous  : 180° ambiguity flag; None unless status is a success
    try_tri    : hand off to triangulation?  Always False – SMT is the
                 last method in the chain
    """
    status: Status
    out: Optional[np.ndarray]
    partition: BeamPartition
    ambiguous: Optional[bool]
    try_tri: bool
    state: EdiState
    trace: Tuple[EdiState, ...]
    mean_angle: float
    stdev_angle: float
    method: str = 'smt'

    @property
    def code(self) -> StatusCode:
        return self.status.code

    @property
    def message(self) -> str:
        return self.status.message


def is_ambiguous(values: Sequence[float]) -> bool:
    """values[1] / values[0] > 1 → 180° ambiguous (zero denominator counts as ambiguous)."""
    a, b = float(values[0]), float(values[1])
    if a == 0.0:
        return True
    return b / a > 1.0


def edi_classify(beamset: BeamSet,
                 *,
                 no_tri: bool = False,
                 cfg: Optional[ProcessingConfig] = None) -> EdiResult:
    """
    Classify one EDI beam set with the SMT method.

    Parameters
    ----------
    beamset : BeamSet
    no_tri  : suppress triangulation hand-off.  SMT never hands off, so
              the returned ``try_tri`` is False either way.
    cfg     : ProcessingConfig (thresholds, electron speed, messages)
    """
    cfg = cfg or ProcessingConfig()
    trace = [EdiState.START]

    # 1-2 ── eligible beams → parallelism test
    eligible = beamset.eligible()
    par = parallelism_test(beamset.beams.alpha[eligible], cfg)
    trace.append(EdiState.PARALLELISM_TESTED)

    # 3 ── hard failure: no method is attempted
    if not par.ifin:
        trace.append(EdiState.HARD_FAILURE)
        status = Status.from_code(StatusCode.PARALLELISM_FAILED, cfg.status_messages,
                                  n_eligible=len(eligible),
                                  stdev_angle=par.stdev_angle)
        return EdiResult(status=status, out=None, partition=BeamPartition.empty(),
                         ambiguous=None, try_tri=False,
                         state=EdiState.HARD_FAILURE, trace=tuple(trace),
                         mean_angle=par.mean_angle, stdev_angle=par.stdev_angle)

    # 4 ── estimator
    smt = smt_estimate(beamset, eligible, par.mean_angle, par.stdev_angle, cfg)
    trace.append(EdiState.METHOD_ATTEMPTED)

    # 5 ── success
    if smt.status.code == StatusCode.SMT_OK:
        trace.append(EdiState.SUCCESS)
        out = np.concatenate([smt.values, [beamset.gyro_time(cfg), cfg.fill_value]])
        return EdiResult(status=smt.status, out=out, partition=smt.partition,
                         ambiguous=is_ambiguous(smt.values), try_tri=False,
                         state=EdiState.SUCCESS, trace=tuple(trace),
                         mean_angle=par.mean_angle, stdev_angle=par.stdev_angle)

    # 6 ── soft failure, estimator status forwarded as-is
    trace.append(EdiState.SOFT_FAILURE)
    return EdiResult(status=smt.status, out=None, partition=smt.partition,
                     ambiguous=None, try_tri=False,
                     state=EdiState.SOFT_FAILURE, trace=tuple(trace),
                     mean_angle=par.mean_angle, stdev_angle=par.stdev_angle)
