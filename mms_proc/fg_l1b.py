# mms_proc/fg_l1b.py
# ------------------------------------------------------------
# FGM Level 1A → Level 1B
# ------------------------------------------------------------
#   123 ──calibrate──▶ OMB ──fixed──▶ SMPA ──MPA⁻¹──▶ BCS
#
# The output always carries the spin-axis (MPA) series; which
# field frames are published is up to the caller's flags.
# ------------------------------------------------------------
from __future__ import annotations

from typing import Optional

from .calibration import CalibrationTable, apply_calibration
from .config import ProcessingConfig
from .records import CoordFrame, InstrumentRecord, RawRecord, RecordBuilder
from .rotate import RotationSpec, rotate_field, smpa_to_bcs
from .times import TimeBound


def fg_l1b(l1a: RawRecord,
           cal_hi: CalibrationTable,
           cal_lo: CalibrationTable,
           *,
           tstart: TimeBound = None,
           tend: TimeBound = None,
           include_123: bool = False,
           include_bcs: bool = False,
           include_omb: bool = False,
           include_smpa: bool = False,
           cfg: Optional[ProcessingConfig] = None) -> InstrumentRecord:
    """
    Calibrate and rotate one FGM L1A record into an L1B product.

    Parameters
    ----------
    l1a : RawRecord
        Parsed sensor-frame data with status-cadence range / sample rate.
    cal_hi, cal_lo : CalibrationTable
        Hi- and lo-range calibration tables.
    tstart, tend : ISO-8601 str, datetime or datetime64, optional
        Processing window; omitted bounds are open.
    include_123, include_bcs, include_omb, include_smpa : bool
        Frames to publish.  With none of bcs/omb/smpa set, BCS is
        published.  The sensor frame is off unless asked for.
    cfg : ProcessingConfig, optional
        Instrument constants (OMB → SMPA rotation).

    Returns
    -------
    InstrumentRecord (level 'l1b') with the requested frames plus MPA.

    Raises
    ------
    CalibrationError
        No calibration interval covers part of the window.  Nothing is
        caught here; any failure leaves no partial record behind.
    """
    cfg = cfg or ProcessingConfig()
    if not (include_bcs or include_omb or include_smpa):
        include_bcs = True

    # 1-2 ── bound tables and data to the window
    hi = cal_hi.clip(tstart, tend)
    lo = cal_lo.clip(tstart, tend)
    raw = l1a.clip(tstart, tend)

    # 3 ── calibrate → OMB + spin axis
    b_omb, epoch_mpa, mpa, mpa_index = apply_calibration(
        raw.b_123, raw.epoch, raw.range, raw.epoch_stat, hi, lo)

    # 4 ── OMB → SMPA (instrument constant)
    b_smpa = rotate_field(RotationSpec(cfg.omb_to_smpa), b_omb)

    # 5 ── SMPA → BCS with the spin axis of the interval that calibrated
    #      each sample (hi and lo tables interleave in time)
    if len(epoch_mpa):
        to_bcs = RotationSpec(smpa_to_bcs(mpa)[mpa_index])
        b_bcs = rotate_field(to_bcs, b_smpa)
    else:
        b_bcs = b_smpa.copy()                   # no samples in window

    # 6 ── compose
    return (RecordBuilder(raw.epoch, raw.epoch_stat, raw.range, raw.sample_rate,
                          level='l1b')
            .set_spin_axis(epoch_mpa, mpa)
            .add(CoordFrame.SENSOR, raw.b_123, include=include_123)
            .add(CoordFrame.OMB, b_omb, include=include_omb)
            .add(CoordFrame.SMPA, b_smpa, include=include_smpa)
            .add(CoordFrame.BCS, b_bcs, include=include_bcs)
            .build())
