# mms_proc/fg_l2.py
# ------------------------------------------------------------
# FGM Level 1B → Level 2
# ------------------------------------------------------------
#   SMPA ──despin──▶ DMPA ──(attitude)──▶ GSE
#
# • Despin method comes from despin.select_despin_strategy().
# • DMPA → GSE for the attitude path has no implementation and
#   raises; without attitude the GSE frame is skipped with a
#   FrameSkippedWarning and a note on the record.
# • SMPA samples holding cfg.fill_value stay fill in DMPA.
# ------------------------------------------------------------
from __future__ import annotations

import warnings
from typing import Optional

import numpy as np

from .calibration import CalibrationTable
from .config import ProcessingConfig
from .despin import AttitudeData, SunPulseData, resolve_despin
from .fg_l1b import fg_l1b
from .records import CoordFrame, InstrumentRecord, RawRecord, RecordBuilder
from .rotate import rotate_field
from .status import (FrameSkippedWarning, InertialRotationNotImplemented,
                     RecordSchemaError)
from .times import TimeBound


def fg_l2(l1b: InstrumentRecord,
          *,
          attitude: Optional[AttitudeData] = None,
          sunpulse: Optional[SunPulseData] = None,
          include_smpa: bool = False,
          include_dmpa: bool = True,
          include_gse: bool = True,
          cfg: Optional[ProcessingConfig] = None) -> InstrumentRecord:
    """
    Despin an L1B record and compose the L2 product.

    Parameters
    ----------
    l1b : InstrumentRecord
        Must contain the SMPA field.
    attitude, sunpulse : optional
        Despin inputs; attitude takes precedence.  At least one is required.
    include_smpa, include_dmpa, include_gse : bool
        Frames to publish.  Frames already in the L1B record other than
        SMPA are carried through unchanged.
    cfg : ProcessingConfig, optional
        Supplies the fill value; SMPA samples holding it stay fill in DMPA.

    Raises
    ------
    RecordSchemaError              – L1B record lacks SMPA
    DespinInputMissing             – no attitude and no sun pulse
    InertialRotationNotImplemented – GSE requested on the attitude path
    """
    cfg = cfg or ProcessingConfig()
    if not l1b.has(CoordFrame.SMPA):
        raise RecordSchemaError(
            '[fg_l2] L2 processing needs the SMPA field; rebuild L1B with include_smpa=True')

    # 1 ── despin strategy (fatal if nothing to despin with)
    despin, strategy = resolve_despin(l1b.epoch, attitude=attitude, sunpulse=sunpulse)

    # 2 ── SMPA → DMPA
    b_smpa = l1b.get_field(CoordFrame.SMPA)
    b_dmpa = rotate_field(despin, b_smpa, l1b.epoch)
    is_fill = np.any(b_smpa[:, :3] == cfg.fill_value, axis=1)

    builder = (RecordBuilder.from_record(l1b, level='l2')
               .include(CoordFrame.SMPA, include_smpa)
               .add(CoordFrame.DMPA, b_dmpa, include=include_dmpa)
               .fill(CoordFrame.DMPA, is_fill, cfg.fill_value)
               .note(f'despin: {strategy.name}'))

    # 3-4 ── DMPA → GSE
    if include_gse:
        if attitude is not None:
            raise InertialRotationNotImplemented(
                '[fg_l2] DMPA → GSE rotation with attitude data is not implemented')
        msg = '[fg_l2] no attitude data – rotation to GSE skipped'
        warnings.warn(msg, FrameSkippedWarning, stacklevel=2)
        builder.skip(CoordFrame.GSE, msg)

    # 5 ── compose
    return builder.build()


def fg_process(l1a: RawRecord,
               cal_hi: CalibrationTable,
               cal_lo: CalibrationTable,
               *,
               tstart: TimeBound = None,
               tend: TimeBound = None,
               attitude: Optional[AttitudeData] = None,
               sunpulse: Optional[SunPulseData] = None,
               include_smpa: bool = False,
               include_dmpa: bool = True,
               include_gse: bool = True,
               cfg: Optional[ProcessingConfig] = None) -> InstrumentRecord:
    """L1A → L1B → L2 in one call; the L1B stage publishes only SMPA."""
    cfg = cfg or ProcessingConfig()
    l1b = fg_l1b(l1a, cal_hi, cal_lo, tstart=tstart, tend=tend,
                 include_smpa=True, cfg=cfg)
    return fg_l2(l1b, attitude=attitude, sunpulse=sunpulse,
                 include_smpa=include_smpa, include_dmpa=include_dmpa,
                 include_gse=include_gse, cfg=cfg)
