# mms_proc/tplot.py
# ------------------------------------------------------------
# Push InstrumentRecord contents into the PySPEDAS tplot store
# ------------------------------------------------------------
# Variable names follow the MMS L2 convention, e.g.
#   mms1_fgm_b_dmpa_srvy_l2   mms1_fgm_mpa_srvy_l2
# so that existing SPEDAS plotting / analysis code finds them.
# ------------------------------------------------------------
from __future__ import annotations

from typing import List

import numpy as np
from pyspedas import store_data

from .records import InstrumentRecord
from .times import seconds_since

_UNIX0 = np.datetime64('1970-01-01T00:00:00', 'ns')


def tplot_name(sc: str, quantity: str, mode: str, level: str) -> str:
    return f'mms{sc}_fgm_{quantity}_{mode}_{level}'


def store_record(rec: InstrumentRecord,
                 sc: str = '1',
                 mode: str = 'srvy') -> List[str]:
    """
    Store every published frame, the spin axis and the range flags.
    Returns the tplot variable names written.
    """
    names: List[str] = []
    t = seconds_since(rec.epoch, _UNIX0)

    for frame in rec.frames:
        name = tplot_name(sc, f'b_{frame}', mode, rec.level)
        store_data(name, data={'x': t, 'y': np.asarray(rec.get_field(frame))})
        names.append(name)

    if len(rec.epoch_mpa):
        name = tplot_name(sc, 'mpa', mode, rec.level)
        store_data(name, data={'x': seconds_since(rec.epoch_mpa, _UNIX0),
                               'y': np.asarray(rec.mpa)})
        names.append(name)

    if len(rec.epoch_stat):
        name = tplot_name(sc, 'range', mode, rec.level)
        store_data(name, data={'x': seconds_since(rec.epoch_stat, _UNIX0),
                               'y': np.asarray(rec.range)})
        names.append(name)

    return names
