"""
Pytest configuration and fixtures for mms_proc tests
"""
import sys
import faulthandler

import numpy as np
import pytest

from mms_proc.calibration import CalibrationTable
from mms_proc.despin import AttitudeData, SunPulseData
from mms_proc.edi_methods import Beams, BeamSet
from mms_proc.records import RawRecord

T0 = np.datetime64('2015-10-16T13:00:00', 'ns')


def secs(s):
    """T0 + s seconds as datetime64[ns]."""
    return T0 + (np.asarray(s, dtype=float) * 1e9).astype('int64').astype('timedelta64[ns]')


def make_table(epochs, gain=1.0, offset=0.0, ortho=None, mpa=(0.0, 0.0, 1.0),
               range_name='hi', tend=None):
    """Calibration table with the same coefficients in every interval."""
    epochs = np.atleast_1d(epochs)
    m = len(epochs)
    ortho = np.eye(3) if ortho is None else np.asarray(ortho, dtype=float)
    return CalibrationTable(
        epoch=epochs,
        gain=np.tile(np.broadcast_to(np.asarray(gain, dtype=float), (3,)), (m, 1)),
        offset=np.tile(np.broadcast_to(np.asarray(offset, dtype=float), (3,)), (m, 1)),
        ortho=np.tile(ortho, (m, 1, 1)),
        mpa=np.tile(np.asarray(mpa, dtype=float), (m, 1)),
        tend=tend,
        range_name=range_name,
    )


def make_beamset(alpha, tof, tri_ok=None, beam_class=None, xd=0.0, yd=0.0,
                 tg=np.nan, bmag=np.nan):
    n = len(alpha)
    beams = Beams(alpha=alpha,
                  tri_ok=np.ones(n, dtype=int) if tri_ok is None else tri_ok,
                  beam_class=['A'] * n if beam_class is None else beam_class,
                  tof=tof)
    return BeamSet(beams, xd=xd, yd=yd, tg=tg, bmag=bmag)


# Dump stack traces if a test runs too long
@pytest.fixture(autouse=True)
def _faulthandler_timeout():
    faulthandler.enable()
    faulthandler.dump_traceback_later(120, repeat=False, file=sys.stderr)
    try:
        yield
    finally:
        faulthandler.cancel_dump_traceback_later()


@pytest.fixture
def raw_record():
    """20 s of 1 Hz sensor data; hi range for the first 10 s, lo after"""
    n = 20
    return RawRecord(
        epoch=secs(np.arange(n)),
        b_123=np.tile([1.0, 2.0, 3.0], (n, 1)),
        epoch_stat=secs([0, 10]),
        range=[1, 0],
        sample_rate=[8.0, 8.0],
    )


@pytest.fixture
def cal_hi():
    return make_table(secs([-3600]), gain=1.0, range_name='hi')


@pytest.fixture
def cal_lo():
    return make_table(secs([-1800]), gain=2.0, range_name='lo')


@pytest.fixture
def zero_phase_attitude():
    """Spin phase pinned at zero: despin is the identity"""
    return AttitudeData(epoch=secs([-10, 30]), spin_phase=[0.0, 0.0])


@pytest.fixture
def sunpulse():
    """One pulse at T0, 4 s spin period"""
    return SunPulseData(epoch=secs([0]), period=[4.0])


@pytest.fixture
def parallel_beamset():
    """Two beams each way along 10°/190°, away side arrives 1 µs later"""
    return make_beamset(alpha=[10.0, 10.0, 190.0, 190.0],
                        tof=[5.0, 5.0, 6.0, 6.0],
                        bmag=50.0)
