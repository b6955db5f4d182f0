import numpy as np
import pytest

from conftest import make_table, secs
from mms_proc.config import ProcessingConfig
from mms_proc.fg_l1b import fg_l1b
from mms_proc.records import CoordFrame, RawRecord
from mms_proc.status import CalibrationError

# OMB [1, 2, 3] (hi) and [2, 4, 6] (lo) after the fixed 90° OMB → SMPA turn
SMPA_HI = [-2.0, 1.0, 3.0]
SMPA_LO = [-4.0, 2.0, 6.0]


def test_default_publishes_bcs_only(raw_record, cal_hi, cal_lo):
    rec = fg_l1b(raw_record, cal_hi, cal_lo)
    assert rec.level == 'l1b'
    assert rec.frames == (CoordFrame.BCS,)
    assert rec.get_field(CoordFrame.BCS).shape == (20, 4)


def test_lengths_follow_epochs(raw_record, cal_hi, cal_lo):
    rec = fg_l1b(raw_record, cal_hi, cal_lo, include_123=True, include_omb=True,
                 include_smpa=True, include_bcs=True)
    assert len(rec.frames) == 4
    for frame in rec.frames:
        assert len(rec.get_field(frame)) == len(rec.epoch)
    assert len(rec.range) == len(rec.sample_rate) == len(rec.epoch_stat)
    assert rec.mpa.shape == (len(rec.epoch_mpa), 3)


def test_sensor_frame_only_on_request(raw_record, cal_hi, cal_lo):
    rec = fg_l1b(raw_record, cal_hi, cal_lo, include_smpa=True)
    assert not rec.has(CoordFrame.SENSOR)
    assert not rec.has(CoordFrame.BCS)

    rec = fg_l1b(raw_record, cal_hi, cal_lo, include_123=True)
    np.testing.assert_allclose(rec.get_field('123')[:, 3], np.sqrt(14.0))
    # the sensor frame alone does not suppress the BCS default
    assert rec.has(CoordFrame.BCS)


def test_calibrated_and_rotated_values(raw_record, cal_hi, cal_lo):
    rec = fg_l1b(raw_record, cal_hi, cal_lo, include_omb=True, include_smpa=True,
                 include_bcs=True)
    omb = rec.get_field('omb')
    np.testing.assert_allclose(omb[:10, :3], np.tile([1.0, 2.0, 3.0], (10, 1)))
    np.testing.assert_allclose(omb[10:, :3], np.tile([2.0, 4.0, 6.0], (10, 1)))

    smpa = rec.get_field('smpa')
    np.testing.assert_allclose(smpa[:10, :3], np.tile(SMPA_HI, (10, 1)), atol=1e-12)
    np.testing.assert_allclose(smpa[10:, :3], np.tile(SMPA_LO, (10, 1)), atol=1e-12)

    # spin axis along z: SMPA and BCS coincide
    np.testing.assert_allclose(rec.get_field('bcs'), smpa, atol=1e-12)


def test_tilted_spin_axis_rotates_bcs(raw_record):
    mpa = np.array([0.0, 0.6, 0.8])
    hi = make_table(secs([-3600]), mpa=mpa, range_name='hi')
    lo = make_table(secs([-1800]), mpa=mpa, range_name='lo')
    rec = fg_l1b(raw_record, hi, lo, include_smpa=True, include_bcs=True)

    smpa, bcs = rec.get_field('smpa'), rec.get_field('bcs')
    np.testing.assert_allclose(bcs[:, 3], smpa[:, 3])
    # SMPA z is the spin axis expressed in BCS
    np.testing.assert_allclose(bcs[:, :3] @ mpa, smpa[:, 2], atol=1e-12)


def test_time_window(raw_record, cal_hi, cal_lo):
    rec = fg_l1b(raw_record, cal_hi, cal_lo,
                 tstart='2015-10-16T13:00:05', tend='2015-10-16T13:00:12')
    assert len(rec.epoch) == 8
    assert rec.epoch[0] == secs(5)
    assert rec.epoch[-1] == secs(12)
    assert rec.range.tolist() == [1, 0]


def test_missing_calibration_is_fatal(raw_record, cal_hi):
    late_lo = make_table(secs([15]), range_name='lo')
    with pytest.raises(CalibrationError):
        fg_l1b(raw_record, cal_hi, late_lo)


def test_window_inside_hi_range_needs_no_lo_table(raw_record, cal_hi):
    late_lo = make_table(secs([15]), range_name='lo')
    rec = fg_l1b(raw_record, cal_hi, late_lo, tend=secs(9))
    assert len(rec.epoch) == 10
    assert rec.epoch_mpa.tolist() == secs([-3600]).tolist()


def test_custom_omb_to_smpa(raw_record, cal_hi, cal_lo):
    cfg = ProcessingConfig(omb_to_smpa=np.eye(3))
    rec = fg_l1b(raw_record, cal_hi, cal_lo, include_omb=True, include_smpa=True, cfg=cfg)
    np.testing.assert_allclose(rec.get_field('smpa'), rec.get_field('omb'))


def _short_record():
    # hi range for 0-1 s, lo from 2 s
    return RawRecord(epoch=secs(np.arange(4)), b_123=np.tile([1.0, 2.0, 3.0], (4, 1)),
                     epoch_stat=secs([0, 2]), range=[1, 0], sample_rate=[8.0, 8.0])


def test_bcs_uses_spin_axis_of_own_range_table():
    # the lo table starts after the hi table, yet hi samples keep the hi axis
    tilted = np.array([0.0, 0.6, 0.8])
    hi = make_table(secs([-10]), mpa=(0.0, 0.0, 1.0), range_name='hi')
    lo = make_table(secs([-5]), mpa=tilted, range_name='lo')
    rec = fg_l1b(_short_record(), hi, lo, include_smpa=True, include_bcs=True)

    smpa, bcs = rec.get_field('smpa'), rec.get_field('bcs')
    np.testing.assert_allclose(bcs[:2], smpa[:2], atol=1e-12)
    np.testing.assert_allclose(bcs[2:, :3] @ tilted, smpa[2:, 2], atol=1e-12)
    np.testing.assert_allclose(bcs[:, 3], smpa[:, 3])
    assert rec.epoch_mpa.tolist() == secs([-10, -5]).tolist()


def test_bcs_spin_axis_when_tables_start_together():
    tilted = np.array([0.0, 0.6, 0.8])
    hi = make_table(secs([-10]), mpa=tilted, range_name='hi')
    lo = make_table(secs([-10]), mpa=(0.0, 0.0, 1.0), range_name='lo')
    rec = fg_l1b(_short_record(), hi, lo, include_smpa=True, include_bcs=True)

    smpa, bcs = rec.get_field('smpa'), rec.get_field('bcs')
    np.testing.assert_allclose(bcs[:2, :3] @ tilted, smpa[:2, 2], atol=1e-12)
    np.testing.assert_allclose(bcs[2:], smpa[2:], atol=1e-12)
