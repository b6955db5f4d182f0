import numpy as np
import pandas as pd
import pytest

from conftest import secs
from mms_proc.records import (CoordFrame, InstrumentRecord, RawRecord,
                              RecordBuilder, with_magnitude)
from mms_proc.status import RecordSchemaError


def _builder(n=4):
    b = RecordBuilder(secs(np.arange(n)), secs([0]), [1], [8.0], level='l1b')
    return b.set_spin_axis(secs([0]), [[0.0, 0.0, 1.0]])


def test_with_magnitude_recomputes_norm():
    out = with_magnitude(np.array([[3.0, 4.0, 0.0, 99.0]]))
    np.testing.assert_allclose(out, [[3.0, 4.0, 0.0, 5.0]])
    with pytest.raises(ValueError):
        with_magnitude(np.zeros((3, 2)))


def test_raw_record_length_checks():
    with pytest.raises(RecordSchemaError, match='rows'):
        RawRecord(secs([0, 1]), np.zeros((3, 3)), secs([0]), [1], [8.0])
    with pytest.raises(RecordSchemaError, match='align'):
        RawRecord(secs([0, 1]), np.zeros((2, 3)), secs([0]), [1, 0], [8.0])
    with pytest.raises(RecordSchemaError):
        RawRecord(secs([0, 1]), np.zeros((2, 5)), secs([0]), [1], [8.0])


def test_raw_record_clip_keeps_status_in_effect(raw_record):
    clipped = raw_record.clip(secs(5), secs(12))
    assert len(clipped.epoch) == 8
    assert clipped.epoch_stat.tolist() == raw_record.epoch_stat.tolist()
    assert clipped.range.tolist() == [1, 0]


def test_raw_record_clip_after_status_change(raw_record):
    clipped = raw_record.clip(secs(12), None)
    assert len(clipped.epoch) == 8
    assert clipped.range.tolist() == [0]


def test_builder_publishes_only_included_frames():
    rec = (_builder()
           .add(CoordFrame.OMB, np.ones((4, 3)), include=False)
           .add(CoordFrame.SMPA, np.ones((4, 3)))
           .build())
    assert rec.frames == (CoordFrame.SMPA,)
    assert rec.get_field('smpa').shape == (4, 4)


def test_builder_lineage_requires_parent_in_same_build():
    b = _builder().add(CoordFrame.DMPA, np.ones((4, 3)))
    with pytest.raises(RecordSchemaError, match='smpa parent'):
        b.build()


def test_builder_length_mismatch():
    with pytest.raises(RecordSchemaError, match='samples'):
        _builder().add(CoordFrame.SENSOR, np.ones((3, 3)))


def test_builder_requires_spin_axis():
    b = RecordBuilder(secs(np.arange(2)), secs([0]), [1], [8.0], level='l1b')
    b.add(CoordFrame.SENSOR, np.ones((2, 3)))
    with pytest.raises(RecordSchemaError, match='mpa'):
        b.build()


def test_include_unknown_frame():
    with pytest.raises(RecordSchemaError, match='never computed'):
        _builder().include(CoordFrame.BCS, True)


def test_from_record_inherits_frames_and_notes():
    l1b = (_builder()
           .add(CoordFrame.SENSOR, np.ones((4, 3)), include=False)
           .add(CoordFrame.OMB, np.ones((4, 3)), include=False)
           .add(CoordFrame.SMPA, np.ones((4, 3)))
           .add(CoordFrame.BCS, np.ones((4, 3)))
           .note('calibrated')
           .build())
    l2 = (RecordBuilder.from_record(l1b, level='l2')
          .add(CoordFrame.DMPA, np.ones((4, 3)))
          .build())
    assert l2.level == 'l2'
    assert set(l2.frames) == {CoordFrame.SMPA, CoordFrame.BCS, CoordFrame.DMPA}
    assert l2.notes == ('calibrated',)


def test_skip_records_note_and_frame():
    rec = (_builder()
           .add(CoordFrame.SMPA, np.ones((4, 3)))
           .skip(CoordFrame.GSE, 'no attitude')
           .build())
    assert CoordFrame.GSE in rec.skipped
    assert not rec.has(CoordFrame.GSE)
    assert 'no attitude' in rec.notes


def test_record_is_immutable():
    rec = _builder().add(CoordFrame.SMPA, np.ones((4, 3))).build()
    with pytest.raises(ValueError):
        rec.get_field(CoordFrame.SMPA)[0, 0] = 5.0
    with pytest.raises(ValueError):
        rec.epoch[0] = rec.epoch[1]


def test_record_validation_rejects_bad_shapes():
    t = secs(np.arange(3))
    common = dict(epoch=t, epoch_stat=secs([0]), range=np.array([1]),
                  sample_rate=np.array([8.0]), epoch_mpa=secs([0]),
                  mpa=np.array([[0.0, 0.0, 1.0]]))
    with pytest.raises(RecordSchemaError, match='expected'):
        InstrumentRecord(fields={CoordFrame.BCS: np.ones((2, 4))}, **common)
    with pytest.raises(RecordSchemaError, match='present and skipped'):
        InstrumentRecord(fields={CoordFrame.GSE: np.ones((3, 4))},
                         skipped=frozenset({CoordFrame.GSE}), **common)


def test_missing_field_lookup():
    rec = _builder().add(CoordFrame.SMPA, np.ones((4, 3))).build()
    with pytest.raises(KeyError, match='no dmpa field'):
        rec.get_field(CoordFrame.DMPA)


def test_to_dataframe():
    rec = _builder().add(CoordFrame.SMPA, np.tile([3.0, 4.0, 0.0], (4, 1))).build()
    df = rec.to_dataframe('smpa')
    assert isinstance(df.index, pd.DatetimeIndex)
    assert df.index.name == 'epoch'
    assert list(df.columns) == ['x', 'y', 'z', 'mag']
    np.testing.assert_allclose(df['mag'].values, 5.0)


def test_builder_fill_overwrites_rows():
    b = _builder().add('123', np.ones((4, 3)))
    rec = b.fill('123', [False, True, False, False], -1e31).build()
    assert rec.get_field('123')[1].tolist() == [-1e31] * 4
    np.testing.assert_allclose(rec.get_field('123')[0], [1.0, 1.0, 1.0, np.sqrt(3.0)])
    with pytest.raises(RecordSchemaError, match='never computed'):
        _builder().fill('omb', [True] * 4, -1e31)
