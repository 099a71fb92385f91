"""
IR-DC Baseline Processor Tests
"""

import numpy as np
import pytest

from musclewatch.dsp import IRDCProcessor
from musclewatch.models import PPGSample


def _feed(processor, values):
    result = None
    for value in values:
        result = processor.process_value(value)
    return result


def test_constant_signal_has_no_shift():
    processor = IRDCProcessor()
    result = _feed(processor, [100000.0] * 600)

    assert result.dc_value == pytest.approx(100000.0, rel=1e-6)
    assert result.rolling_mean == pytest.approx(100000.0, rel=1e-6)
    assert abs(result.shift) < 1.0
    assert not processor.has_significant_shift()


def test_shift_is_zero_until_reference_window_fills():
    processor = IRDCProcessor()
    result = _feed(processor, [100000.0] * 10)
    assert result.shift == 0.0


def test_baseline_drop_gives_positive_shift():
    processor = IRDCProcessor()
    _feed(processor, [100000.0] * 500)
    result = _feed(processor, [80000.0] * 100)

    assert result.shift > 1000.0
    assert processor.has_significant_shift()
    assert not processor.has_significant_shift(threshold=50000.0)


def test_activity_threshold_requires_calibration():
    processor = IRDCProcessor()
    processor.process_value(150000.0)
    assert processor.is_above_activity_threshold() is None
    assert processor.normalized_percent is None

    processor.set_calibration(100000.0)
    result = processor.process_value(150000.0)
    assert result.normalized_percent == pytest.approx(50.0)
    assert processor.is_above_activity_threshold() is True
    assert processor.is_above_activity_threshold(threshold=60.0) is False


def test_calibrate_from_history():
    rng = np.random.default_rng(11)
    processor = IRDCProcessor()
    _feed(processor, rng.uniform(99500.0, 100500.0, 800))

    assert processor.calibrate()
    assert processor.calibration_baseline == pytest.approx(100000.0, abs=200.0)


def test_calibrate_needs_enough_samples():
    processor = IRDCProcessor()
    _feed(processor, [100000.0] * 100)

    assert processor.calculate_calibration_baseline() is None
    assert not processor.calibrate()
    assert not processor.is_calibrated


def test_reset_keeps_calibration_full_reset_drops_it():
    processor = IRDCProcessor()
    processor.set_calibration(90000.0)
    _feed(processor, [100000.0] * 20)

    processor.reset()
    assert processor.sample_count == 0
    assert processor.current_dc is None
    assert processor.is_calibrated

    processor.full_reset()
    assert not processor.is_calibrated


def test_process_batch_of_samples():
    processor = IRDCProcessor()
    samples = [PPGSample(red=0, ir=100000 + i, green=0, timestamp=i / 50.0) for i in range(5)]
    results = processor.process_batch(samples)

    assert len(results) == 5
    assert results[-1].timestamp == pytest.approx(0.08)
    assert processor.recent_raw_values(2) == [100003.0, 100004.0]
    assert len(processor.recent_dc_values(3)) == 3


def test_set_calibration_rejects_non_positive():
    with pytest.raises(ValueError):
        IRDCProcessor().set_calibration(0.0)
