"""
Butterworth Filter Tests
DC gain, zero-phase state isolation and cascade design
"""

import numpy as np
import pytest

from musclewatch.dsp import ButterworthFilter, FilterDesign, FilterType


def _stream(filt, values):
    return [filt.process_sample(v) for v in values]


def test_lowpass_has_unity_dc_gain():
    lowpass = ButterworthFilter.ir_dc_lowpass(50.0)
    output = _stream(lowpass, [1000.0] * 1000)
    assert output[-1] == pytest.approx(1000.0, rel=1e-6)


def test_highpass_rejects_dc():
    highpass = ButterworthFilter(FilterType.HIGHPASS, 0.5, 50.0, order=4)
    output = _stream(highpass, [1000.0] * 3000)
    assert abs(output[-1]) < 1e-6


def test_bandpass_rejects_dc():
    bandpass = ButterworthFilter.heart_rate_bandpass(50.0)
    output = _stream(bandpass, [1000.0] * 3000)
    assert abs(output[-1]) < 1e-3


def test_true_butterworth_lowpass_dc_gain():
    lowpass = ButterworthFilter(FilterType.LOWPASS, 0.8, 50.0, order=4, design=FilterDesign.BUTTERWORTH)
    output = _stream(lowpass, [500.0] * 1000)
    assert output[-1] == pytest.approx(500.0, rel=1e-6)


def test_section_counts():
    assert ButterworthFilter(FilterType.LOWPASS, 1.0, 50.0, order=1).section_count == 1
    assert ButterworthFilter(FilterType.LOWPASS, 1.0, 50.0, order=2).section_count == 1
    assert ButterworthFilter(FilterType.LOWPASS, 1.0, 50.0, order=4).section_count == 2
    assert ButterworthFilter(FilterType.LOWPASS, 1.0, 50.0, order=6).section_count == 3

    true_bandpass = ButterworthFilter(
        FilterType.BANDPASS, 0.5, 50.0, cutoff_high=8.0, order=4, design=FilterDesign.BUTTERWORTH
    )
    assert true_bandpass.section_count == 2


def test_repeated_sections_are_identical():
    lowpass = ButterworthFilter(FilterType.LOWPASS, 0.8, 50.0, order=4)
    np.testing.assert_array_equal(lowpass.sos[0], lowpass.sos[1])
    assert lowpass.sos[0][3] == 1.0


def test_filtfilt_is_repeatable():
    rng = np.random.default_rng(1)
    signal = rng.normal(0.0, 100.0, 400)
    bandpass = ButterworthFilter.heart_rate_bandpass()

    first = bandpass.filtfilt(signal)
    second = bandpass.filtfilt(signal)
    np.testing.assert_array_equal(first, second)


def test_filtfilt_does_not_disturb_streaming_state():
    rng = np.random.default_rng(7)
    stream = rng.normal(100000.0, 500.0, 200)
    unrelated = rng.normal(0.0, 1000.0, 300)

    reference = ButterworthFilter.ir_dc_lowpass()
    interleaved = ButterworthFilter.ir_dc_lowpass()

    expected = _stream(reference, stream)

    head = _stream(interleaved, stream[:100])
    interleaved.filtfilt(unrelated)
    tail = _stream(interleaved, stream[100:])

    assert head + tail == expected


def test_filtfilt_short_input_passes_through():
    lowpass = ButterworthFilter.ir_dc_lowpass()
    np.testing.assert_array_equal(lowpass.filtfilt([1.0, 2.0, 3.0]), [1.0, 2.0, 3.0])


def test_filtfilt_has_no_phase_lag():
    sample_rate = 50.0
    t = np.arange(500) / sample_rate
    signal = np.sin(2 * np.pi * 1.2 * t)
    bandpass = ButterworthFilter.heart_rate_bandpass(sample_rate)

    filtered = bandpass.filtfilt(signal)
    middle = slice(150, 350)
    correlation = np.corrcoef(signal[middle], filtered[middle])[0, 1]
    assert correlation > 0.99


def test_block_processing_matches_streaming():
    rng = np.random.default_rng(3)
    signal = rng.normal(0.0, 10.0, 250)

    streaming = ButterworthFilter.heart_rate_bandpass()
    block = ButterworthFilter.heart_rate_bandpass()

    expected = _stream(streaming, signal)
    actual = np.concatenate([block.process(signal[:120]), block.process(signal[120:])])
    np.testing.assert_allclose(actual, expected, rtol=1e-9, atol=1e-9)


def test_reset_zeroes_state():
    lowpass = ButterworthFilter.ir_dc_lowpass()
    first = _stream(lowpass, [10.0, 20.0, 30.0])
    assert np.any(lowpass.state != 0.0)

    lowpass.reset()
    assert np.all(lowpass.state == 0.0)
    assert _stream(lowpass, [10.0, 20.0, 30.0]) == first


def test_invalid_construction():
    with pytest.raises(ValueError):
        ButterworthFilter(FilterType.BANDPASS, 0.5, 50.0)
    with pytest.raises(ValueError):
        ButterworthFilter(FilterType.LOWPASS, 30.0, 50.0)
    with pytest.raises(ValueError):
        ButterworthFilter(FilterType.BANDPASS, 8.0, 50.0, cutoff_high=0.5)
    with pytest.raises(ValueError):
        ButterworthFilter(FilterType.LOWPASS, 1.0, 0.0)
