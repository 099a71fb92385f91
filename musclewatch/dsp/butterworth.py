"""
Butterworth IIR Filter
Second-order section filters with streaming and zero-phase execution

Sections are designed by bilinear transform with frequency prewarping
(wc = tan(pi * fc / fs)). Lowpass and highpass prototypes use Q = 1/sqrt(2);
bandpass uses the geometric centre of the two prewarped cutoffs.

Two cascade designs are available:
- REPEATED_SECTION: one biquad repeated order/2 times (default, matches
  the response of deployed firmware and recorded sessions)
- BUTTERWORTH: a true higher-order Butterworth from scipy.signal.butter
"""

import logging
import math
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from scipy import signal as sps

logger = logging.getLogger(__name__)


class FilterType(Enum):
    LOWPASS = 'lowpass'
    HIGHPASS = 'highpass'
    BANDPASS = 'bandpass'


class FilterDesign(Enum):
    REPEATED_SECTION = 'repeated_section'
    BUTTERWORTH = 'butterworth'


BUTTERWORTH_Q = 1.0 / math.sqrt(2.0)

# Shorter inputs are returned unchanged by filtfilt
MIN_FILTFILT_LENGTH = 4


def _prewarp(cutoff: float, sample_rate: float) -> float:
    return math.tan(math.pi * cutoff / sample_rate)


def _biquad_lowpass(wc: float) -> np.ndarray:
    norm = 1.0 / (1.0 + wc / BUTTERWORTH_Q + wc * wc)
    b0 = wc * wc * norm
    a1 = 2.0 * (wc * wc - 1.0) * norm
    a2 = (1.0 - wc / BUTTERWORTH_Q + wc * wc) * norm
    return np.array([b0, 2.0 * b0, b0, 1.0, a1, a2])


def _biquad_highpass(wc: float) -> np.ndarray:
    norm = 1.0 / (1.0 + wc / BUTTERWORTH_Q + wc * wc)
    a1 = 2.0 * (wc * wc - 1.0) * norm
    a2 = (1.0 - wc / BUTTERWORTH_Q + wc * wc) * norm
    return np.array([norm, -2.0 * norm, norm, 1.0, a1, a2])


def _biquad_bandpass(wc_low: float, wc_high: float) -> np.ndarray:
    w0 = math.sqrt(wc_low * wc_high)
    bw = wc_high - wc_low
    q = w0 / bw
    norm = 1.0 / (1.0 + w0 / q + w0 * w0)
    a1 = 2.0 * (w0 * w0 - 1.0) * norm
    a2 = (1.0 - w0 / q + w0 * w0) * norm
    return np.array([bw * norm, 0.0, -bw * norm, 1.0, a1, a2])


class ButterworthFilter:
    """
    Cascaded biquad filter with its own streaming state

    One instance per stream: the state vector is mutated by every
    process_sample()/process() call and is not safe for concurrent use.
    """

    def __init__(
            self,
            filter_type: FilterType,
            cutoff: float,
            sample_rate: float,
            cutoff_high: Optional[float] = None,
            order: int = 2,
            design: FilterDesign = FilterDesign.REPEATED_SECTION
    ):
        """
        Design the filter coefficients

        Args:
            filter_type: Lowpass, highpass or bandpass
            cutoff: Cutoff in Hz (lower edge for bandpass)
            sample_rate: Sampling frequency in Hz
            cutoff_high: Upper edge in Hz, required for bandpass
            order: Requested filter order
            design: Cascade design (repeated section or true Butterworth)
        """
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if order < 1:
            raise ValueError(f"order must be at least 1, got {order}")

        nyquist = sample_rate / 2.0
        if filter_type is FilterType.BANDPASS:
            if cutoff_high is None:
                raise ValueError("bandpass filter requires cutoff_high")
            if not 0 < cutoff < cutoff_high < nyquist:
                raise ValueError(
                    f"bandpass edges must satisfy 0 < {cutoff} < {cutoff_high} < {nyquist} Hz"
                )
        elif not 0 < cutoff < nyquist:
            raise ValueError(f"cutoff {cutoff} Hz must lie in (0, {nyquist}) Hz")

        self.filter_type = filter_type
        self.cutoff = cutoff
        self.cutoff_high = cutoff_high
        self.sample_rate = sample_rate
        self.order = order
        self.design = design

        if design is FilterDesign.BUTTERWORTH:
            self.sos = self._design_butterworth()
        else:
            self.sos = self._design_repeated_section()

        self._sections = [tuple(row) for row in self.sos.tolist()]
        self._state = np.zeros((self.sos.shape[0], 2))

        logger.debug(f"Designed {self!r} with {self.section_count} section(s)")

    # ------------------------------------------------------------------
    # Design
    # ------------------------------------------------------------------

    def _design_repeated_section(self) -> np.ndarray:
        if self.filter_type is FilterType.LOWPASS:
            section = _biquad_lowpass(_prewarp(self.cutoff, self.sample_rate))
        elif self.filter_type is FilterType.HIGHPASS:
            section = _biquad_highpass(_prewarp(self.cutoff, self.sample_rate))
        else:
            section = _biquad_bandpass(
                _prewarp(self.cutoff, self.sample_rate),
                _prewarp(self.cutoff_high, self.sample_rate),
            )
        repeats = max(1, self.order // 2)
        return np.tile(section, (repeats, 1))

    def _design_butterworth(self) -> np.ndarray:
        if self.filter_type is FilterType.BANDPASS:
            # butter() doubles the order for band filters
            return sps.butter(
                max(1, self.order // 2),
                [self.cutoff, self.cutoff_high],
                btype='bandpass',
                fs=self.sample_rate,
                output='sos',
            )
        btype = 'lowpass' if self.filter_type is FilterType.LOWPASS else 'highpass'
        return sps.butter(self.order, self.cutoff, btype=btype, fs=self.sample_rate, output='sos')

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @property
    def section_count(self) -> int:
        return len(self._sections)

    @property
    def state(self) -> np.ndarray:
        """Copy of the per-section streaming state"""
        return self._state.copy()

    def process_sample(self, x: float) -> float:
        """
        Filter one sample (Direct Form II transposed, O(1))

        Args:
            x: Input sample

        Returns:
            Filtered output sample
        """
        y = float(x)
        for (b0, b1, b2, _, a1, a2), z in zip(self._sections, self._state):
            out = b0 * y + z[0]
            z[0] = b1 * y - a1 * out + z[1]
            z[1] = b2 * y - a2 * out
            y = out
        return y

    def process(self, samples: Sequence[float]) -> np.ndarray:
        """
        Filter a block of samples, continuing from the streaming state

        Args:
            samples: Input block

        Returns:
            Filtered block (same length)
        """
        x = np.asarray(samples, dtype=float)
        if x.size == 0:
            return x.copy()
        y, zf = sps.sosfilt(self.sos, x, zi=self._state)
        self._state[:] = zf
        return y

    def filtfilt(self, samples: Sequence[float]) -> np.ndarray:
        """
        Zero-phase filtering (forward pass, reverse, forward pass, reverse)

        The streaming state is saved before and restored after, so this
        never affects subsequent process_sample() output.

        Args:
            samples: Input buffer

        Returns:
            Zero-phase filtered buffer; inputs of 3 samples or fewer are
            returned unchanged
        """
        x = np.asarray(samples, dtype=float)
        if x.size < MIN_FILTFILT_LENGTH:
            return x.copy()

        saved = self._state.copy()
        try:
            self.reset()
            forward = self.process(x)
            self.reset()
            backward = self.process(forward[::-1])
        finally:
            self._state[:] = saved

        return backward[::-1].copy()

    def reset(self):
        """Zero the streaming state in place"""
        self._state.fill(0.0)

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    @classmethod
    def ir_dc_lowpass(cls, sample_rate: float = 50.0) -> 'ButterworthFilter':
        """0.8 Hz order-4 lowpass isolating the IR baseline"""
        return cls(FilterType.LOWPASS, 0.8, sample_rate, order=4)

    @classmethod
    def heart_rate_bandpass(cls, sample_rate: float = 50.0) -> 'ButterworthFilter':
        """0.5-8 Hz order-4 bandpass covering the cardiac band"""
        return cls(FilterType.BANDPASS, 0.5, sample_rate, cutoff_high=8.0, order=4)

    def __repr__(self):
        band = f"{self.cutoff}-{self.cutoff_high}" if self.cutoff_high else f"{self.cutoff}"
        return (
            f"<ButterworthFilter({self.filter_type.value}, {band} Hz, "
            f"order={self.order}, fs={self.sample_rate}, design={self.design.value})>"
        )
