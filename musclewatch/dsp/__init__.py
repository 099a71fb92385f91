"""
Signal Processing for musclewatch
Filters, IR baseline tracking and heart-rate estimation for the PPG stream

Architecture:
- ButterworthFilter: biquad cascade, streaming (process_sample) and
  zero-phase (filtfilt) execution
- IRDCProcessor: DC baseline, rolling mean and shift of the IR channel
- AdaptiveHeartRateCalculator: per-sample HR with adaptive threshold
- PPGHeartRateProcessor: zero-phase HR with quality score

Every instance owns its state and serves exactly one stream.

Usage:
    lowpass = ButterworthFilter.ir_dc_lowpass()
    dc = lowpass.process_sample(ir_value)

    processor = PPGHeartRateProcessor()
    result = processor.process_batch(packet.samples)
    if result and result.is_valid:
        print(result.bpm)
"""

from .butterworth import ButterworthFilter, FilterDesign, FilterType
from .config import SignalConfig
from .heart_rate import (
    AdaptiveHeartRateCalculator,
    HeartRateResult,
    PPGHeartRateProcessor,
    PPGProcessorResult,
)
from .ir_dc import IRDCProcessor, IRDCResult

__all__ = [
    'ButterworthFilter',
    'FilterDesign',
    'FilterType',
    'SignalConfig',
    'IRDCProcessor',
    'IRDCResult',
    'AdaptiveHeartRateCalculator',
    'HeartRateResult',
    'PPGHeartRateProcessor',
    'PPGProcessorResult',
]

__version__ = '1.0.0'
