import logging
import math

import numpy as np

from analyser import DEFAULT_FFT_SIZE, MAX_FFT_SIZE, MIN_FFT_SIZE, valid_fft_size
from app_errors import VizConfigError
from audio_graph import AudioGraph

logger = logging.getLogger(__name__)

SMOOTHING_ALPHA = 0.1


class AnalysisFrame:
    """Per-tick analysis output. ``mono`` and the RMS values are derived."""

    def __init__(self, length=0):
        n = max(0, int(length))
        self.left = np.zeros(n, dtype=np.uint8)
        self.right = np.zeros(n, dtype=np.uint8)
        self.mono = np.zeros(n, dtype=np.uint8)
        self.rms_left = 0.0
        self.rms_right = 0.0
        self.rms_mono = 0.0

    def __len__(self):
        return int(self.left.size)

    def clear(self):
        self.left.fill(0)
        self.right.fill(0)
        self.mono.fill(0)
        self.rms_left = 0.0
        self.rms_right = 0.0
        self.rms_mono = 0.0


class SmoothedLoudness:
    def __init__(self, alpha=SMOOTHING_ALPHA):
        self.alpha = max(0.0, min(1.0, float(alpha)))
        self.left = 0.0
        self.right = 0.0
        self.mono = 0.0

    def fold(self, raw_left, raw_right, raw_mono):
        a = self.alpha
        keep = 1.0 - a
        self.left = self.left * keep + _unit(raw_left) * a
        self.right = self.right * keep + _unit(raw_right) * a
        self.mono = self.mono * keep + _unit(raw_mono) * a

    def reset(self):
        self.left = 0.0
        self.right = 0.0
        self.mono = 0.0

    def as_tuple(self):
        return (self.left, self.right, self.mono)


def _unit(value):
    v = float(value)
    if math.isnan(v):
        return 0.0
    return max(0.0, min(1.0, v))


def byte_rms(data, scratch=None):
    """RMS of unsigned 8-bit samples centred on 128, normalised to [-1, 1]."""
    n = int(data.size)
    if n <= 0:
        return 0.0
    if scratch is None or scratch.size != n:
        scratch = np.empty(n, dtype=np.float32)
    np.subtract(data, 128, out=scratch, dtype=np.float32)
    scratch /= 128.0
    return math.sqrt(float(np.dot(scratch, scratch)) / n)


class SignalAnalyzer:
    """
    Stereo analysis over the current audio graph.

    ``configure`` (re)builds the analyser pair, ``sample_frame`` refreshes
    ``frame`` and ``loudness`` in place. Buffers are sized once per configure.
    """

    def __init__(self, source_factory, alpha=SMOOTHING_ALPHA):
        self.source_factory = source_factory
        self.element = None
        self.graph = None
        self.resolution = 0
        self.frame = AnalysisFrame(0)
        self.loudness = SmoothedLoudness(alpha)
        self._time_left = np.zeros(0, dtype=np.uint8)
        self._time_right = np.zeros(0, dtype=np.uint8)
        self._pair_sum = np.zeros(0, dtype=np.uint16)
        self._deviation = np.zeros(0, dtype=np.float32)

    @property
    def configured(self):
        return self.graph is not None and not self.graph.closed

    def bind(self, element):
        if element is None:
            raise VizConfigError("No audio element to bind")
        if self.element is element:
            return
        if self.graph is not None:
            self.graph.close()
            self.graph = None
            self.resolution = 0
        self.element = element

    def configure(self, resolution=DEFAULT_FFT_SIZE):
        """(Re)build the analyser pair; returns True when the graph was reused."""
        if self.element is None:
            raise VizConfigError("No audio element bound to the analyzer")
        if not valid_fft_size(resolution):
            raise VizConfigError(
                f"Analysis resolution must be a power of two in [{MIN_FFT_SIZE}, {MAX_FFT_SIZE}]: {resolution}"
            )
        resolution = int(resolution)
        graph, reused = AudioGraph.acquire_or_create(self.graph, self.element, resolution, self.source_factory)
        self.graph = graph
        if resolution != self.resolution or len(self.frame) != resolution // 2:
            half = resolution // 2
            self.frame = AnalysisFrame(half)
            self._time_left = np.zeros(resolution, dtype=np.uint8)
            self._time_right = np.zeros(resolution, dtype=np.uint8)
            self._pair_sum = np.zeros(half, dtype=np.uint16)
            self._deviation = np.zeros(resolution, dtype=np.float32)
        else:
            self.frame.clear()
        self.resolution = resolution
        logger.info("Analyzer configured: resolution=%s bins=%s reused=%s", resolution, resolution // 2, reused)
        return reused

    def resume(self):
        if self.graph is not None:
            self.graph.resume()

    def sample_frame(self):
        graph = self.graph
        if graph is None or graph.closed:
            return False
        frame = self.frame
        graph.analyser_left.get_byte_frequency_data(frame.left)
        graph.analyser_right.get_byte_frequency_data(frame.right)
        np.add(frame.left, frame.right, out=self._pair_sum, dtype=np.uint16)
        np.right_shift(self._pair_sum, 1, out=self._pair_sum)
        frame.mono[:] = self._pair_sum

        graph.analyser_left.get_byte_time_domain_data(self._time_left)
        graph.analyser_right.get_byte_time_domain_data(self._time_right)
        frame.rms_left = byte_rms(self._time_left, self._deviation)
        frame.rms_right = byte_rms(self._time_right, self._deviation)
        frame.rms_mono = (frame.rms_left + frame.rms_right) / 2.0
        self.loudness.fold(frame.rms_left, frame.rms_right, frame.rms_mono)
        return True

    def teardown(self):
        if self.graph is not None:
            graph = self.graph
            self.graph = None
            graph.close()
            logger.info("Analyzer torn down")
        self.resolution = 0
        self.frame.clear()
        self.loudness.reset()
