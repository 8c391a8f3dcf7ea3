import math

import numpy as np


MIN_FFT_SIZE = 32
MAX_FFT_SIZE = 2048
DEFAULT_FFT_SIZE = 2048
DEFAULT_MIN_DB = -100.0
DEFAULT_MAX_DB = -30.0
DEFAULT_TIME_SMOOTHING = 0.8


def is_power_of_two(value):
    try:
        n = int(value)
    except (TypeError, ValueError):
        return False
    return n > 0 and (n & (n - 1)) == 0


def valid_fft_size(value):
    return is_power_of_two(value) and MIN_FFT_SIZE <= int(value) <= MAX_FFT_SIZE


def blackman_window(size):
    # Periodic Blackman (denominator N, not N-1), as used by browser analysers.
    n = np.arange(size, dtype=np.float64)
    w = 0.42 - 0.5 * np.cos((2.0 * math.pi * n) / size) + 0.08 * np.cos((4.0 * math.pi * n) / size)
    return w.astype(np.float32)


class ChannelAnalyser:
    """
    Single-channel analyser holding the most recent ``fft_size`` samples.

    Frequency data: Blackman window -> real FFT -> |X|/N -> exponential time
    smoothing against the previous call -> dB -> bytes over [min_db, max_db].
    Time-domain data: ``128 * (1 + sample)`` clamped to a byte.
    """

    def __init__(self, fft_size=DEFAULT_FFT_SIZE, time_smoothing=DEFAULT_TIME_SMOOTHING,
                 min_db=DEFAULT_MIN_DB, max_db=DEFAULT_MAX_DB):
        if not valid_fft_size(fft_size):
            raise ValueError(f"fft_size must be a power of two in [{MIN_FFT_SIZE}, {MAX_FFT_SIZE}]: {fft_size}")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")
        self.fft_size = int(fft_size)
        self.frequency_bin_count = self.fft_size // 2
        self.time_smoothing = max(0.0, min(1.0, float(time_smoothing)))
        self.min_db = float(min_db)
        self.max_db = float(max_db)
        self._ring = np.zeros(self.fft_size, dtype=np.float32)
        self._write = 0
        self._ordered = np.zeros(self.fft_size, dtype=np.float32)
        self._window = blackman_window(self.fft_size)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)
        self._db = np.zeros(self.frequency_bin_count, dtype=np.float64)
        self._scale = 255.0 / (self.max_db - self.min_db)

    def push(self, samples):
        data = np.asarray(samples, dtype=np.float32).reshape(-1)
        n = self.fft_size
        if data.size == 0:
            return
        if data.size >= n:
            self._ring[:] = data[-n:]
            self._write = 0
            return
        end = self._write + data.size
        if end <= n:
            self._ring[self._write:end] = data
        else:
            first = n - self._write
            self._ring[self._write:] = data[:first]
            self._ring[: end - n] = data[first:]
        self._write = end % n

    def reset(self):
        self._ring.fill(0.0)
        self._write = 0
        self._smoothed.fill(0.0)

    def _fill_ordered(self):
        # Oldest sample first.
        w = self._write
        n = self.fft_size
        self._ordered[: n - w] = self._ring[w:]
        self._ordered[n - w:] = self._ring[:w]
        return self._ordered

    def get_float_frequency_data(self, out=None):
        frame = self._fill_ordered()
        np.multiply(frame, self._window, out=frame)
        spectrum = np.fft.rfft(frame)[: self.frequency_bin_count]
        mag = np.abs(spectrum) / float(self.fft_size)
        tau = self.time_smoothing
        self._smoothed *= tau
        self._smoothed += (1.0 - tau) * mag
        with np.errstate(divide="ignore"):
            np.log10(self._smoothed, out=self._db)
        self._db *= 20.0
        if out is None:
            return self._db
        count = min(len(out), self.frequency_bin_count)
        out[:count] = self._db[:count]
        return out

    def get_byte_frequency_data(self, out):
        db = self.get_float_frequency_data()
        count = min(len(out), self.frequency_bin_count)
        scaled = (db[:count] - self.min_db) * self._scale
        np.clip(scaled, 0.0, 255.0, out=scaled)
        out[:count] = scaled
        return out

    def get_byte_time_domain_data(self, out):
        frame = self._fill_ordered()
        count = min(len(out), self.fft_size)
        scaled = (frame[:count] + 1.0) * 128.0
        np.clip(scaled, 0.0, 255.0, out=scaled)
        out[:count] = scaled
        return out


class ChannelSplitter:
    """Routes interleaved frames (n, channels) to per-output analysers."""

    def __init__(self, outputs=2):
        self.outputs = int(outputs)
        self._targets = [[] for _ in range(self.outputs)]

    def connect(self, analyser, output=0):
        if output < 0 or output >= self.outputs:
            raise ValueError(f"splitter output out of range: {output}")
        if analyser not in self._targets[output]:
            self._targets[output].append(analyser)

    def disconnect(self):
        for targets in self._targets:
            targets.clear()

    @property
    def connected(self):
        return any(self._targets)

    def push(self, frames):
        data = np.asarray(frames, dtype=np.float32)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        channels = data.shape[1]
        if channels == 0:
            return
        for index, targets in enumerate(self._targets):
            if not targets:
                continue
            # Mono input feeds every output.
            column = data[:, min(index, channels - 1)]
            for analyser in targets:
                analyser.push(column)
