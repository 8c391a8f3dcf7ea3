import numpy as np
import pytest

from analyser import ChannelAnalyser, ChannelSplitter, blackman_window, valid_fft_size
from conftest import sine_frames


@pytest.mark.parametrize("size", [0, 16, 31, 48, 1000, 4096])
def test_invalid_fft_size_rejected(size):
    assert not valid_fft_size(size)
    with pytest.raises(ValueError):
        ChannelAnalyser(size)


@pytest.mark.parametrize("size", [32, 64, 128, 256, 512, 1024, 2048])
def test_bin_count_is_half_the_window(size):
    analyser = ChannelAnalyser(size)
    assert analyser.frequency_bin_count == size // 2
    out = np.zeros(size // 2, dtype=np.uint8)
    analyser.get_byte_frequency_data(out)
    assert out.shape == (size // 2,)


def test_blackman_window_is_periodic():
    w = blackman_window(32)
    assert w[0] == pytest.approx(0.0, abs=1e-6)
    assert w[16] == pytest.approx(1.0, abs=1e-6)


def test_silence_maps_to_floor_and_midline():
    analyser = ChannelAnalyser(256)
    analyser.push(np.zeros(256, dtype=np.float32))
    freq = np.full(128, 7, dtype=np.uint8)
    time_data = np.zeros(256, dtype=np.uint8)
    analyser.get_byte_frequency_data(freq)
    analyser.get_byte_time_domain_data(time_data)
    assert not freq.any()
    assert (time_data == 128).all()


def test_sine_peaks_at_its_bin():
    size, rate, k = 2048, 48000, 100
    analyser = ChannelAnalyser(size)
    analyser.push(sine_frames(k * rate / size, rate=rate, count=size)[:, 0])
    out = np.zeros(size // 2, dtype=np.uint8)
    analyser.get_byte_frequency_data(out)
    assert int(np.argmax(out)) == k
    assert out[k] > 200


def test_time_smoothing_rises_towards_steady_state():
    size = 1024
    analyser = ChannelAnalyser(size)
    analyser.push(sine_frames(48000 * 40 / size, count=size)[:, 0])
    out = np.zeros(size // 2, dtype=np.uint8)
    levels = []
    for _ in range(5):
        analyser.get_byte_frequency_data(out)
        levels.append(int(out[40]))
    assert levels == sorted(levels)
    assert levels[-1] > levels[0]


def test_time_domain_tracks_latest_samples():
    analyser = ChannelAnalyser(32)
    analyser.push(np.zeros(40, dtype=np.float32))
    analyser.push(np.full(10, 0.5, dtype=np.float32))
    analyser.push(np.full(3, 1.0, dtype=np.float32))
    out = np.zeros(32, dtype=np.uint8)
    analyser.get_byte_time_domain_data(out)
    assert (out[:19] == 128).all()
    assert (out[19:29] == 192).all()
    assert (out[29:] == 255).all()


def test_reset_clears_history():
    analyser = ChannelAnalyser(64)
    analyser.push(np.ones(64, dtype=np.float32))
    analyser.reset()
    out = np.zeros(64, dtype=np.uint8)
    analyser.get_byte_time_domain_data(out)
    assert (out == 128).all()


def test_splitter_routes_channels_independently():
    left = ChannelAnalyser(256)
    right = ChannelAnalyser(256)
    splitter = ChannelSplitter(2)
    splitter.connect(left, 0)
    splitter.connect(right, 1)
    splitter.push(sine_frames(3000, count=256, right_scale=0.0))

    l_out = np.zeros(128, dtype=np.uint8)
    r_out = np.zeros(128, dtype=np.uint8)
    left.get_byte_frequency_data(l_out)
    right.get_byte_frequency_data(r_out)
    assert l_out.max() > 0
    assert not r_out.any()


def test_splitter_feeds_mono_to_every_output():
    left = ChannelAnalyser(32)
    right = ChannelAnalyser(32)
    splitter = ChannelSplitter(2)
    splitter.connect(left, 0)
    splitter.connect(right, 1)
    splitter.push(np.full(32, 0.5, dtype=np.float32))
    for analyser in (left, right):
        out = np.zeros(32, dtype=np.uint8)
        analyser.get_byte_time_domain_data(out)
        assert (out == 192).all()


def test_splitter_disconnect_stops_delivery():
    analyser = ChannelAnalyser(32)
    splitter = ChannelSplitter(2)
    splitter.connect(analyser, 0)
    assert splitter.connected
    splitter.disconnect()
    assert not splitter.connected
    splitter.push(np.ones((32, 2), dtype=np.float32))
    out = np.zeros(32, dtype=np.uint8)
    analyser.get_byte_time_domain_data(out)
    assert (out == 128).all()


def test_splitter_rejects_unknown_output():
    with pytest.raises(ValueError):
        ChannelSplitter(2).connect(ChannelAnalyser(32), 2)
