import pytest

from app_errors import VizConfigError
from viz_modes import DEFAULT_MODE_NAMES, MODE_PRESETS, VisualizationMode, build_mode_table
import shaders


def test_default_table_matches_player_modes():
    table = build_mode_table()
    assert table.names() == list(DEFAULT_MODE_NAMES)
    assert [m.resolution for m in table] == [32, 2048, 32]
    assert table[0].shader is shaders.NOTHING


def test_cycling_wraps_after_full_table():
    table = build_mode_table(list(MODE_PRESETS))
    index = 0
    for _ in range(len(table)):
        index = table.next_index(index)
    assert index == 0


@pytest.mark.parametrize("bad", [-1, 3, 99, "1", 1.0, True, None])
def test_validate_index_rejects_out_of_range(bad):
    table = build_mode_table()
    with pytest.raises(VizConfigError):
        table.validate_index(bad)


def test_unknown_and_duplicate_names_are_dropped():
    table = build_mode_table(["Spectrum", "Nope", "Spectrum", "Album Art"])
    assert table.names() == ["Off", "Spectrum", "Album Art"]


def test_off_is_moved_to_front():
    table = build_mode_table(["Stereo Bars", "Off"])
    assert table.names() == ["Off", "Stereo Bars"]


def test_every_preset_has_a_valid_resolution():
    for name, mode in MODE_PRESETS.items():
        assert mode.name == name
        assert 32 <= mode.resolution <= 2048
        assert mode.resolution & (mode.resolution - 1) == 0


def test_mode_rejects_bad_resolution():
    with pytest.raises(ValueError):
        VisualizationMode("Broken", 100, shaders.NOTHING)
