import logging

import shaders
from analyser import valid_fft_size
from app_errors import VizConfigError

logger = logging.getLogger(__name__)


class VisualizationMode:
    def __init__(self, name, resolution, shader):
        if not valid_fft_size(resolution):
            raise ValueError(f"mode {name!r}: resolution must be a power of two in [32, 2048]")
        self.name = name
        self.resolution = int(resolution)
        self.shader = shader

    def __repr__(self):
        return f"VisualizationMode({self.name!r}, {self.resolution}, {self.shader.name!r})"


MODE_PRESETS = {
    "Off": VisualizationMode("Off", 32, shaders.NOTHING),
    "Spectrum": VisualizationMode("Spectrum", 2048, shaders.SPECTRUM),
    "Aberration": VisualizationMode("Aberration", 32, shaders.ABERRATION_HALF),
    "Aberration Soft": VisualizationMode("Aberration Soft", 32, shaders.ABERRATION_SOFT),
    "Aberration Full": VisualizationMode("Aberration Full", 32, shaders.ABERRATION_FULL),
    "Spectrum Simple": VisualizationMode("Spectrum Simple", 2048, shaders.SPECTRUM_SIMPLE),
    "Stereo Tint": VisualizationMode("Stereo Tint", 32, shaders.STEREO_TINT),
    "Stereo Bars": VisualizationMode("Stereo Bars", 32, shaders.STEREO_BARS),
    "Album Art": VisualizationMode("Album Art", 32, shaders.ALBUM_ART),
}

DEFAULT_MODE_NAMES = ("Off", "Spectrum", "Aberration")


class ModeTable:
    """Fixed, ordered list of modes; index 0 is the start state."""

    def __init__(self, modes):
        self._modes = tuple(modes)
        if not self._modes:
            raise ValueError("mode table needs at least one mode")

    def __len__(self):
        return len(self._modes)

    def __getitem__(self, index):
        return self._modes[index]

    def __iter__(self):
        return iter(self._modes)

    def names(self):
        return [m.name for m in self._modes]

    def next_index(self, index):
        return (int(index) + 1) % len(self._modes)

    def validate_index(self, index):
        if isinstance(index, bool) or not isinstance(index, int):
            raise VizConfigError(f"Visualization mode index must be an int: {index!r}")
        if index < 0 or index >= len(self._modes):
            raise VizConfigError(f"Invalid visualization mode {index} (have {len(self._modes)})")
        return index


def build_mode_table(names=None):
    if names is None:
        names = DEFAULT_MODE_NAMES
    modes = []
    seen = set()
    for name in names:
        mode = MODE_PRESETS.get(name)
        if mode is None:
            logger.warning("Unknown visualization mode preset: %s", name)
            continue
        if name in seen:
            continue
        seen.add(name)
        modes.append(mode)
    if not modes or modes[0].name != "Off":
        modes = [MODE_PRESETS["Off"]] + [m for m in modes if m.name != "Off"]
    return ModeTable(modes)
