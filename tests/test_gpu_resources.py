import numpy as np
import pytest

import shaders
from app_errors import ArtLoadError, ShaderBuildError
from gpu_resources import (
    CLAMP_NEAREST,
    MIPMAP_REPEAT,
    AlbumArtImage,
    GpuResourceManager,
    sampling_for_size,
)
from signal_analyzer import AnalysisFrame


def _image(width, height, has_alpha=True):
    channels = 4 if has_alpha else 3
    return AlbumArtImage(width, height, bytes(width * height * channels), has_alpha=has_alpha)


def _ready(fake_gl):
    gpu = GpuResourceManager(fake_gl)
    gpu.setup()
    return gpu


def test_sampling_choice_by_size():
    assert sampling_for_size(256, 256) == MIPMAP_REPEAT
    assert sampling_for_size(300, 200) == CLAMP_NEAREST
    assert sampling_for_size(256, 200) == CLAMP_NEAREST
    assert sampling_for_size(1, 1) == MIPMAP_REPEAT


def test_setup_creates_white_placeholder(fake_gl):
    gpu = _ready(fake_gl)
    assert gpu.ready
    assert gpu.album_texture is not None
    assert gpu.live_count("texture") == 1
    args = fake_gl.called("glTexImage2D")[0]
    assert args[3:5] == (1, 1)
    assert list(args[-1]) == [255, 255, 255, 255]


def test_power_of_two_art_is_mipmapped_and_repeats(fake_gl):
    gpu = _ready(fake_gl)
    assert gpu.upload_album_art(_image(256, 256)) == MIPMAP_REPEAT
    assert len(fake_gl.called("glGenerateMipmap")) == 1
    params = fake_gl.called("glTexParameteri")[-4:]
    assert (fake_gl.GL_TEXTURE_2D, fake_gl.GL_TEXTURE_MIN_FILTER, fake_gl.GL_LINEAR_MIPMAP_NEAREST) in params
    assert (fake_gl.GL_TEXTURE_2D, fake_gl.GL_TEXTURE_WRAP_S, fake_gl.GL_REPEAT) in params


def test_other_art_is_clamped_without_mipmaps(fake_gl):
    gpu = _ready(fake_gl)
    assert gpu.upload_album_art(_image(300, 200, has_alpha=False)) == CLAMP_NEAREST
    assert fake_gl.called("glGenerateMipmap") == []
    params = fake_gl.called("glTexParameteri")[-4:]
    assert (fake_gl.GL_TEXTURE_2D, fake_gl.GL_TEXTURE_WRAP_T, fake_gl.GL_CLAMP_TO_EDGE) in params
    assert fake_gl.called("glTexImage2D")[-1][2] == fake_gl.GL_RGB


def test_replacing_art_frees_previous_texture(fake_gl):
    gpu = _ready(fake_gl)
    gpu.upload_album_art(_image(64, 64))
    gpu.upload_album_art(_image(32, 32))
    assert gpu.live_count("texture") == 2
    gpu.upload_album_art(None)
    assert gpu.live_count("texture") == 1
    assert gpu.album_sampling == CLAMP_NEAREST


def test_art_rows_are_flipped():
    red = [255, 0, 0]
    blue = [0, 0, 255]
    image = AlbumArtImage(1, 2, bytes(red + blue), has_alpha=False)
    rows = image.upright_rows()
    assert rows[0].tolist() == blue
    assert rows[1].tolist() == red


def test_art_rows_honour_rowstride():
    image = AlbumArtImage(1, 2, bytes([1, 2, 3, 0, 4, 5, 6]), has_alpha=False, rowstride=4)
    assert image.upright_rows().tolist() == [[4, 5, 6], [1, 2, 3]]


def test_truncated_art_is_a_parse_error():
    image = AlbumArtImage(4, 4, bytes(10))
    with pytest.raises(ArtLoadError) as info:
        image.upright_rows()
    assert info.value.kind == "parse"


def test_compile_failure_leaks_nothing(fake_gl):
    gpu = _ready(fake_gl)
    baseline = gpu.live_objects
    fake_gl.compile_fails = lambda source: True
    with pytest.raises(ShaderBuildError) as info:
        gpu.compile_shader_source(shaders.SPECTRUM)
    assert info.value.stage == "vertex"
    assert "fake compile failure" in info.value.info_log
    assert gpu.live_objects == baseline
    assert fake_gl.live["shader"] == set()
    assert fake_gl.live["program"] == set()


def test_fragment_failure_deletes_vertex_stage(fake_gl):
    gpu = _ready(fake_gl)
    fake_gl.compile_fails = lambda source: "FragColor" in source
    with pytest.raises(ShaderBuildError) as info:
        gpu.compile_program(shaders.FULLSCREEN_VERTEX, shaders.NOTHING.fragment, "nothing")
    assert info.value.stage == "fragment"
    assert fake_gl.live["shader"] == set()


def test_link_failure_deletes_program(fake_gl):
    gpu = _ready(fake_gl)
    fake_gl.fail_link = True
    with pytest.raises(ShaderBuildError) as info:
        gpu.compile_program("void main() {}", "void main() {}", "broken")
    assert info.value.stage == "link"
    assert fake_gl.live["program"] == set()
    assert gpu.live_count("vao") == 0


def test_falls_back_to_gles_dialect(fake_gl):
    gpu = _ready(fake_gl)
    fake_gl.compile_fails = lambda source: "#version 330 core" in source
    handle = gpu.compile_shader_source(shaders.ALBUM_ART)
    assert handle.dialect == "300 es"
    assert handle.name == "album_art"


def test_program_owns_geometry_and_position_binding(fake_gl):
    gpu = _ready(fake_gl)
    handle = gpu.compile_shader_source(shaders.STEREO_TINT)
    assert (handle.program, 0, "aPosition") in fake_gl.called("glBindAttribLocation")
    assert handle.vao in fake_gl.live["vao"]
    assert handle.vbo in fake_gl.live["buffer"]
    assert handle.loc("uRMSM") >= 0
    assert handle.loc("uUnknown") == -1


def test_destroy_returns_to_baseline(fake_gl):
    gpu = _ready(fake_gl)
    baseline = gpu.live_objects
    handles = [gpu.compile_shader_source(s) for s in (shaders.NOTHING, shaders.SPECTRUM, shaders.ABERRATION_HALF)]
    assert gpu.live_count("program") == 3
    for handle in handles:
        gpu.destroy_program(handle)
        gpu.destroy_program(handle)
    assert gpu.live_objects == baseline
    assert fake_gl.live_total() == baseline
    assert all(h.destroyed for h in handles)


def test_analysis_textures_allocated_once_per_width(fake_gl):
    gpu = _ready(fake_gl)
    frame = AnalysisFrame(16)
    frame.left[:] = np.arange(16)
    assert gpu.upload_analysis_textures(frame)
    allocs = [a for a in fake_gl.called("glTexImage2D") if a[2] == fake_gl.GL_R8]
    assert len(allocs) == 3
    assert all(a[3] == 16 and a[4] == 1 and a[6] == fake_gl.GL_RED for a in allocs)

    gpu.upload_analysis_textures(frame)
    assert len(fake_gl.called("glTexSubImage2D")) == 3
    assert gpu.live_count("texture") == 4

    gpu.upload_analysis_textures(AnalysisFrame(1024))
    allocs = [a for a in fake_gl.called("glTexImage2D") if a[2] == fake_gl.GL_R8]
    assert len(allocs) == 6
    assert gpu.live_count("texture") == 4


def test_empty_frame_uploads_nothing(fake_gl):
    gpu = _ready(fake_gl)
    assert gpu.upload_analysis_textures(AnalysisFrame(0)) is False


def test_release_frees_everything(fake_gl):
    gpu = _ready(fake_gl)
    gpu.compile_shader_source(shaders.SPECTRUM)
    gpu.upload_album_art(_image(128, 128))
    gpu.upload_analysis_textures(AnalysisFrame(1024))
    gpu.release()
    assert gpu.live_objects == 0
    assert fake_gl.live_total() == 0
    assert not gpu.ready
