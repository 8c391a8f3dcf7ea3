import logging

import numpy as np

from analyser import is_power_of_two
from app_errors import ArtLoadError, ShaderBuildError
from shaders import glsl_variants

logger = logging.getLogger(__name__)
try:
    from OpenGL import GL
except Exception:  # pragma: no cover - optional runtime dependency
    GL = None


UNIFORM_NAMES = (
    "uWidth",
    "uHeight",
    "uBufferLength",
    "uRMSL",
    "uRMSR",
    "uRMSM",
    "uAnalyserL",
    "uAnalyserR",
    "uAnalyserM",
    "uAlbumImage",
)
POSITION_ATTRIBUTE = "aPosition"
POSITION_LOCATION = 0

# Fixed texture units.
ALBUM_ART_UNIT = 0
ANALYSER_UNITS = (1, 2, 3)  # left, right, mono

# Single oversized triangle covering clip space.
FULLSCREEN_TRIANGLE = np.array([-1.0, -1.0, 3.0, -1.0, -1.0, 3.0], dtype=np.float32)

PLACEHOLDER_PIXEL = np.array([255, 255, 255, 255], dtype=np.uint8)


class TextureSampling:
    def __init__(self, mipmap, min_filter, mag_filter, wrap):
        self.mipmap = mipmap
        self.min_filter = min_filter
        self.mag_filter = mag_filter
        self.wrap = wrap

    def __eq__(self, other):
        if not isinstance(other, TextureSampling):
            return NotImplemented
        return (self.mipmap, self.min_filter, self.mag_filter, self.wrap) == (
            other.mipmap, other.min_filter, other.mag_filter, other.wrap
        )

    def __repr__(self):
        return f"TextureSampling(mipmap={self.mipmap}, min={self.min_filter}, mag={self.mag_filter}, wrap={self.wrap})"


MIPMAP_REPEAT = TextureSampling(True, "LINEAR_MIPMAP_NEAREST", "NEAREST", "REPEAT")
CLAMP_NEAREST = TextureSampling(False, "NEAREST", "NEAREST", "CLAMP_TO_EDGE")


def sampling_for_size(width, height):
    """Mipmapped repeat for power-of-two images, clamped nearest otherwise."""
    if is_power_of_two(width) and is_power_of_two(height):
        return MIPMAP_REPEAT
    return CLAMP_NEAREST


class AlbumArtImage:
    """Decoded 8-bit RGB/RGBA pixels, top row first, rows ``rowstride`` apart."""

    def __init__(self, width, height, pixels, has_alpha=True, rowstride=None, source=None):
        self.width = int(width)
        self.height = int(height)
        self.has_alpha = bool(has_alpha)
        self.channels = 4 if self.has_alpha else 3
        self.rowstride = int(rowstride) if rowstride else self.width * self.channels
        self.pixels = pixels
        self.source = source

    def upright_rows(self):
        """Tightly packed rows, bottom row first (GL texture origin)."""
        w, h, stride = self.width, self.height, self.rowstride
        row_bytes = w * self.channels
        if w <= 0 or h <= 0 or stride < row_bytes:
            raise ArtLoadError(f"Invalid album art geometry {w}x{h} stride={stride}", kind="parse")
        raw = np.frombuffer(self.pixels, dtype=np.uint8)
        needed = stride * (h - 1) + row_bytes
        if raw.size < needed:
            raise ArtLoadError(f"Album art pixel buffer too short ({raw.size} < {needed})", kind="parse")
        padded = np.zeros(stride * h, dtype=np.uint8)
        count = min(raw.size, padded.size)
        padded[:count] = raw[:count]
        rows = padded.reshape(h, stride)[:, :row_bytes][::-1]
        return np.ascontiguousarray(rows)


class ShaderProgramHandle:
    def __init__(self, name, program, vao, vbo, uniforms, attributes, dialect=""):
        self.name = name
        self.program = program
        self.vao = vao
        self.vbo = vbo
        self.uniforms = uniforms
        self.attributes = attributes
        self.dialect = dialect
        self.destroyed = False

    def loc(self, uniform_name):
        return self.uniforms.get(uniform_name, -1)

    def __repr__(self):
        return f"ShaderProgramHandle({self.name!r}, program={self.program}, destroyed={self.destroyed})"


def _decode_log(raw):
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", "replace").strip()
    return str(raw).strip()


class GpuResourceManager:
    """
    Owns every GL object of the visualizer: programs with their geometry, the
    three analysis textures, the album-art texture and its 1x1 placeholder.

    All methods expect the GL context to be current.
    """

    def __init__(self, gl=None):
        self.gl = gl if gl is not None else GL
        if self.gl is None:
            raise RuntimeError("PyOpenGL is required for the visualizer")
        self.ready = False
        self.album_sampling = None
        self._placeholder = None
        self._album_tex = None
        self._analysis_tex = [None, None, None]
        self._analysis_width = 0
        self._programs = set()
        self._owned = {"program": set(), "vao": set(), "buffer": set(), "texture": set()}

    @property
    def live_objects(self):
        return sum(len(ids) for ids in self._owned.values())

    def live_count(self, kind):
        return len(self._owned[kind])

    @property
    def album_texture(self):
        return self._album_tex if self._album_tex is not None else self._placeholder

    def _track(self, kind, obj_id):
        self._owned[kind].add(obj_id)
        return obj_id

    def _untrack(self, kind, obj_id):
        self._owned[kind].discard(obj_id)

    # -- lifecycle ---------------------------------------------------------

    def setup(self):
        if self.ready:
            return
        gl = self.gl
        tex = self._track("texture", gl.glGenTextures(1))
        gl.glActiveTexture(gl.GL_TEXTURE0 + ALBUM_ART_UNIT)
        gl.glBindTexture(gl.GL_TEXTURE_2D, tex)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glTexImage2D(gl.GL_TEXTURE_2D, 0, gl.GL_RGBA, 1, 1, 0, gl.GL_RGBA, gl.GL_UNSIGNED_BYTE, PLACEHOLDER_PIXEL)
        self._apply_sampling(CLAMP_NEAREST)
        gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        self._placeholder = tex
        self.album_sampling = CLAMP_NEAREST
        self.ready = True
        logger.info("GPU resources ready (placeholder texture=%s)", tex)

    def release(self):
        gl = self.gl
        for handle in list(self._programs):
            self.destroy_program(handle)
        textures = [t for t in self._analysis_tex if t is not None]
        if self._album_tex is not None:
            textures.append(self._album_tex)
        if self._placeholder is not None:
            textures.append(self._placeholder)
        if textures:
            gl.glDeleteTextures(textures)
            for t in textures:
                self._untrack("texture", t)
        self._analysis_tex = [None, None, None]
        self._analysis_width = 0
        self._album_tex = None
        self._placeholder = None
        self.album_sampling = None
        self.ready = False
        logger.info("GPU resources released (remaining=%s)", self.live_objects)

    # -- programs ----------------------------------------------------------

    def _compile_stage(self, stage_type, source, stage_name):
        gl = self.gl
        shader = gl.glCreateShader(stage_type)
        gl.glShaderSource(shader, source)
        gl.glCompileShader(shader)
        if not gl.glGetShaderiv(shader, gl.GL_COMPILE_STATUS):
            info = _decode_log(gl.glGetShaderInfoLog(shader))
            gl.glDeleteShader(shader)
            raise ShaderBuildError(f"{stage_name} shader failed to compile: {info}", stage=stage_name, info_log=info)
        return shader

    def compile_program(self, vertex_source, fragment_source, name=""):
        gl = self.gl
        vs = self._compile_stage(gl.GL_VERTEX_SHADER, vertex_source, "vertex")
        try:
            fs = self._compile_stage(gl.GL_FRAGMENT_SHADER, fragment_source, "fragment")
        except ShaderBuildError:
            gl.glDeleteShader(vs)
            raise

        program = gl.glCreateProgram()
        gl.glAttachShader(program, vs)
        gl.glAttachShader(program, fs)
        gl.glBindAttribLocation(program, POSITION_LOCATION, POSITION_ATTRIBUTE)
        gl.glLinkProgram(program)
        linked = gl.glGetProgramiv(program, gl.GL_LINK_STATUS)
        info = "" if linked else _decode_log(gl.glGetProgramInfoLog(program))
        # Shaders are only needed until link.
        gl.glDetachShader(program, vs)
        gl.glDetachShader(program, fs)
        gl.glDeleteShader(vs)
        gl.glDeleteShader(fs)
        if not linked:
            gl.glDeleteProgram(program)
            raise ShaderBuildError(f"program {name or '?'} failed to link: {info}", stage="link", info_log=info)
        self._track("program", program)

        uniforms = {u: gl.glGetUniformLocation(program, u) for u in UNIFORM_NAMES}
        attributes = {POSITION_ATTRIBUTE: gl.glGetAttribLocation(program, POSITION_ATTRIBUTE)}
        position = attributes[POSITION_ATTRIBUTE]
        if position < 0:
            position = POSITION_LOCATION
        vao, vbo = self._build_geometry(position)
        handle = ShaderProgramHandle(name, program, vao, vbo, uniforms, attributes)
        self._programs.add(handle)
        logger.debug("Program %s linked (id=%s vao=%s vbo=%s)", name, program, vao, vbo)
        return handle

    def compile_shader_source(self, shader):
        """Build ``shader`` trying each GLSL dialect; raises the last failure."""
        last_err = None
        for dialect, vs, fs in glsl_variants(shader):
            try:
                handle = self.compile_program(vs, fs, name=shader.name)
            except ShaderBuildError as e:
                logger.debug("GLSL %s build of %s failed: %s", dialect, shader.name, e)
                last_err = e
                continue
            handle.dialect = dialect
            return handle
        raise last_err

    def _build_geometry(self, position):
        gl = self.gl
        vao = self._track("vao", gl.glGenVertexArrays(1))
        vbo = self._track("buffer", gl.glGenBuffers(1))
        gl.glBindVertexArray(vao)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, vbo)
        gl.glBufferData(gl.GL_ARRAY_BUFFER, FULLSCREEN_TRIANGLE.nbytes, FULLSCREEN_TRIANGLE, gl.GL_STATIC_DRAW)
        gl.glEnableVertexAttribArray(position)
        gl.glVertexAttribPointer(position, 2, gl.GL_FLOAT, gl.GL_FALSE, 0, None)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)
        gl.glBindVertexArray(0)
        return vao, vbo

    def destroy_program(self, handle):
        if handle is None or handle.destroyed:
            return
        gl = self.gl
        if handle.vbo is not None:
            gl.glDeleteBuffers(1, [handle.vbo])
            self._untrack("buffer", handle.vbo)
        if handle.vao is not None:
            gl.glDeleteVertexArrays(1, [handle.vao])
            self._untrack("vao", handle.vao)
        gl.glDeleteProgram(handle.program)
        self._untrack("program", handle.program)
        handle.destroyed = True
        self._programs.discard(handle)
        logger.debug("Program %s destroyed (id=%s)", handle.name, handle.program)

    # -- textures ----------------------------------------------------------

    def _apply_sampling(self, sampling):
        gl = self.gl
        wrap = getattr(gl, "GL_" + sampling.wrap)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_MIN_FILTER, getattr(gl, "GL_" + sampling.min_filter))
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_MAG_FILTER, getattr(gl, "GL_" + sampling.mag_filter))
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_WRAP_S, wrap)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_WRAP_T, wrap)

    def upload_album_art(self, image):
        """Replace the album texture; ``None`` falls back to the placeholder."""
        gl = self.gl
        old = self._album_tex
        if image is None:
            self._album_tex = None
            sampling = CLAMP_NEAREST
        else:
            rows = image.upright_rows()
            fmt = gl.GL_RGBA if image.has_alpha else gl.GL_RGB
            sampling = sampling_for_size(image.width, image.height)
            tex = self._track("texture", gl.glGenTextures(1))
            gl.glActiveTexture(gl.GL_TEXTURE0 + ALBUM_ART_UNIT)
            gl.glBindTexture(gl.GL_TEXTURE_2D, tex)
            gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
            gl.glTexImage2D(gl.GL_TEXTURE_2D, 0, fmt, image.width, image.height, 0, fmt, gl.GL_UNSIGNED_BYTE, rows)
            if sampling.mipmap:
                gl.glGenerateMipmap(gl.GL_TEXTURE_2D)
            self._apply_sampling(sampling)
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
            self._album_tex = tex
            logger.info("Album art uploaded: %sx%s (%s)", image.width, image.height, sampling)
        if old is not None:
            gl.glDeleteTextures([old])
            self._untrack("texture", old)
        self.album_sampling = sampling
        return sampling

    def bind_album_art(self, uniform_loc=-1):
        gl = self.gl
        gl.glActiveTexture(gl.GL_TEXTURE0 + ALBUM_ART_UNIT)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self.album_texture or 0)
        if uniform_loc is not None and uniform_loc >= 0:
            gl.glUniform1i(uniform_loc, ALBUM_ART_UNIT)

    def upload_analysis_textures(self, frame):
        width = len(frame)
        if width <= 0:
            return False
        gl = self.gl
        realloc = width != self._analysis_width
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        for slot, (unit, data) in enumerate(zip(ANALYSER_UNITS, (frame.left, frame.right, frame.mono))):
            tex = self._analysis_tex[slot]
            gl.glActiveTexture(gl.GL_TEXTURE0 + unit)
            if tex is None:
                tex = self._track("texture", gl.glGenTextures(1))
                self._analysis_tex[slot] = tex
                gl.glBindTexture(gl.GL_TEXTURE_2D, tex)
                self._apply_sampling(CLAMP_NEAREST)
                realloc_this = True
            else:
                gl.glBindTexture(gl.GL_TEXTURE_2D, tex)
                realloc_this = realloc
            if realloc_this:
                gl.glTexImage2D(gl.GL_TEXTURE_2D, 0, gl.GL_R8, width, 1, 0, gl.GL_RED, gl.GL_UNSIGNED_BYTE, data)
            else:
                gl.glTexSubImage2D(gl.GL_TEXTURE_2D, 0, 0, 0, width, 1, gl.GL_RED, gl.GL_UNSIGNED_BYTE, data)
        if realloc:
            logger.debug("Analysis textures sized to %s", width)
        self._analysis_width = width
        return True

    def unbind_textures(self):
        gl = self.gl
        for unit in (ALBUM_ART_UNIT,) + ANALYSER_UNITS:
            gl.glActiveTexture(gl.GL_TEXTURE0 + unit)
            gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        gl.glActiveTexture(gl.GL_TEXTURE0)
