import numpy as np
import pytest


class FakeGL:
    """Records GL calls and tracks live object ids; no real context."""

    GL_FALSE = 0
    GL_TRUE = 1
    GL_TRIANGLES = 0x0004
    GL_UNSIGNED_BYTE = 0x1401
    GL_FLOAT = 0x1406
    GL_COLOR_BUFFER_BIT = 0x4000
    GL_TEXTURE_2D = 0x0DE1
    GL_UNPACK_ALIGNMENT = 0x0CF5
    GL_RED = 0x1903
    GL_RGB = 0x1907
    GL_RGBA = 0x1908
    GL_R8 = 0x8229
    GL_NEAREST = 0x2600
    GL_LINEAR = 0x2601
    GL_LINEAR_MIPMAP_NEAREST = 0x2701
    GL_TEXTURE_MAG_FILTER = 0x2800
    GL_TEXTURE_MIN_FILTER = 0x2801
    GL_TEXTURE_WRAP_S = 0x2802
    GL_TEXTURE_WRAP_T = 0x2803
    GL_REPEAT = 0x2901
    GL_CLAMP_TO_EDGE = 0x812F
    GL_TEXTURE0 = 0x84C0
    GL_ARRAY_BUFFER = 0x8892
    GL_STATIC_DRAW = 0x88E4
    GL_FRAGMENT_SHADER = 0x8B30
    GL_VERTEX_SHADER = 0x8B31
    GL_COMPILE_STATUS = 0x8B81
    GL_LINK_STATUS = 0x8B82

    def __init__(self):
        self.calls = []
        self.live = {"shader": set(), "program": set(), "vao": set(), "buffer": set(), "texture": set()}
        self.compile_fails = lambda source: False
        self.fail_link = False
        self._next_id = 1
        self._sources = {}
        self._uniforms = {}

    def __getattr__(self, name):
        if not name.startswith("gl"):
            raise AttributeError(name)

        def record(*args):
            self.calls.append((name, args))

        return record

    def _rec(self, name, *args):
        self.calls.append((name, args))

    def _new(self, kind):
        obj_id = self._next_id
        self._next_id += 1
        self.live[kind].add(obj_id)
        return obj_id

    def called(self, name):
        return [args for n, args in self.calls if n == name]

    def live_total(self):
        return sum(len(ids) for kind, ids in self.live.items() if kind != "shader")

    # shaders and programs

    def glCreateShader(self, stage):
        self._rec("glCreateShader", stage)
        return self._new("shader")

    def glShaderSource(self, shader, source):
        self._rec("glShaderSource", shader, source)
        self._sources[shader] = source

    def glGetShaderiv(self, shader, pname):
        return 0 if self.compile_fails(self._sources.get(shader, "")) else 1

    def glGetShaderInfoLog(self, shader):
        return b"0:1(1): error: fake compile failure"

    def glDeleteShader(self, shader):
        self._rec("glDeleteShader", shader)
        self.live["shader"].discard(shader)

    def glCreateProgram(self):
        self._rec("glCreateProgram")
        return self._new("program")

    def glGetProgramiv(self, program, pname):
        return 0 if self.fail_link else 1

    def glGetProgramInfoLog(self, program):
        return b"fake link failure"

    def glDeleteProgram(self, program):
        self._rec("glDeleteProgram", program)
        self.live["program"].discard(program)

    def glGetUniformLocation(self, program, name):
        return self._uniforms.setdefault(name, len(self._uniforms))

    def glGetAttribLocation(self, program, name):
        return 0

    # geometry and textures

    def glGenVertexArrays(self, n):
        return self._new("vao")

    def glGenBuffers(self, n):
        return self._new("buffer")

    def glGenTextures(self, n):
        return self._new("texture")

    def glDeleteVertexArrays(self, n, ids):
        self._rec("glDeleteVertexArrays", n, ids)
        for i in ids:
            self.live["vao"].discard(i)

    def glDeleteBuffers(self, n, ids):
        self._rec("glDeleteBuffers", n, ids)
        for i in ids:
            self.live["buffer"].discard(i)

    def glDeleteTextures(self, ids):
        self._rec("glDeleteTextures", ids)
        for i in ids:
            self.live["texture"].discard(i)


class FakeTimer:
    """Manually driven stand-in for GLib timeouts and the frame clock."""

    def __init__(self):
        self.sources = {}
        self.removed = []
        self._next_id = 1

    def add(self, *args):
        callback = args[-1]
        source_id = self._next_id
        self._next_id += 1
        self.sources[source_id] = callback
        return source_id

    def remove(self, source_id):
        self.removed.append(source_id)
        self.sources.pop(source_id, None)

    @property
    def active(self):
        return len(self.sources)

    def fire(self, times=1):
        for _ in range(times):
            for source_id, callback in list(self.sources.items()):
                if source_id not in self.sources:
                    continue
                if not callback():
                    self.sources.pop(source_id, None)


class FakeSource:
    """Audio source node double; ``feed`` pushes frames into the splitter."""

    def __init__(self, element):
        self.element = element
        self.sink = None
        self.connects = 0
        self.disconnects = 0
        self.resumes = 0
        self.closed = False

    def connect(self, sink):
        if self.sink is not None:
            raise RuntimeError("already connected")
        self.sink = sink
        self.connects += 1

    def disconnect(self):
        self.sink = None
        self.disconnects += 1

    def resume(self):
        self.resumes += 1

    def close(self):
        self.closed = True

    def feed(self, frames):
        if self.sink is not None:
            self.sink.push(frames)


class SourceFactory:
    def __init__(self):
        self.created = []

    def __call__(self, element):
        source = FakeSource(element)
        self.created.append(source)
        return source

    @property
    def last(self):
        return self.created[-1]


class FakeArtLoader:
    """Holds requests until the test resolves them."""

    def __init__(self):
        self.requests = []

    def request(self, ref, callback):
        self.requests.append((ref, callback))

    def resolve(self, index, image=None, error=None):
        _ref, callback = self.requests[index]
        callback(image, error)


def sine_frames(freq, rate=48000, count=4096, amplitude=0.5, right_scale=1.0):
    t = np.arange(count, dtype=np.float32) / rate
    left = amplitude * np.sin(2.0 * np.pi * freq * t)
    return np.stack([left, left * right_scale], axis=1).astype(np.float32)


@pytest.fixture
def fake_gl():
    return FakeGL()


@pytest.fixture
def source_factory():
    return SourceFactory()


@pytest.fixture
def element():
    return object()
