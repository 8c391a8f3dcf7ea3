"""
GLSL sources for the visualization modes.

Bodies are written without a ``#version`` line; ``glsl_variants`` prefixes the
desktop core header first and the GLES header second, matching the order the
program builder tries them in.
"""


class ShaderSource:
    def __init__(self, name, vertex, fragment):
        self.name = name
        self.vertex = vertex
        self.fragment = fragment

    def __repr__(self):
        return f"ShaderSource({self.name!r})"


GLSL_HEADERS = (
    ("330 core", "#version 330 core\n", "#version 330 core\n"),
    ("300 es", "#version 300 es\n", "#version 300 es\nprecision mediump float;\n"),
)


def glsl_variants(shader):
    """Yield ``(dialect, vertex_src, fragment_src)`` in preference order."""
    for dialect, vs_header, fs_header in GLSL_HEADERS:
        yield dialect, vs_header + shader.vertex, fs_header + shader.fragment


FULLSCREEN_VERTEX = """
in vec2 aPosition;
void main() {
    gl_Position = vec4(aPosition, 0.0, 1.0);
}
"""

# Shared uniform block; unused uniforms are optimised out and resolve to -1.
_FRAGMENT_PRELUDE = """
out vec4 FragColor;
uniform float uWidth;
uniform float uHeight;
uniform float uBufferLength;
uniform float uRMSL;
uniform float uRMSR;
uniform float uRMSM;
uniform sampler2D uAnalyserL;
uniform sampler2D uAnalyserR;
uniform sampler2D uAnalyserM;
uniform sampler2D uAlbumImage;

vec2 surface_uv() {
    return gl_FragCoord.xy / vec2(uWidth, uHeight);
}
"""


def _fragment(body):
    return _FRAGMENT_PRELUDE + body


NOTHING = ShaderSource("nothing", FULLSCREEN_VERTEX, _fragment("""
void main() {
    FragColor = vec4(0.0, 0.0, 0.0, 0.0);
}
"""))

ALBUM_ART = ShaderSource("album_art", FULLSCREEN_VERTEX, _fragment("""
void main() {
    FragColor = texture(uAlbumImage, surface_uv());
}
"""))

STEREO_BARS = ShaderSource("stereo_bars", FULLSCREEN_VERTEX, _fragment("""
void main() {
    vec2 uv = surface_uv();
    float level = (uv.x < 0.5) ? uRMSL : uRMSR;
    if (uv.y < level) {
        FragColor = vec4(1.0, 1.0, 1.0, 0.85);
    } else {
        FragColor = vec4(0.0, 0.0, 0.0, 0.0);
    }
}
"""))

STEREO_TINT = ShaderSource("stereo_tint", FULLSCREEN_VERTEX, _fragment("""
void main() {
    vec4 img = texture(uAlbumImage, surface_uv());
    img.r *= uRMSL;
    img.b *= uRMSR;
    FragColor = vec4(img.rgb, 1.0);
}
"""))


def _aberration(name, strength):
    return ShaderSource(name, FULLSCREEN_VERTEX, _fragment("""
void main() {
    vec2 uv = surface_uv();
    vec2 toCenter = uv - vec2(0.5, 0.5);
    float dist = length(toCenter);
    float maxShift = uRMSM * %.2f;
    vec2 dir = (dist > 0.0) ? (toCenter / dist) : vec2(0.0);
    vec2 shift = dir * dist * maxShift;
    float r = texture(uAlbumImage, uv + shift).r;
    float g = texture(uAlbumImage, uv).g;
    float b = texture(uAlbumImage, uv - shift).b;
    FragColor = vec4(r, g, b, 1.0);
}
""" % strength))


ABERRATION_SOFT = _aberration("aberration_soft", 0.1)
ABERRATION_HALF = _aberration("aberration_half", 0.5)
ABERRATION_FULL = _aberration("aberration_full", 1.0)

SPECTRUM_SIMPLE = ShaderSource("spectrum_simple", FULLSCREEN_VERTEX, _fragment("""
void main() {
    vec2 uv = surface_uv();
    float index = floor(uv.x * uWidth);
    float magnitude = texture(uAnalyserM, vec2(index / uWidth, 0.5)).r;
    if (magnitude > uv.y) {
        FragColor = vec4(1.0, 1.0, 1.0, 1.0);
    } else {
        FragColor = vec4(0.0, 0.0, 0.0, 0.0);
    }
}
"""))

SPECTRUM = ShaderSource("spectrum", FULLSCREEN_VERTEX, _fragment("""
void main() {
    vec2 uv = surface_uv();
    vec4 col = texture(uAlbumImage, uv);
    float index = floor(uv.x * uWidth);
    float magnitude = texture(uAnalyserM, vec2(index / uWidth, 0.5)).r;
    if (magnitude > uv.y) {
        col = col.gbra * 1.5;
    }
    FragColor = col;
}
"""))
