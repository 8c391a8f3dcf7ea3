import logging

from gpu_resources import ANALYSER_UNITS

logger = logging.getLogger(__name__)

ANALYSER_SAMPLERS = ("uAnalyserL", "uAnalyserR", "uAnalyserM")


class Renderer:
    """One full-surface draw per display tick. Reads analysis state, never writes it."""

    def __init__(self, gpu, analyzer):
        self.gpu = gpu
        self.analyzer = analyzer
        self.draws = 0
        self.skipped = 0
        self._last_logged_program = None

    def draw(self, width, height, program):
        gl = self.gpu.gl
        w = max(1, int(width))
        h = max(1, int(height))
        gl.glViewport(0, 0, w, h)
        gl.glClearColor(0.0, 0.0, 0.0, 0.0)

        if program is None or program.destroyed:
            gl.glClear(gl.GL_COLOR_BUFFER_BIT)
            self.skipped += 1
            return False
        if self._last_logged_program is not program:
            logger.info("Rendering with program %s (%s)", program.name, program.dialect or "?")
            self._last_logged_program = program

        frame = self.analyzer.frame
        loudness = self.analyzer.loudness
        loc = program.loc
        gl.glUseProgram(program.program)
        gl.glUniform1f(loc("uWidth"), float(w))
        gl.glUniform1f(loc("uHeight"), float(h))
        gl.glUniform1f(loc("uBufferLength"), float(len(frame)))
        gl.glUniform1f(loc("uRMSL"), float(loudness.left))
        gl.glUniform1f(loc("uRMSR"), float(loudness.right))
        gl.glUniform1f(loc("uRMSM"), float(loudness.mono))

        if self.gpu.upload_analysis_textures(frame):
            for name, unit in zip(ANALYSER_SAMPLERS, ANALYSER_UNITS):
                if loc(name) >= 0:
                    gl.glUniform1i(loc(name), unit)
        self.gpu.bind_album_art(loc("uAlbumImage"))

        gl.glClear(gl.GL_COLOR_BUFFER_BIT)
        gl.glBindVertexArray(program.vao)
        gl.glDrawArrays(gl.GL_TRIANGLES, 0, 3)
        gl.glBindVertexArray(0)
        self.gpu.unbind_textures()
        gl.glUseProgram(0)
        self.draws += 1
        return True
