import logging

from app_errors import ArtLoadError, ShaderBuildError, VizConfigError, classify_exception, user_message
from app_settings import smoothing_alpha
from signal_analyzer import SMOOTHING_ALPHA, SignalAnalyzer
from viz_modes import build_mode_table
from viz_renderer import Renderer
from viz_scheduler import UPDATE_HZ, RenderLoop, UpdateScheduler

logger = logging.getLogger(__name__)


class VizEngine:
    """
    Audio-reactive visualizer state machine.

    Owns the signal analyzer, the active shader program and the two loops.
    Mode changes and album art are applied lazily on the next ``draw`` because
    GL objects may only be touched while the host's context is current.

    ``source_factory(element)`` builds the audio tap for a bound element,
    ``gpu`` is a ``GpuResourceManager``, ``update_timer`` drives the 30 Hz
    analysis refresh and ``frame_timer``/``request_frame`` the render loop.
    ``on_error(kind, message)`` receives user-facing failure messages.
    """

    def __init__(
        self,
        source_factory,
        gpu,
        update_timer,
        modes=None,
        frame_timer=None,
        request_frame=None,
        art_loader=None,
        on_error=None,
        on_art_changed=None,
        update_hz=UPDATE_HZ,
        alpha=SMOOTHING_ALPHA,
        enabled=True,
        initial_mode=0,
    ):
        self.analyzer = SignalAnalyzer(source_factory, alpha)
        self.gpu = gpu
        self.modes = modes if modes is not None else build_mode_table()
        self.renderer = Renderer(gpu, self.analyzer)
        self.update_scheduler = UpdateScheduler(update_timer, self._update_tick, update_hz)
        self.request_frame = request_frame
        self.render_loop = RenderLoop(frame_timer, self._on_frame) if frame_timer is not None else None
        self.art_loader = art_loader
        self.on_error = on_error
        self.on_art_changed = on_art_changed
        self.enabled = bool(enabled)

        self._initialized = False
        self._mode = max(0, min(len(self.modes) - 1, int(initial_mode or 0)))
        self._program = None
        self._program_mode = None
        self._pending_mode = None
        self._building = False
        self.program_builds = 0

        self._art_seq = 0
        self._art_image = None
        self._art_dirty = False

    @classmethod
    def from_settings(cls, settings, source_factory, gpu, update_timer, **kwargs):
        return cls(
            source_factory,
            gpu,
            update_timer,
            modes=build_mode_table(settings.get("viz_modes")),
            update_hz=settings.get("viz_update_hz", UPDATE_HZ),
            alpha=smoothing_alpha(settings),
            enabled=settings.get("viz_enabled", True),
            initial_mode=settings.get("viz_mode", 0),
            **kwargs,
        )

    # -- state -------------------------------------------------------------

    @property
    def initialized(self):
        return self._initialized

    @property
    def program(self):
        return self._program

    @property
    def program_mode(self):
        return self._program_mode

    @property
    def pending_mode(self):
        return self._pending_mode

    @property
    def art_image(self):
        return self._art_image

    def _require_initialized(self):
        if not self._initialized:
            raise VizConfigError("Visualizer not initialized")

    def _report(self, exc):
        kind = classify_exception(exc)
        message = user_message(kind, "visualizer")
        if self.on_error is not None:
            try:
                self.on_error(kind, message)
            except Exception:
                logger.exception("Visualizer error callback failed")
        return kind

    # -- lifecycle ---------------------------------------------------------

    def bind_element(self, element):
        self.analyzer.bind(element)

    def init(self, element=None):
        """Build the audio graph for the bound element and enter the current mode."""
        if element is not None:
            self.analyzer.bind(element)
        mode = self.modes[self._mode]
        self.analyzer.configure(mode.resolution)
        self._request_program(self._mode)
        self._initialized = True
        self.update_scheduler.start()
        logger.info("Visualizer initialized: mode=%s (%s) modes=%s", self._mode, mode.name, self.modes.names())

    def on_playback_started(self):
        if not self._initialized:
            logger.debug("Playback started before visualizer init; ignoring")
            return
        self.analyzer.resume()
        if not self.update_scheduler.running:
            self.update_scheduler.start()
        if self.render_loop is not None:
            self.render_loop.start()

    def on_track_changed(self, image_ref=None):
        self._require_initialized()
        # Nothing may sample or draw from the graph while it is rewired.
        self.update_scheduler.stop()
        if self.render_loop is not None:
            self.render_loop.stop()
        mode = self.modes[self._mode]
        self.analyzer.configure(mode.resolution)
        self.update_scheduler.start()
        self._load_art(image_ref)

    def on_playlist_changed(self, element=None):
        self.teardown()
        self._mode = 0
        self.init(element)

    def teardown(self):
        self.update_scheduler.stop()
        if self.render_loop is not None:
            self.render_loop.stop()
        self.analyzer.teardown()
        self._art_seq += 1
        if self._initialized:
            logger.info("Visualizer torn down")
        self._initialized = False

    def set_enabled(self, enabled):
        enabled = bool(enabled)
        if enabled == self.enabled:
            return
        self.enabled = enabled
        logger.info("Visualizer %s", "enabled" if enabled else "disabled")
        self._request_frame()

    # -- modes -------------------------------------------------------------

    def get_mode(self):
        return self._mode

    def change_mode(self):
        self._require_initialized()
        return self.set_mode(self.modes.next_index(self._mode))

    def set_mode(self, index):
        self._require_initialized()
        index = self.modes.validate_index(index)
        mode = self.modes[index]
        if mode.resolution != self.analyzer.resolution:
            self.analyzer.configure(mode.resolution)
        self._mode = index
        self._request_program(index)
        logger.info("Visualization mode -> %s (%s, resolution=%s)", index, mode.name, mode.resolution)
        self._request_frame()
        return index

    def _request_program(self, index):
        if self._pending_mode is not None and self._pending_mode != index:
            logger.debug("Pending mode %s superseded by %s", self._pending_mode, index)
        self._pending_mode = index

    def _apply_pending_program(self):
        if self._building or self._pending_mode is None:
            return
        self._building = True
        try:
            # A request made while building (e.g. from on_error) runs after it.
            while self._pending_mode is not None:
                index = self._pending_mode
                self._pending_mode = None
                self._build_program(index)
        finally:
            self._building = False

    def _build_program(self, index):
        mode = self.modes[index]
        try:
            handle = self.gpu.compile_shader_source(mode.shader)
        except ShaderBuildError as e:
            logger.error("Shader build for mode %s (%s) failed at %s: %s", index, mode.name, e.stage, e.info_log or e)
            if self._program is not None:
                logger.info("Keeping previous program %s", self._program.name)
            self._report(e)
            return False
        self.program_builds += 1
        previous = self._program
        self._program = handle
        self._program_mode = index
        if previous is not None:
            self.gpu.destroy_program(previous)
        logger.info("Program %s active for mode %s (%s)", handle.name, index, handle.dialect)
        return True

    # -- album art ---------------------------------------------------------

    def _load_art(self, image_ref):
        self._art_seq += 1
        seq = self._art_seq
        if not image_ref or self.art_loader is None:
            self._queue_art(None)
            return
        logger.debug("Album art request #%s: %s", seq, image_ref)
        self.art_loader.request(image_ref, lambda image, error: self._on_art_loaded(seq, image_ref, image, error))

    def _on_art_loaded(self, seq, image_ref, image, error=None):
        if seq != self._art_seq:
            logger.debug("Discarding superseded album art #%s (%s), latest=#%s", seq, image_ref, self._art_seq)
            return
        if error is not None:
            self._report(error)
            image = None
        self._queue_art(image)

    def _queue_art(self, image):
        self._art_image = image
        self._art_dirty = True
        if self.on_art_changed is not None:
            self.on_art_changed(image)
        self._request_frame()

    def _apply_pending_art(self):
        if not self._art_dirty:
            return
        self._art_dirty = False
        try:
            self.gpu.upload_album_art(self._art_image)
        except ArtLoadError as e:
            logger.warning("Album art upload failed, using placeholder: %s", e)
            self._art_image = None
            self.gpu.upload_album_art(None)
            self._report(e)

    # -- ticks and host hooks ------------------------------------------------

    def _update_tick(self):
        if self.enabled:
            self.analyzer.sample_frame()

    def _on_frame(self):
        self._request_frame()

    def _request_frame(self):
        if self.request_frame is not None:
            self.request_frame()

    def gl_setup(self):
        self.gpu.setup()
        if self._initialized and self._program is None and self._pending_mode is None:
            self._request_program(self._mode)
        if self._art_image is not None:
            self._art_dirty = True

    def draw(self, width, height):
        if not self.gpu.ready:
            return False
        self._apply_pending_program()
        self._apply_pending_art()
        if not self.enabled:
            return self.renderer.draw(width, height, None)
        return self.renderer.draw(width, height, self._program)

    def gl_release(self):
        if not self.gpu.ready:
            return
        self.gpu.release()
        self._program = None
        self._program_mode = None
        if self._initialized:
            self._request_program(self._mode)
