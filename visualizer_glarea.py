import gi
gi.require_version("Gtk", "4.0")
from gi.repository import Gtk
import logging

from app_errors import VizError, classify_exception, user_message
from audio_tap import AudioTap
from gpu_resources import GpuResourceManager
from viz_engine import VizEngine
from viz_timers import FrameClockTimer, GLibIntervalTimer

logger = logging.getLogger(__name__)


class VisualizerGLArea(Gtk.GLArea):
    """
    GTK host for ``VizEngine``: a transparent GL surface drawn over the album
    art. Clicking it cycles the visualization mode.
    """

    def __init__(self, player, settings, art_loader=None, on_error=None, on_art_changed=None, on_clicked=None):
        super().__init__()
        self.set_auto_render(False)
        self.set_has_alpha(True)
        self.set_hexpand(True)
        self.set_vexpand(True)
        self.connect("realize", self._on_realize)
        self.connect("unrealize", self._on_unrealize)
        self.connect("render", self._on_render)

        self.on_error = on_error
        self.on_clicked = on_clicked
        self._gl_failed = False
        self.engine = VizEngine.from_settings(
            settings,
            AudioTap,
            GpuResourceManager(),
            GLibIntervalTimer(),
            frame_timer=FrameClockTimer(self),
            request_frame=self.queue_render,
            art_loader=art_loader,
            on_error=on_error,
            on_art_changed=on_art_changed,
        )
        self.engine.bind_element(player)
        player.add_playing_callback(self.engine.on_playback_started)

        click = Gtk.GestureClick()
        click.connect("released", self._on_click)
        self.add_controller(click)

    def _report(self, exc):
        kind = classify_exception(exc)
        if self.on_error is not None:
            self.on_error(kind, user_message(kind, "visualizer"))

    def _on_click(self, gesture, n_press, x, y):
        if self.engine.initialized:
            try:
                self.engine.change_mode()
            except VizError as e:
                logger.warning("Mode change rejected: %s", e)
                self._report(e)
        if self.on_clicked is not None:
            self.on_clicked()

    def _on_realize(self, area):
        self.make_current()
        err = self.get_error()
        if err is not None:
            logger.error("GL context unavailable: %s", err)
            self._gl_failed = True
            self._report(VizError(f"GL context unavailable: {err}"))
            return
        try:
            self.engine.gl_setup()
        except Exception as e:
            logger.exception("GLArea setup failed")
            self._gl_failed = True
            self._report(e)

    def _on_unrealize(self, area):
        self.engine.teardown()
        if self._gl_failed:
            return
        self.make_current()
        if self.get_error() is not None:
            return
        self.engine.gl_release()

    def _on_render(self, area, context):
        if self._gl_failed:
            return True
        w = int(self.get_width() or 0)
        h = int(self.get_height() or 0)
        if w <= 1 or h <= 1:
            return True
        scale = max(1, int(self.get_scale_factor() or 1))
        self.engine.draw(w * scale, h * scale)
        return True
