import logging

from gi.repository import GLib

logger = logging.getLogger(__name__)


class GLibIntervalTimer:
    """Main-loop interval timer backing ``UpdateScheduler``."""

    def add(self, interval_ms, callback):
        return GLib.timeout_add(int(interval_ms), callback)

    def remove(self, source_id):
        try:
            GLib.source_remove(source_id)
        except Exception as e:
            logger.debug("GLib source %s already gone: %s", source_id, e)


class FrameClockTimer:
    """Widget frame-clock ticks backing ``RenderLoop``."""

    def __init__(self, widget):
        self.widget = widget

    def add(self, callback):
        return self.widget.add_tick_callback(lambda _widget, _clock: callback())

    def remove(self, tick_id):
        self.widget.remove_tick_callback(tick_id)
