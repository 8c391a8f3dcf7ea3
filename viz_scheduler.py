import logging
import time

from app_logging import viz_trace_enabled

logger = logging.getLogger(__name__)

UPDATE_HZ = 30


class UpdateScheduler:
    """
    Fixed-rate analysis refresh, independent of the display rate.

    ``timer`` provides ``add(interval_ms, callback) -> id`` and ``remove(id)``
    (``viz_timers.GLibIntervalTimer`` in the app). A tick that arrives while the
    previous one is still running is dropped, never queued.
    """

    def __init__(self, timer, work, hz=UPDATE_HZ):
        self.timer = timer
        self.work = work
        self.hz = max(1, int(hz))
        self.interval_ms = max(1, int(round(1000.0 / self.hz)))
        self.ticks = 0
        self.dropped_ticks = 0
        self._source = None
        self._busy = False
        self._trace = viz_trace_enabled()

    @property
    def running(self):
        return self._source is not None

    def start(self):
        if self._source is not None:
            logger.info("Cancelling running update scheduler before restart (source=%s)", self._source)
            self.stop()
        self._busy = False
        self._source = self.timer.add(self.interval_ms, self.tick)
        logger.debug("Update scheduler started at %s Hz (source=%s)", self.hz, self._source)

    def stop(self):
        if self._source is None:
            return
        source = self._source
        self._source = None
        try:
            self.timer.remove(source)
        except Exception as e:
            logger.debug("Failed to remove update source %s: %s", source, e)

    def tick(self):
        if self._source is None:
            return False
        if self._busy:
            self.dropped_ticks += 1
            logger.debug("Update tick dropped (previous tick still running, dropped=%s)", self.dropped_ticks)
            return True
        self._busy = True
        started = time.monotonic()
        try:
            self.work()
            self.ticks += 1
        except Exception:
            logger.exception("Visualizer update tick failed")
        finally:
            self._busy = False
        if self._trace:
            elapsed_ms = (time.monotonic() - started) * 1000.0
            if elapsed_ms > self.interval_ms:
                logger.info("VIZ TRACE update overrun: %.1fms > %sms", elapsed_ms, self.interval_ms)
        return self._source is not None


class RenderLoop:
    """
    Display-synchronised loop. ``frame_timer`` provides ``add(callback) -> id``
    and ``remove(id)`` (the widget frame clock in the app); ``on_frame`` is
    called once per display refresh while running.
    """

    def __init__(self, frame_timer, on_frame):
        self.frame_timer = frame_timer
        self.on_frame = on_frame
        self.frames = 0
        self._source = None
        self._trace = viz_trace_enabled()
        self._last_frame_ts = 0.0

    @property
    def running(self):
        return self._source is not None

    def start(self):
        if self._source is not None:
            return
        self._last_frame_ts = 0.0
        self._source = self.frame_timer.add(self.tick)
        logger.debug("Render loop started (source=%s)", self._source)

    def stop(self):
        if self._source is None:
            return
        source = self._source
        self._source = None
        try:
            self.frame_timer.remove(source)
        except Exception as e:
            logger.debug("Failed to remove frame source %s: %s", source, e)

    def tick(self):
        if self._source is None:
            return False
        if self._trace:
            now = time.monotonic()
            if self._last_frame_ts > 0.0:
                gap_ms = (now - self._last_frame_ts) * 1000.0
                if gap_ms >= 70.0:
                    logger.info("VIZ TRACE render-gap: %.1fms", gap_ms)
            self._last_frame_ts = now
        self.frames += 1
        try:
            self.on_frame()
        except Exception:
            logger.exception("Visualizer frame callback failed")
        return self._source is not None
