import gi
import logging

gi.require_version('Gst', '1.0')
from gi.repository import Gst, GLib

logger = logging.getLogger(__name__)


class AudioPlayer:
    def __init__(self, on_eos_callback=None, on_error_callback=None):
        """
        playbin wrapper. The visualizer's tap sits in the ``audio-filter`` slot,
        which playbin only accepts while stopped, so it is (re)applied on load.
        """
        try:
            Gst.init(None)
        except Exception as e:
            logger.debug("GStreamer init skipped/failed: %s", e)

        self.pipeline = Gst.ElementFactory.make("playbin", "player")
        if self.pipeline is None:
            raise RuntimeError("GStreamer playbin element is missing")

        self.uri = None
        self.audio_filter = None
        self.output_state = "idle"
        self.output_error = None
        self.on_eos_callback = on_eos_callback
        self.on_error_callback = on_error_callback
        self._playing_callbacks = []

        bus = self.pipeline.get_bus()
        bus.add_signal_watch()
        bus.connect("message", self.on_message)

    def add_playing_callback(self, callback):
        self._playing_callbacks.append(callback)

    def set_audio_filter(self, element):
        self.audio_filter = element
        _, state, _ = self.pipeline.get_state(0)
        if state in (Gst.State.NULL, Gst.State.READY):
            self.pipeline.set_property("audio-filter", element)
        else:
            logger.debug("audio-filter change deferred until next load (state=%s)", state.value_nick)

    def get_audio_filter(self):
        return self.audio_filter

    def cleanup(self):
        logger.info("Cleaning up audio resources...")
        self.stop()
        self.pipeline.get_bus().remove_signal_watch()

    def load(self, uri):
        self.stop()
        self.uri = uri
        self.pipeline.set_property("uri", uri)
        self.pipeline.set_property("audio-filter", self.audio_filter)
        self.output_state = "loaded"
        logger.info("Loaded %s", uri)

    def play(self):
        self.pipeline.set_state(Gst.State.PLAYING)

    def pause(self):
        self.pipeline.set_state(Gst.State.PAUSED)

    def stop(self):
        self.pipeline.set_state(Gst.State.NULL)

    def is_playing(self):
        _, state, _ = self.pipeline.get_state(1)
        return state == Gst.State.PLAYING

    def seek(self, position_seconds):
        self.pipeline.seek_simple(Gst.Format.TIME, Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT, int(position_seconds * Gst.SECOND))

    def get_position(self):
        try:
            success, pos = self.pipeline.query_position(Gst.Format.TIME)
            success_dur, dur = self.pipeline.query_duration(Gst.Format.TIME)
            if success and success_dur:
                return pos / Gst.SECOND, dur / Gst.SECOND
        except Exception as e:
            logger.debug("Failed to query position/duration: %s", e)
        return 0, 0

    def set_volume(self, vol):
        self.pipeline.set_property("volume", vol)

    def _notify_playing(self):
        for cb in list(self._playing_callbacks):
            try:
                cb()
            except Exception:
                logger.exception("Playing callback failed")
        return False

    def on_message(self, bus, message):
        t = message.type
        if t == Gst.MessageType.EOS:
            self.output_state = "eos"
            if self.on_eos_callback: GLib.idle_add(self.on_eos_callback)

        elif t == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            logger.error("GStreamer error: code=%s msg=%s debug=%s", err.code, err.message, debug or "")
            self.output_state = "error"
            self.output_error = err.message
            self.stop()
            if self.on_error_callback:
                GLib.idle_add(self.on_error_callback, err.message)

        elif t == Gst.MessageType.STATE_CHANGED:
            if message.src is not self.pipeline:
                return
            old, new, pending = message.parse_state_changed()
            if new == Gst.State.PLAYING:
                self.output_state = "playing"
                GLib.idle_add(self._notify_playing)
            elif new == Gst.State.PAUSED and old == Gst.State.PLAYING:
                self.output_state = "paused"
