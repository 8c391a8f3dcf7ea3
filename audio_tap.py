import gi
import logging

gi.require_version("Gst", "1.0")
from gi.repository import Gst, GLib
import numpy as np

logger = logging.getLogger(__name__)

TAP_CAPS = "audio/x-raw,format=F32LE,layout=interleaved,channels=2"


class AudioTap:
    """
    Source node reading decoded PCM from the player's ``audio-filter`` slot.

    A buffer probe on the tap's src pad copies each buffer on the streaming
    thread and hands it to the GLib main loop; the splitter is only ever fed
    from the main loop.
    """

    def __init__(self, player):
        if player is None:
            raise ValueError("audio tap needs a player")
        try:
            Gst.init(None)
        except Exception as e:
            logger.debug("GStreamer init skipped/failed: %s", e)
        self.player = player
        self._sink = None
        self._epoch = 0
        self._probe_id = None
        self._closed = False

        self.bin = Gst.Bin.new("viz_tap")
        convert = Gst.ElementFactory.make("audioconvert", "viz_tap_convert")
        caps = Gst.ElementFactory.make("capsfilter", "viz_tap_caps")
        if convert is None or caps is None:
            raise RuntimeError("GStreamer audioconvert/capsfilter elements are missing")
        caps.set_property("caps", Gst.Caps.from_string(TAP_CAPS))
        self.bin.add(convert)
        self.bin.add(caps)
        convert.link(caps)
        self.bin.add_pad(Gst.GhostPad.new("sink", convert.get_static_pad("sink")))
        src_pad = caps.get_static_pad("src")
        self.bin.add_pad(Gst.GhostPad.new("src", src_pad))
        self._probe_pad = src_pad
        self._probe_id = src_pad.add_probe(Gst.PadProbeType.BUFFER, self._on_buffer)
        player.set_audio_filter(self.bin)
        logger.info("Audio tap attached to player")

    def connect(self, sink):
        if self._sink is not None:
            raise RuntimeError("audio tap is already connected; disconnect first")
        self._sink = sink

    def disconnect(self):
        self._sink = None
        # Drops buffers already queued for the previous sink.
        self._epoch += 1

    def resume(self):
        if self._closed:
            return
        if self.player.get_audio_filter() is not self.bin:
            self.player.set_audio_filter(self.bin)
            logger.info("Audio tap re-attached to player")

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.disconnect()
        if self._probe_id is not None:
            try:
                self._probe_pad.remove_probe(self._probe_id)
            except Exception as e:
                logger.debug("Failed to remove tap probe: %s", e)
            self._probe_id = None
        if self.player.get_audio_filter() is self.bin:
            self.player.set_audio_filter(None)
        self.bin.set_state(Gst.State.NULL)
        logger.info("Audio tap closed")

    def _on_buffer(self, pad, info):
        if self._sink is None:
            return Gst.PadProbeReturn.OK
        buf = info.get_buffer()
        if buf is None:
            return Gst.PadProbeReturn.OK
        data = buf.extract_dup(0, buf.get_size())
        GLib.idle_add(self._deliver, data, self._epoch)
        return Gst.PadProbeReturn.OK

    def _deliver(self, data, epoch):
        if epoch != self._epoch or self._sink is None:
            return False
        frames = np.frombuffer(data, dtype="<f4")
        usable = frames.size - (frames.size % 2)
        if usable <= 0:
            return False
        self._sink.push(frames[:usable].reshape(-1, 2))
        return False
