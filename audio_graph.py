import logging

from analyser import ChannelAnalyser, ChannelSplitter

logger = logging.getLogger(__name__)


class AudioGraph:
    """
    One playback session's analysis graph:
    source node -> stereo splitter -> (left analyser, right analyser).

    The source node is the only object bound to the audio element. It is
    connected to at most one splitter; ``rewire`` disconnects it before the new
    splitter is attached.
    """

    def __init__(self, element, source, fft_size):
        self.element = element
        self.source = source
        self.fft_size = int(fft_size)
        self.splitter = None
        self.analyser_left = None
        self.analyser_right = None
        self.closed = False
        self._wire(self.fft_size)

    @classmethod
    def acquire_or_create(cls, previous, element, fft_size, source_factory):
        """Return ``(graph, reused)``.

        Reuses ``previous`` (same element, not closed) by rewiring it to the new
        resolution; otherwise closes ``previous`` and builds a fresh source from
        ``element``.
        """
        if previous is not None and not previous.closed and previous.element is element:
            previous.rewire(fft_size)
            return previous, True
        if previous is not None:
            previous.close()
        source = source_factory(element)
        graph = cls(element, source, fft_size)
        logger.info("Audio graph created (fft_size=%s)", fft_size)
        return graph, False

    def _wire(self, fft_size):
        splitter = ChannelSplitter(2)
        left = ChannelAnalyser(fft_size)
        right = ChannelAnalyser(fft_size)
        splitter.connect(left, 0)
        splitter.connect(right, 1)
        self.source.connect(splitter)
        self.splitter = splitter
        self.analyser_left = left
        self.analyser_right = right
        self.fft_size = int(fft_size)

    def rewire(self, fft_size):
        if self.closed:
            raise RuntimeError("audio graph is closed")
        self.source.disconnect()
        if self.splitter is not None:
            self.splitter.disconnect()
        self._wire(fft_size)
        logger.debug("Audio graph rewired (fft_size=%s)", fft_size)

    @property
    def frequency_bin_count(self):
        return self.fft_size // 2

    def resume(self):
        if not self.closed:
            self.source.resume()

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            self.source.disconnect()
        finally:
            if self.splitter is not None:
                self.splitter.disconnect()
            self.source.close()
        logger.info("Audio graph closed")
