import gi
import hashlib
import logging
import os
from threading import Thread

import requests

gi.require_version("GdkPixbuf", "2.0")
from gi.repository import GdkPixbuf, GLib

from app_errors import ArtLoadError
from gpu_resources import AlbumArtImage

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


def _local_path(ref):
    if ref.startswith("file://"):
        try:
            return GLib.filename_from_uri(ref)[0]
        except Exception as e:
            raise ArtLoadError(f"Bad album art URI {ref}: {e}", kind="parse") from e
    if "://" not in ref:
        return ref
    return None


class ArtLoader:
    """
    Resolves an album-art reference to decoded pixels off the main thread.

    Local paths and ``file://`` URIs are read directly. Remote URLs get a HEAD
    check first, then are downloaded once into ``cache_dir`` (md5-named).
    The callback always runs on the GLib main loop as ``callback(image, error)``;
    ``image`` is None whenever the placeholder should be shown.
    """

    def __init__(self, cache_dir, session=None, timeout=REQUEST_TIMEOUT):
        self.cache_dir = cache_dir
        self.session = session or requests.Session()
        self.timeout = timeout
        if cache_dir:
            os.makedirs(cache_dir, exist_ok=True)

    def request(self, ref, callback):
        def fetch():
            image = None
            error = None
            try:
                image = self.load(ref)
            except ArtLoadError as e:
                logger.warning("Album art unavailable (%s): %s", ref, e)
                error = e
            except Exception as e:
                logger.warning("Album art load failed (%s): %s", ref, e)
                error = ArtLoadError(str(e), kind="unknown")
            GLib.idle_add(self._deliver, callback, image, error)

        Thread(target=fetch, daemon=True, name="asavis-art").start()

    @staticmethod
    def _deliver(callback, image, error):
        callback(image, error)
        return False

    def resolve(self, ref):
        """Path of a readable local file for ``ref``."""
        path = _local_path(ref)
        if path is not None:
            if not os.path.isfile(path):
                raise ArtLoadError(f"No such album art file: {path}")
            return path

        f_path = os.path.join(self.cache_dir, hashlib.md5(ref.encode()).hexdigest())
        if os.path.exists(f_path):
            return f_path
        try:
            head = self.session.head(ref, timeout=self.timeout, allow_redirects=True)
            if not head.ok:
                raise ArtLoadError(f"Album art HEAD {ref} returned {head.status_code}")
            r = self.session.get(ref, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise ArtLoadError(f"Album art download failed: {e}", kind="network") from e
        tmp = f_path + ".part"
        with open(tmp, "wb") as f:
            f.write(r.content)
        os.replace(tmp, f_path)
        logger.info("Album art cached: %s -> %s", ref, f_path)
        return f_path

    def load(self, ref):
        path = self.resolve(ref)
        try:
            pb = GdkPixbuf.Pixbuf.new_from_file(path)
        except GLib.Error as e:
            raise ArtLoadError(f"Cannot decode album art {path}: {e}", kind="parse") from e
        return AlbumArtImage(
            pb.get_width(),
            pb.get_height(),
            pb.read_pixel_bytes().get_data(),
            has_alpha=pb.get_has_alpha(),
            rowstride=pb.get_rowstride(),
            source=path,
        )
