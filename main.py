import os
import logging
import sys
os.environ["MESA_LOG_LEVEL"] = "error"

import gi
gi.require_version('Gtk', '4.0')
gi.require_version('Adw', '1')
from gi.repository import Gtk, Adw, GLib, Gio

from app_errors import classify_exception, user_message
from app_logging import setup_logging
from app_settings import DEFAULT_SETTINGS_PATH, load_settings, save_settings as persist_settings
from art_loader import ArtLoader
from audio_player import AudioPlayer
from visualizer_glarea import VisualizerGLArea

logger = logging.getLogger(__name__)

COVER_NAMES = ("cover.jpg", "cover.png", "folder.jpg", "folder.png", "front.jpg", "front.png")


def find_cover(uri):
    """Cover image next to a local track, or None."""
    try:
        path = GLib.filename_from_uri(uri)[0] if uri.startswith("file://") else None
    except Exception:
        path = None
    if not path:
        return None
    folder = os.path.dirname(path)
    for name in COVER_NAMES:
        candidate = os.path.join(folder, name)
        if os.path.isfile(candidate):
            return candidate
    return None


class AsaApp(Adw.Application):
    def __init__(self):
        super().__init__(application_id="net.asavis.player", flags=Gio.ApplicationFlags.HANDLES_OPEN)
        GLib.set_application_name("asa player")
        self.settings_file = DEFAULT_SETTINGS_PATH
        self.settings = load_settings(self.settings_file)
        self.player = AudioPlayer(on_eos_callback=self.on_next_track, on_error_callback=self.on_playback_error)
        self.player.set_volume(self.settings.get("volume", 80) / 100.0)
        self.art_loader = ArtLoader(self.settings.get("art_cache_dir"))

        self.tracks = []
        self.current_index = -1
        self.win = None
        self.viz = None
        self.toast_overlay = None
        self.art_picture = None
        self._pending_tracks = None

    def do_startup(self):
        Adw.Application.do_startup(self)
        for name, accel, handler in (
            ("toggle-play", "space", lambda *_a: self.toggle_play()),
            ("next-mode", "m", lambda *_a: self.next_mode()),
            ("next-track", "Right", lambda *_a: self.on_next_track()),
            ("toggle-viz", "v", lambda *_a: self.toggle_viz()),
        ):
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", handler)
            self.add_action(action)
            self.set_accels_for_action(f"app.{name}", [accel])

    def do_shutdown(self):
        logger.info("Shutting down application...")
        if self.viz is not None and self.viz.engine.initialized:
            self.settings["viz_mode"] = self.viz.engine.get_mode()
        self.save_settings()
        if self.player is not None:
            self.player.cleanup()
        Adw.Application.do_shutdown(self)

    def save_settings(self):
        try:
            persist_settings(self.settings_file, self.settings)
        except Exception as e:
            logger.warning("Failed to save settings to %s: %s", self.settings_file, e)

    def do_activate(self):
        if self.win is not None:
            self.win.present()
            return

        self.win = Adw.ApplicationWindow(application=self, title="asa player", default_width=640, default_height=640)
        box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL)
        box.append(Adw.HeaderBar())
        self.toast_overlay = Adw.ToastOverlay()
        self.toast_overlay.set_vexpand(True)
        box.append(self.toast_overlay)
        self.win.set_content(box)

        overlay = Gtk.Overlay()
        self.art_picture = Gtk.Picture()
        self.art_picture.set_content_fit(Gtk.ContentFit.COVER)
        overlay.set_child(self.art_picture)
        self.viz = VisualizerGLArea(
            self.player,
            self.settings,
            art_loader=self.art_loader,
            on_error=self.show_error,
            on_art_changed=self.on_art_changed,
            on_clicked=self.on_visualizer_clicked,
        )
        overlay.add_overlay(self.viz)
        self.toast_overlay.set_child(overlay)
        self.win.present()

        tracks = self._pending_tracks
        self._pending_tracks = None
        if tracks is None:
            last = self.settings.get("last_uri", "")
            tracks = [last] if last else []
        self.set_playlist(tracks)

    def do_open(self, files, n_files, hint):
        uris = [f.get_uri() for f in files]
        if self.win is None:
            self._pending_tracks = uris
            self.activate()
        else:
            self.set_playlist(uris)
            self.win.present()

    def set_playlist(self, uris):
        engine = self.viz.engine
        self.tracks = list(uris)
        self.current_index = -1
        if engine.initialized:
            engine.on_playlist_changed(self.player)
        else:
            engine.init()
        logger.info("Playlist set: %s tracks", len(self.tracks))
        if self.tracks:
            self.load_track(0)

    def load_track(self, index):
        if not self.tracks:
            return
        self.current_index = index % len(self.tracks)
        uri = self.tracks[self.current_index]
        self.player.load(uri)
        self.settings["last_uri"] = uri
        self.viz.engine.on_track_changed(find_cover(uri))

    def on_next_track(self):
        if not self.tracks:
            return False
        self.load_track(self.current_index + 1)
        self.player.play()
        return False

    def toggle_play(self):
        if not self.tracks:
            return
        if self.player.is_playing():
            self.player.pause()
        else:
            self.player.play()

    def next_mode(self):
        engine = self.viz.engine
        if engine.initialized:
            self.settings["viz_mode"] = engine.change_mode()

    def toggle_viz(self):
        engine = self.viz.engine
        engine.set_enabled(not engine.enabled)
        self.settings["viz_enabled"] = engine.enabled

    def on_visualizer_clicked(self):
        if self.viz.engine.initialized:
            self.settings["viz_mode"] = self.viz.engine.get_mode()
        if self.tracks and not self.player.is_playing():
            self.player.play()

    def on_art_changed(self, image):
        if self.art_picture is None:
            return
        if image is not None and image.source:
            self.art_picture.set_filename(image.source)
        else:
            self.art_picture.set_paintable(None)

    def on_playback_error(self, message):
        kind = classify_exception(Exception(message))
        self.show_error(kind, user_message(kind, "playback"))
        return False

    def show_error(self, kind, message):
        logger.warning("User-facing error (%s): %s", kind, message)
        if self.toast_overlay is not None:
            self.toast_overlay.add_toast(Adw.Toast.new(message))


def main():
    setup_logging()
    return AsaApp().run(sys.argv)


if __name__ == "__main__":
    sys.exit(main())
