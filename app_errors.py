from __future__ import annotations


class VizError(Exception):
    kind = "unknown"


class VizConfigError(VizError):
    """Missing audio element or surface, invalid mode index or resolution."""

    kind = "config"


class ShaderBuildError(VizError):
    """Shader compile or program link failure; carries the driver info log."""

    kind = "gpu"

    def __init__(self, message: str, stage: str = "link", info_log: str = ""):
        super().__init__(message)
        self.stage = stage
        self.info_log = info_log


class ArtLoadError(VizError):
    kind = "not_found"

    def __init__(self, message: str, kind: str = "not_found"):
        super().__init__(message)
        self.kind = kind


def classify_exception(exc: Exception) -> str:
    if isinstance(exc, VizError):
        return exc.kind
    text = str(exc).lower()
    if any(k in text for k in ("500", "502", "503", "504", "internal server error", "bad gateway", "service unavailable")):
        return "server"
    if any(k in text for k in ("timeout", "timed out", "connection", "network", "dns", "unreachable")):
        return "network"
    if any(k in text for k in ("404", "not found", "no such")):
        return "not_found"
    if any(k in text for k in ("busy", "in use", "resource busy")):
        return "busy"
    if any(k in text for k in ("glsl", "shader", "compile", "link")):
        return "gpu"
    if any(k in text for k in ("decode", "parse", "invalid", "unrecognized image")):
        return "parse"
    return "unknown"


def user_message(kind: str, context: str = "general") -> str:
    if context == "visualizer":
        mapping = {
            "config": "Visualizer is not connected to the player.",
            "gpu": "Visualizer effect failed to load. Keeping the previous effect.",
            "not_found": "Album art not found. Showing placeholder.",
            "network": "Album art download failed. Showing placeholder.",
            "server": "Album art server is unavailable. Showing placeholder.",
            "parse": "Album art format is not supported. Showing placeholder.",
            "unknown": "Visualizer error.",
        }
        return mapping.get(kind, mapping["unknown"])

    if context == "playback":
        mapping = {
            "server": "Playback service is busy on server side. Please retry shortly.",
            "network": "Playback failed due to network issue.",
            "busy": "Output device is busy. Try another device.",
            "not_found": "Track stream is unavailable.",
            "unknown": "Playback failed. Please retry.",
        }
        return mapping.get(kind, mapping["unknown"])

    return "Operation failed. Please retry."
