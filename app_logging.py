import logging
import os
from pathlib import Path
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# Chatty below WARNING unless the app itself runs at DEBUG.
NOISY_LOGGERS = ("urllib3", "OpenGL", "OpenGL.acceleratesupport")
# Loggers that emit the ASAVIS_VIZ_TRACE timing lines (at INFO).
TRACE_LOGGERS = ("viz_scheduler", "viz_renderer")


def _parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        val = int(raw)
    except ValueError:
        return default
    return val if val >= 1 else default


def _parse_level(level_name: str, default: int) -> int:
    level = getattr(logging, level_name.strip().upper(), default)
    return level if isinstance(level, int) else default


def viz_trace_enabled() -> bool:
    return str(os.getenv("ASAVIS_VIZ_TRACE", "0")).strip().lower() in ("1", "true", "yes", "on")


def parse_module_levels(raw: str, default_level: int) -> tuple[dict[str, int], list[str]]:
    """
    Parse "viz_engine=DEBUG,gpu_resources=INFO" into {name: level}.
    Returns the mapping and the entries that could not be parsed.
    """
    levels: dict[str, int] = {}
    rejected: list[str] = []
    for item in (raw or "").split(","):
        entry = item.strip()
        if not entry:
            continue
        name, sep, level_name = entry.partition("=")
        if not sep or not name.strip() or not level_name.strip():
            rejected.append(entry)
            continue
        levels[name.strip()] = _parse_level(level_name, default_level)
    return levels, rejected


def _file_handler(log_file: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=_parse_int_env("ASAVIS_LOG_ROTATE_BYTES", 5 * 1024 * 1024),
        backupCount=_parse_int_env("ASAVIS_LOG_BACKUP_COUNT", 3),
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """
    Configure application-wide logging once.

    Env vars:
    - ASAVIS_LOG_LEVEL: DEBUG/INFO/WARNING/ERROR (default: INFO)
    - ASAVIS_LOG_FILE: optional path to a rotating log file
    - ASAVIS_LOG_ROTATE_BYTES: max file size before rotation (default: 5242880)
    - ASAVIS_LOG_BACKUP_COUNT: number of rotated files to keep (default: 3)
    - ASAVIS_LOG_MODULE_LEVELS: comma-separated module overrides
      e.g. "viz_engine=DEBUG,audio_tap=INFO"
    - ASAVIS_VIZ_TRACE: log update overruns and render gaps (default: off)
    """
    level = _parse_level(os.getenv("ASAVIS_LOG_LEVEL", "INFO"), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # Repeated setup must not duplicate output.
    root.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    console = logging.StreamHandler()
    console.setLevel(logging.NOTSET)
    console.setFormatter(formatter)
    root.addHandler(console)

    log_file = os.getenv("ASAVIS_LOG_FILE")
    if log_file:
        root.addHandler(_file_handler(log_file, logging.NOTSET, formatter))

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if viz_trace_enabled():
        for name in TRACE_LOGGERS:
            logging.getLogger(name).setLevel(logging.INFO)
        root.info("Visualizer tick tracing enabled")

    levels, rejected = parse_module_levels(os.getenv("ASAVIS_LOG_MODULE_LEVELS", ""), level)
    for entry in rejected:
        root.warning("Invalid module-level logging entry: %s", entry)
    for name, module_level in levels.items():
        logging.getLogger(name).setLevel(module_level)
        root.info("Log level override: %s=%s", name, logging.getLevelName(module_level))
