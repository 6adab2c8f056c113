import logging
import sys

_ROOT = "passvault"


def get_logger(name: str = _ROOT, level: int = None) -> logging.Logger:
    """Logger under the `passvault` hierarchy, writing single lines to stderr."""
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)
        root.setLevel(logging.WARNING)
        root.propagate = False
    if level is not None:
        root.setLevel(level)
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
