import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single console handler on the ``piyakast`` logger tree.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    root = logging.getLogger("piyakast")
    root.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
