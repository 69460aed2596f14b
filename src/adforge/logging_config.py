from __future__ import annotations

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)-5s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    # Called once per app creation; avoid stacking handlers on reload.
    if any(getattr(h, "_adforge", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._adforge = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    # Vendor SDKs are chatty at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
