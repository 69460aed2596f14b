import logging

from adforge.logging_config import configure_logging


def test_configure_logging_is_idempotent() -> None:
    configure_logging("debug")
    configure_logging("info")

    root = logging.getLogger()
    ours = [h for h in root.handlers if getattr(h, "_adforge", False)]
    assert len(ours) == 1
    assert root.level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
