import logging


_pylog = logging.getLogger("svc")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class _Log:
    def human(self, level: str, message: str, **fields):
        levelno = _LEVELS.get(level.lower(), logging.INFO)
        _pylog.log(levelno, message, extra=fields)


log = _Log()


def human_reason(exc_or_msg: object) -> str:
    """Normalize an exception or message to a single readable line."""

    if exc_or_msg is None:
        return "-"
    if isinstance(exc_or_msg, str):
        text = " ".join(exc_or_msg.split())
        return text or "-"
    if isinstance(exc_or_msg, BaseException):
        text = " ".join(str(exc_or_msg).split())
        label = exc_or_msg.__class__.__name__
        return f"{label}: {text}" if text else label
    return "-"
