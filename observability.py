"""
Logging setup and error reporting.

`capture_exception` is the single place server-side failures are reported,
tagged with the operation, the acting user and the target document.
"""
import logging
from typing import Optional

logger = logging.getLogger("storefront")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(h, "_storefront", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storefront = True
        root.addHandler(handler)
    root.setLevel(level.upper())


def capture_exception(
    exc: BaseException,
    operation: str,
    user_id: Optional[str] = None,
    target_id: Optional[str] = None,
    **extra,
) -> None:
    tags = {"operation": operation, "user": user_id, "target": target_id}
    logger.error(
        "%s failed: %s",
        operation,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"tags": tags, "context": extra},
    )
