"""User-visible transient notifications.

Stands in for the toast area of a UI: list controllers and comboboxes
report failures here instead of raising.
"""

from typing import Callable, List, Optional, Tuple

from ims_client.utils.logging import get_logger

logger = get_logger(__name__)

ERROR = "error"
SUCCESS = "success"
INFO = "info"


class Notifier:
    """Collects notifications and forwards them to an optional sink."""

    def __init__(self, sink: Optional[Callable[[str, str], None]] = None):
        self.sink = sink
        self.messages: List[Tuple[str, str]] = []

    def notify(self, level: str, message: str) -> None:
        self.messages.append((level, message))
        if level == ERROR:
            logger.warning(message)
        else:
            logger.info(message)
        if self.sink is not None:
            self.sink(level, message)

    def error(self, message: str) -> None:
        self.notify(ERROR, message)

    def success(self, message: str) -> None:
        self.notify(SUCCESS, message)

    def info(self, message: str) -> None:
        self.notify(INFO, message)

    def errors(self) -> List[str]:
        return [message for level, message in self.messages if level == ERROR]

    def clear(self) -> None:
        self.messages.clear()
