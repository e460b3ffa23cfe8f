"""
Pipeline Board - User notifications

The UI layer subscribes to show a blocking alert.
One notification per aborted / reverted batch.
"""

import logging
from typing import Callable, List, Optional
from pydantic import BaseModel
from pipeline_board.config import now_iso

logger = logging.getLogger("notifier")

MSG_NO_DRAG_PERMISSION = "You don't have permission to move items in the pipeline."
MSG_BATCH_DENIED = "You don't have permission to move some of these items. Reverting changes."
MSG_BATCH_REVERTED = "Failed to update stage. Changes reverted."
MSG_ITEM_DENIED = "You don't have permission to change the stage of this item."
MSG_STAGE_NOT_ALLOWED = "You don't have permission to move items to this stage."
MSG_STAGE_CHANGE_FAILED = "Failed to update stage. Please try again."
MSG_QUICK_REJECT_FAILED = "Failed to move to Rejected. Please try again."
MSG_QUOTES_DENIED = "You don't have permission to send quotes."
MSG_QUOTE_SENT = "Quote sent successfully!"
MSG_QUOTE_FAILED = "Failed to send quote. Please try again."


class Notification(BaseModel):
    level: str
    message: str
    created_at: str


class Notifier:
    def __init__(self, subscriber: Optional[Callable[[Notification], None]] = None):
        self._subscriber = subscriber
        self.notifications: List[Notification] = []

    def subscribe(self, subscriber: Callable[[Notification], None]):
        self._subscriber = subscriber

    def notify(self, message: str, level: str = "error") -> Notification:
        notification = Notification(level=level, message=message, created_at=now_iso())
        self.notifications.append(notification)
        logger.info(f"[NOTIFY] {level}: {message}")
        if self._subscriber is not None:
            self._subscriber(notification)
        return notification

    def error(self, message: str) -> Notification:
        return self.notify(message, level="error")

    def success(self, message: str) -> Notification:
        return self.notify(message, level="success")

    def clear(self):
        self.notifications = []
