import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationCategory

logger = logging.getLogger(__name__)


class NotificationService:
    """
    In-app notifications for the approval workflow. Delivery is
    fire-and-forget: failures are logged and never raised to the caller.
    """

    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        category: NotificationCategory = NotificationCategory.LEAVE_UPDATE,
        type: str = "info",
        link: Optional[str] = None
    ) -> Notification:
        """
        Internal utility for creating notifications. The row joins the
        caller's transaction.
        """
        notification = Notification(
            user_id=user_id,
            category=category.value,
            title=title,
            message=message,
            type=type,
            link=link
        )
        db.add(notification)
        return notification

    @staticmethod
    def notify_user(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        category: NotificationCategory = NotificationCategory.LEAVE_UPDATE,
        type: str = "info",
        link: Optional[str] = None
    ) -> bool:
        """
        Standardized notification trigger. Returns False when delivery failed.
        """
        try:
            NotificationService.create_notification(db, user_id, title, message, category, type, link)
            return True
        except Exception as e:
            logger.warning(f"Notification to user {user_id} failed: {e}", exc_info=True)
            return False

    @staticmethod
    def approval_link(leave_request_id: int) -> str:
        return f"/approvals/{leave_request_id}"
