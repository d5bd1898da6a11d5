"""
Notification sink.
Delivery is fire-and-forget: failures are logged and reported in the returned
NotificationResult, never raised.
"""

from dataclasses import dataclass
from supabase import Client
from civic_access.config.permissions_config import get_role_display_name
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

SUBMITTED = "submitted"
APPROVED = "approved"
REJECTED = "rejected"
ADMIN_ALERT = "admin_alert"

_TITLES = {
    SUBMITTED: "Role Request Received",
    APPROVED: "Role Request Approved",
    REJECTED: "Role Request Update",
    ADMIN_ALERT: "New Role Request",
}


@dataclass(frozen=True)
class NotificationResult:
    delivered: bool
    error: Optional[str] = None


def build_role_request_message(notification_type: str, role: str, user_email: str = "", reason: Optional[str] = None) -> str:
    role_name = get_role_display_name(role)
    if notification_type == APPROVED:
        return f"Your {role_name} role has been approved"
    if notification_type == REJECTED:
        message = f"Your {role_name} role request needs attention"
        if reason:
            message += f". Reason: {reason}"
        return message
    if notification_type == ADMIN_ALERT:
        return f"{user_email} requested the {role_name} role"
    return f"Your {role_name} role request is under review"


class NotificationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def send_notification(
        self,
        notification_type: str,
        user_id: Optional[str],
        user_email: Optional[str],
        payload: Dict[str, Any]
    ) -> NotificationResult:
        """Insert an in-app notification. Never raises."""
        try:
            self.supabase.table("citizen_notifications").insert({
                "user_id": user_id,
                "user_email": user_email,
                "notification_type": notification_type,
                "title": payload.get("title", ""),
                "message": payload.get("message"),
                "entity_type": payload.get("entity_type"),
                "entity_id": payload.get("entity_id"),
                "metadata": payload.get("metadata") or {}
            }).execute()
            return NotificationResult(delivered=True)
        except Exception as e:
            logger.error(f"Notification '{notification_type}' for {payload.get('entity_id')} to {user_email} failed: {e}")
            return NotificationResult(delivered=False, error=str(e))

    def notify_role_request(
        self,
        notification_type: str,
        request: Dict[str, Any],
        reason: Optional[str] = None
    ) -> NotificationResult:
        """Tell the requester their request was submitted, approved or rejected"""
        role = request.get("requested_role", "")
        return self.send_notification(
            f"role_request_{notification_type}",
            request.get("user_id"),
            request.get("user_email"),
            {
                "title": _TITLES[notification_type],
                "message": build_role_request_message(notification_type, role, reason=reason),
                "entity_type": "role_request",
                "entity_id": request.get("id"),
                "metadata": {"role": role, "status": notification_type}
            }
        )

    def notify_admins(self, request: Dict[str, Any], admins: List[Dict[str, Any]]) -> List[NotificationResult]:
        """Alert each admin about a new request"""
        role = request.get("requested_role", "")
        results = []
        for admin in admins:
            results.append(self.send_notification(
                f"role_request_{ADMIN_ALERT}",
                admin.get("user_id"),
                admin.get("user_email"),
                {
                    "title": _TITLES[ADMIN_ALERT],
                    "message": build_role_request_message(ADMIN_ALERT, role, user_email=request.get("user_email", "")),
                    "entity_type": "role_request",
                    "entity_id": request.get("id"),
                    "metadata": {
                        "role": role,
                        "status": SUBMITTED,
                        "requester": request.get("user_email"),
                        "justification": request.get("justification")
                    }
                }
            ))
        return results
