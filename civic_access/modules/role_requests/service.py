"""
Role request lifecycle: pending -> approved | rejected (terminal).

Authorization of approve/reject happens at the route (admin-only page guard);
the service trusts its caller. Notifications are best-effort and never undo a
persisted transition.
"""

from supabase import Client
from civic_access.config.permissions_config import REQUESTABLE_ROLES, ROLE_DISPLAY_NAMES
from civic_access.config.settings import Settings, settings
from civic_access.core.exceptions import (
    InvalidTransition, RateLimitExceeded, RoleRequestNotFound, ValidationError
)
from civic_access.core.principal import Principal
from civic_access.modules.notifications.service import (
    APPROVED, REJECTED, SUBMITTED, NotificationResult, NotificationService
)
from civic_access.modules.role_requests.schemas import (
    ApproveRequest, NotificationStatus, RoleRequestResponse, RoleRequestResult
)
from civic_access.modules.roles.service import RoleAssignmentService
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

PENDING = "pending"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RoleRequestService:
    def __init__(
        self,
        supabase: Client,
        role_service: RoleAssignmentService,
        notification_service: NotificationService,
        config: Settings = settings
    ):
        self.supabase = supabase
        self.role_service = role_service
        self.notification_service = notification_service
        self.config = config

    # Rate limit

    def get_recent_requests(self, user_email: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Requests by user_email inside the trailing window: {"count": n, "oldest": datetime | None}"""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=self.config.role_request_window_hours)
        result = self.supabase.table("role_requests")\
            .select("id, created_at", count="exact")\
            .eq("user_email", user_email)\
            .gte("created_at", since.isoformat())\
            .order("created_at")\
            .execute()
        rows = result.data or []
        count = result.count if result.count is not None else len(rows)
        oldest = _parse_timestamp(rows[0].get("created_at")) if rows else None
        return {"count": count, "oldest": oldest}

    def check_rate_limit(self, user_email: str, now: Optional[datetime] = None) -> int:
        """Raise RateLimitExceeded once the window is full; otherwise return the current count"""
        now = now or datetime.now(timezone.utc)
        recent = self.get_recent_requests(user_email, now)
        limit = self.config.role_request_limit
        if recent["count"] >= limit:
            retry_after = None
            if recent["oldest"] is not None:
                reopens = recent["oldest"] + timedelta(hours=self.config.role_request_window_hours)
                retry_after = max(int((reopens - now).total_seconds()), 0)
            logger.warning(f"Role request rate limit hit for {user_email} ({recent['count']}/{limit})")
            raise RateLimitExceeded(limit, self.config.role_request_window_hours, retry_after)
        return recent["count"]

    # Lifecycle

    def request_role(
        self,
        principal: Principal,
        requested_role: str,
        justification: str,
        municipality_id: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> RoleRequestResult:
        requested_role = (requested_role or "").strip()
        justification = (justification or "").strip()
        if not requested_role or not justification:
            raise ValidationError("requested_role and justification are required")
        if requested_role not in REQUESTABLE_ROLES:
            raise ValidationError(f"Role '{requested_role}' cannot be requested")

        self.check_rate_limit(principal.email)

        result = self.supabase.table("role_requests").insert({
            "user_id": principal.id,
            "user_email": principal.email,
            "requested_role": requested_role,
            "justification": justification,
            "status": PENDING,
            "municipality_id": municipality_id or principal.municipality_id,
            "organization_id": organization_id or principal.organization_id
        }).execute()

        if not result.data:
            raise RuntimeError(f"Failed to create role request for {principal.email}")

        row = result.data[0]
        logger.info(f"Role request {row['id']} created by {principal.email} for '{requested_role}'")

        notification = self.notification_service.notify_role_request(SUBMITTED, row)
        if self.config.notify_admins_on_request:
            self._alert_admins(row)
        return self._result(row, notification)

    def approve_request(
        self,
        approver: Principal,
        request_id: str,
        details: Optional[ApproveRequest] = None
    ) -> RoleRequestResult:
        """Approve a pending request and grant the role"""
        details = details or ApproveRequest()
        request = self._get_row(request_id)
        if request["status"] != PENDING:
            raise InvalidTransition(request_id, request["status"], APPROVED)

        role = details.role or request["requested_role"]
        if role not in ROLE_DISPLAY_NAMES:
            raise ValidationError(f"Unknown role '{role}'")

        row = self._transition(request_id, APPROVED, approver, details.review_notes)

        try:
            self.role_service.assign_role(
                request["user_id"],
                request["user_email"],
                role,
                municipality_id=details.municipality_id or request.get("municipality_id"),
                organization_id=details.organization_id or request.get("organization_id")
            )
        except Exception:
            logger.error(f"Role grant failed for request {request_id}; reverting to pending")
            try:
                self._revert(request_id)
            except Exception as revert_error:
                logger.error(f"Could not revert request {request_id} to pending: {revert_error}")
            raise

        logger.info(f"Role request {request_id} approved by {approver.email}; '{role}' granted to {request['user_email']}")
        notification = self.notification_service.notify_role_request(APPROVED, {**row, "requested_role": role})
        return self._result(row, notification)

    def reject_request(
        self,
        approver: Principal,
        request_id: str,
        reason: Optional[str] = None
    ) -> RoleRequestResult:
        request = self._get_row(request_id)
        if request["status"] != PENDING:
            raise InvalidTransition(request_id, request["status"], REJECTED)

        reason = (reason or "").strip() or None
        row = self._transition(request_id, REJECTED, approver, reason)
        logger.info(f"Role request {request_id} rejected by {approver.email}")

        notification = self.notification_service.notify_role_request(REJECTED, row, reason=reason)
        return self._result(row, notification)

    # Reads

    def get_request(self, request_id: str) -> RoleRequestResponse:
        return RoleRequestResponse(**self._get_row(request_id))

    def list_pending_requests(self) -> List[RoleRequestResponse]:
        """Pending requests, newest first"""
        result = self.supabase.table("role_requests")\
            .select("*")\
            .eq("status", PENDING)\
            .order("created_at", desc=True)\
            .execute()
        return [RoleRequestResponse(**row) for row in result.data or []]

    def list_my_requests(self, principal: Principal) -> List[RoleRequestResponse]:
        result = self.supabase.table("role_requests")\
            .select("*")\
            .eq("user_email", principal.email)\
            .order("created_at", desc=True)\
            .execute()
        return [RoleRequestResponse(**row) for row in result.data or []]

    # Helpers

    def _get_row(self, request_id: str) -> Dict[str, Any]:
        result = self.supabase.table("role_requests")\
            .select("*")\
            .eq("id", request_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise RoleRequestNotFound(request_id)
        return result.data[0]

    def _transition(
        self,
        request_id: str,
        status: str,
        approver: Principal,
        review_notes: Optional[str]
    ) -> Dict[str, Any]:
        """Conditional update on status = pending; losing a concurrent race raises InvalidTransition"""
        result = self.supabase.table("role_requests")\
            .update({
                "status": status,
                "review_notes": review_notes,
                "approver_email": approver.email,
                "reviewed_by": approver.id,
                "reviewed_date": datetime.now(timezone.utc).isoformat()
            })\
            .eq("id", request_id)\
            .eq("status", PENDING)\
            .execute()

        if not result.data:
            current = self._get_row(request_id)
            raise InvalidTransition(request_id, current["status"], status)
        return result.data[0]

    def _revert(self, request_id: str):
        self.supabase.table("role_requests")\
            .update({
                "status": PENDING,
                "review_notes": None,
                "approver_email": None,
                "reviewed_by": None,
                "reviewed_date": None
            })\
            .eq("id", request_id)\
            .eq("status", APPROVED)\
            .execute()

    def _alert_admins(self, row: Dict[str, Any]):
        try:
            admins = self.role_service.list_active_admins()
        except Exception as e:
            logger.error(f"Could not load admins to alert about request {row.get('id')}: {e}")
            return
        self.notification_service.notify_admins(row, admins)

    @staticmethod
    def _result(row: Dict[str, Any], notification: NotificationResult) -> RoleRequestResult:
        if not notification.delivered:
            logger.error(f"Role request {row.get('id')}: notification not delivered ({notification.error})")
        return RoleRequestResult(
            request=RoleRequestResponse(**row),
            notification=NotificationStatus(delivered=notification.delivered, error=notification.error)
        )
