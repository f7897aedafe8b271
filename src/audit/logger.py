"""
Audit Logger

DESIGN DECISION: Every change to tenancy (who belongs where, with which
rights) is logged. This provides:
1. Traceability of memberships, invitations and permissions
2. Debugging capability when a session bootstrap goes wrong
3. A record of generated budgets

The audit logger:
- Is async to sit next to the storage calls it describes
- Gracefully handles failures (doesn't crash the app if logging fails)
- Persists to the backend only when an AuditStorage is given
"""

from typing import Optional
from uuid import UUID

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from src.services.storage import AuditStorage


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. The backend audit table (when configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorage] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_organization_created(
        self,
        organization_id: UUID,
        owner_id: UUID,
        name: str,
    ) -> None:
        await self.log(AuditEventBuilder.organization_created(
            organization_id=organization_id,
            owner_id=owner_id,
            name=name,
        ))

    async def log_organization_selected(
        self,
        organization_id: UUID,
        user_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.organization_selected(
            organization_id=organization_id,
            user_id=user_id,
        ))

    async def log_default_categories_created(
        self,
        organization_id: UUID,
        user_id: UUID,
        names: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.default_categories_created(
            organization_id=organization_id,
            user_id=user_id,
            names=names,
        ))

    async def log_invitation_created(
        self,
        invitation_id: UUID,
        organization_id: UUID,
        invited_by: UUID,
        email: str,
        role: str,
    ) -> None:
        """Log a new invitation."""
        await self.log(AuditEventBuilder.invitation_created(
            invitation_id=invitation_id,
            organization_id=organization_id,
            invited_by=invited_by,
            email=email,
            role=role,
        ))

    async def log_invitation_answered(
        self,
        invitation_id: UUID,
        organization_id: UUID,
        user_id: UUID,
        accepted: bool,
        role: str,
    ) -> None:
        """Log an invitation being accepted or declined."""
        await self.log(AuditEventBuilder.invitation_answered(
            invitation_id=invitation_id,
            organization_id=organization_id,
            user_id=user_id,
            accepted=accepted,
            role=role,
        ))

    async def log_invitation_cancelled(
        self,
        invitation_id: UUID,
        organization_id: UUID,
        actor_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.invitation_cancelled(
            invitation_id=invitation_id,
            organization_id=organization_id,
            actor_id=actor_id,
        ))

    async def log_invitations_expired(
        self,
        organization_id: UUID,
        invitation_ids: list[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.invitations_expired(
            organization_id=organization_id,
            invitation_ids=invitation_ids,
        ))

    async def log_member_role_updated(
        self,
        organization_id: UUID,
        member_id: UUID,
        actor_id: UUID,
        old_role: str,
        new_role: str,
    ) -> None:
        await self.log(AuditEventBuilder.member_role_updated(
            organization_id=organization_id,
            member_id=member_id,
            actor_id=actor_id,
            old_role=old_role,
            new_role=new_role,
        ))

    async def log_member_removed(
        self,
        organization_id: UUID,
        member_id: UUID,
        actor_id: UUID,
        user_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.member_removed(
            organization_id=organization_id,
            member_id=member_id,
            actor_id=actor_id,
            user_id=user_id,
        ))

    async def log_permissions_updated(
        self,
        organization_id: UUID,
        user_id: UUID,
        actor_id: UUID,
        matrix: dict[str, dict[str, bool]],
    ) -> None:
        await self.log(AuditEventBuilder.permissions_updated(
            organization_id=organization_id,
            user_id=user_id,
            actor_id=actor_id,
            matrix=matrix,
        ))

    async def log_budget_generated(
        self,
        budget_id: UUID,
        project_id: UUID,
        organization_id: Optional[UUID],
        actor_id: UUID,
        item_count: int,
    ) -> None:
        """Log a budget generated from project tasks."""
        await self.log(AuditEventBuilder.budget_generated(
            budget_id=budget_id,
            project_id=project_id,
            organization_id=organization_id,
            actor_id=actor_id,
            item_count=item_count,
        ))

    async def log_analytics_failed(
        self,
        organization_id: Optional[UUID],
        user_id: UUID,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.analytics_failed(
            organization_id=organization_id,
            user_id=user_id,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        organization_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            organization_id=organization_id,
        ))

    async def log_backend_error(
        self,
        operation: str,
        error_message: str,
        error_code: Optional[str] = None,
        organization_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed backend call."""
        await self.log(AuditEventBuilder.backend_error(
            operation=operation,
            error_message=error_message,
            error_code=error_code,
            organization_id=organization_id,
        ))
