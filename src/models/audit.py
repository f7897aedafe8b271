"""
Audit Models for Budget Desk

Every change to who can see which organization is logged.
This provides:
1. Traceability of memberships and permissions
2. Debugging information when bootstrap or invitations go wrong
3. A record of generated budgets

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from src.models.organization import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Organization bootstrap
    ORGANIZATION_CREATED = "organization_created"
    ORGANIZATION_SELECTED = "organization_selected"
    DEFAULT_CATEGORIES_CREATED = "default_categories_created"

    # Invitations
    INVITATION_CREATED = "invitation_created"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_DECLINED = "invitation_declined"
    INVITATION_CANCELLED = "invitation_cancelled"
    INVITATION_EXPIRED = "invitation_expired"

    # Team and permissions
    MEMBER_ROLE_UPDATED = "member_role_updated"
    MEMBER_REMOVED = "member_removed"
    PERMISSIONS_UPDATED = "permissions_updated"

    # Finance
    BUDGET_GENERATED = "budget_generated"

    # Analytics
    ANALYTICS_FAILED = "analytics_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    BACKEND_ERROR = "backend_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Tenant and actor
    organization_id: Optional[UUID] = None
    actor_id: Optional[UUID] = Field(
        default=None,
        description="User who triggered the event, if any"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'organization', 'invitation', 'budget')"
    )
    entity_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> dict:
        """
        Convert to a row for the audit table.

        ``details`` is stored as a JSON string so the table needs no
        jsonb column.
        """
        row = self.to_log_dict()
        row["details"] = json.dumps(self.details) if self.details else ""
        return row

    @classmethod
    def from_row(cls, row: dict) -> 'AuditEvent':
        """Rebuild an event read back from the audit table."""
        data = {k: v for k, v in row.items() if v is not None and k in cls.model_fields}
        details = data.get("details")
        if isinstance(details, str):
            data["details"] = json.loads(details) if details else {}
        return cls.model_validate(data)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.organization_created(org_id, user_id, name)
        event = AuditEventBuilder.invitation_accepted(invitation, user_id)
    """

    @staticmethod
    def organization_created(
        organization_id: UUID,
        owner_id: UUID,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORGANIZATION_CREATED,
            organization_id=organization_id,
            actor_id=owner_id,
            entity_type="organization",
            entity_id=organization_id,
            description=f"Default organization created: {name}",
            details={"name": name},
        )

    @staticmethod
    def organization_selected(
        organization_id: UUID,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORGANIZATION_SELECTED,
            organization_id=organization_id,
            actor_id=user_id,
            entity_type="organization",
            entity_id=organization_id,
            description="Active organization switched",
            is_user_action=True,
        )

    @staticmethod
    def default_categories_created(
        organization_id: UUID,
        user_id: UUID,
        names: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_CATEGORIES_CREATED,
            organization_id=organization_id,
            actor_id=user_id,
            entity_type="organization",
            entity_id=organization_id,
            description=f"Seeded {len(names)} default categories",
            details={"categories": names},
        )

    @staticmethod
    def invitation_created(
        invitation_id: UUID,
        organization_id: UUID,
        invited_by: UUID,
        email: str,
        role: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITATION_CREATED,
            organization_id=organization_id,
            actor_id=invited_by,
            entity_type="invitation",
            entity_id=invitation_id,
            description=f"Invitation created for {email} as {role}",
            details={"email": email, "role": role},
            is_user_action=True,
        )

    @staticmethod
    def invitation_answered(
        invitation_id: UUID,
        organization_id: UUID,
        user_id: UUID,
        accepted: bool,
        role: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.INVITATION_ACCEPTED
                if accepted
                else AuditEventType.INVITATION_DECLINED
            ),
            organization_id=organization_id,
            actor_id=user_id,
            entity_type="invitation",
            entity_id=invitation_id,
            description=f"Invitation {'accepted' if accepted else 'declined'}",
            details={"role": role},
            is_user_action=True,
        )

    @staticmethod
    def invitation_cancelled(
        invitation_id: UUID,
        organization_id: UUID,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITATION_CANCELLED,
            organization_id=organization_id,
            actor_id=actor_id,
            entity_type="invitation",
            entity_id=invitation_id,
            description="Invitation cancelled",
            is_user_action=True,
        )

    @staticmethod
    def invitations_expired(
        organization_id: UUID,
        invitation_ids: list[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITATION_EXPIRED,
            severity=AuditSeverity.WARNING,
            organization_id=organization_id,
            entity_type="invitation",
            description=f"{len(invitation_ids)} invitation(s) expired",
            details={"invitation_ids": [str(i) for i in invitation_ids]},
        )

    @staticmethod
    def member_role_updated(
        organization_id: UUID,
        member_id: UUID,
        actor_id: UUID,
        old_role: str,
        new_role: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ROLE_UPDATED,
            organization_id=organization_id,
            actor_id=actor_id,
            entity_type="organization_member",
            entity_id=member_id,
            description=f"Member role changed from {old_role} to {new_role}",
            details={"old_role": old_role, "new_role": new_role},
            is_user_action=True,
        )

    @staticmethod
    def member_removed(
        organization_id: UUID,
        member_id: UUID,
        actor_id: UUID,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            severity=AuditSeverity.WARNING,
            organization_id=organization_id,
            actor_id=actor_id,
            entity_type="organization_member",
            entity_id=member_id,
            description="Member removed from organization",
            details={"user_id": str(user_id)},
            is_user_action=True,
        )

    @staticmethod
    def permissions_updated(
        organization_id: UUID,
        user_id: UUID,
        actor_id: UUID,
        matrix: dict[str, dict[str, bool]],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSIONS_UPDATED,
            organization_id=organization_id,
            actor_id=actor_id,
            entity_type="user",
            entity_id=user_id,
            description="Resource permissions updated",
            details={"permissions": matrix},
            is_user_action=True,
        )

    @staticmethod
    def budget_generated(
        budget_id: UUID,
        project_id: UUID,
        organization_id: Optional[UUID],
        actor_id: UUID,
        item_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_GENERATED,
            organization_id=organization_id,
            actor_id=actor_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget generated from {item_count} project task(s)",
            details={"project_id": str(project_id), "item_count": item_count},
            is_user_action=True,
        )

    @staticmethod
    def analytics_failed(
        organization_id: Optional[UUID],
        user_id: UUID,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYTICS_FAILED,
            severity=AuditSeverity.ERROR,
            organization_id=organization_id,
            actor_id=user_id,
            description="Analytics could not be loaded",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        organization_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            organization_id=organization_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )

    @staticmethod
    def backend_error(
        operation: str,
        error_message: str,
        error_code: Optional[str] = None,
        organization_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKEND_ERROR,
            severity=AuditSeverity.ERROR,
            organization_id=organization_id,
            description=f"Backend error during {operation}",
            error_code=error_code,
            error_message=error_message,
            details={"operation": operation},
        )
