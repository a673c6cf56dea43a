"""
Audit logging for destructive and ownership-changing operations.

Template deletion hard-deletes every derived daily task, so the template
service records what is about to disappear before it deletes it.
"""

import logging
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Types of auditable actions."""
    TEMPLATE_CREATE = "template_create"
    TEMPLATE_UPDATE = "template_update"
    TEMPLATE_DELETE = "template_delete"
    TASK_REASSIGN = "task_reassign"
    DAY_PREPARE = "day_prepare"
    EMPLOYEE_CREATE = "employee_create"
    MEMBERSHIP_UPDATE = "membership_update"
    WORKSTATION_DELETE = "workstation_delete"


class AuditLevel(str, Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


async def log_audit_event(
    action: AuditAction,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    level: AuditLevel = AuditLevel.INFO,
) -> bool:
    """
    Log an audit event to database and system logs.

    Args:
        action: Type of action performed
        user_id: ID of user performing action
        entity_type: Type of entity affected (template, daily_task, ...)
        entity_id: ID of affected entity
        details: Additional context
        level: Severity level

    Returns:
        True if logged successfully
    """
    try:
        from ..database.repositories import get_audit_repository

        audit_repo = get_audit_repository()
        await audit_repo.create(
            action=action.value,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
            level=level.value,
            timestamp=datetime.now(),
        )

        log_message = f"AUDIT: {action.value} by {user_id or 'system'}"
        if entity_type and entity_id:
            log_message += f" on {entity_type}:{entity_id}"

        if level == AuditLevel.CRITICAL:
            logger.critical(log_message, extra={"audit": True, "details": details})
        elif level == AuditLevel.WARNING:
            logger.warning(log_message, extra={"audit": True, "details": details})
        else:
            logger.info(log_message, extra={"audit": True, "details": details})

        return True

    except Exception as e:
        # Never fail the operation due to audit logging failure
        logger.error(f"Failed to log audit event: {e}")
        return False
