from .entities import (
    AuditAction,
    AuditLogEntry,
    AuditSeverity,
    ExternalClient,
    Inspection,
    InspectionStatus,
    InspectionType,
    Notification,
    NotificationOutbox,
    OutboxStatus,
    Project,
    QualityRole,
    ResourceType,
    StaffMember,
    Tenant,
    TenantInspectionConfig,
    User,
    UserRole,
)

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "AuditSeverity",
    "ExternalClient",
    "Inspection",
    "InspectionStatus",
    "InspectionType",
    "Notification",
    "NotificationOutbox",
    "OutboxStatus",
    "Project",
    "QualityRole",
    "ResourceType",
    "StaffMember",
    "Tenant",
    "TenantInspectionConfig",
    "User",
    "UserRole",
]
