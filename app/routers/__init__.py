from . import (
    audit_logs,
    auth,
    business_quality,
    client_inspections,
    final_approval,
    notifications,
    reviews,
    staff_inspections,
)

__all__ = [
    "audit_logs",
    "auth",
    "business_quality",
    "client_inspections",
    "final_approval",
    "notifications",
    "reviews",
    "staff_inspections",
]
