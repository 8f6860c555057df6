from typing import Optional

from ..models import AuditLog, Organization


def resolve_actor(user):
    """Anonymous actors (tasks, scripts, AnonymousUser) are stored as NULL."""
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


def log_action(
    *,
    action: str,
    instance,
    user=None,
    organization: Optional[Organization] = None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Runs inside the caller's transaction, so a rolled back
    operation leaves no audit row behind.
    """

    if not organization:
        organization = getattr(instance, "organization", None)

    AuditLog.objects.create(
        organization=organization,
        user=resolve_actor(user),
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )
