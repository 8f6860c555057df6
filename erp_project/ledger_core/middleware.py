from django.utils.deprecation import MiddlewareMixin

from .models import Membership


class CurrentOrganizationMiddleware(MiddlewareMixin):
    # Attach request.organization based on the logged-in user
    def process_request(self, request):
        request.organization = None
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return

        memberships = (
            Membership.objects.filter(user=user, is_active=True)
            .select_related("organization")
            .order_by("created_at", "pk")
        )

        # If user switched organizations, choice is stored in the session
        organization_id = request.session.get("active_organization_id")
        if organization_id:
            # user must still be a member; a tampered session gets nothing
            try:
                membership = memberships.filter(organization_id=organization_id).first()
            except (TypeError, ValueError):
                membership = None
            request.organization = membership.organization if membership else None
            return

        # Fallback: first active membership
        membership = memberships.first()
        if membership:
            request.organization = membership.organization
