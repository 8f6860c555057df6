from django.db import models

# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to an organization
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_organization(self, organization):
        return self.filter(organization=organization)

    def active(self, organization):
        return self.filter(
                            organization=organization, # enforce tenant scoping
                            is_active=True   # only fetch active records
                        )
    # Enables query:
    # Journal.objects.active(request.organization)


# Attach TenantQuerySet to .objects
class TenantManager(models.Manager):

    def get_queryset(self): # every model gets TenantQuerySet
        return TenantQuerySet(self.model, using=self._db)

    def for_organization(self, organization):
        return self.get_queryset().for_organization(organization)

    def active(self, organization):
        return self.get_queryset().active(organization)

    def get_for_update(self, organization, pk):
        """Fetch one tenant row and lock it until the surrounding transaction ends."""
        return self.get_queryset().select_for_update().get(
            organization=organization, pk=pk
        )


# Copy organization from the parent entry onto a JournalEntryLine
class JournalEntryLineManager(TenantManager):
    def create_for_entry(self, entry, **kwargs):
        kwargs.setdefault("organization", entry.organization)
        return super().create(entry=entry, **kwargs)
