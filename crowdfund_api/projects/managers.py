from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class ProjectQuerySet(models.QuerySet):
    def crowdfunds(self):
        return self.filter(project_type=self.model.TYPE_CROWDFUND)

    def visible_to(self, user):
        """Staff see every project, others see public ones plus their own."""
        if user.is_staff:
            return self.crowdfunds()
        return self.crowdfunds().filter(Q(status__in=self.model.PUBLIC_STATUSES) | Q(creator=user))

    def with_related(self):
        return self.select_related('creator', 'crowdfund', 'escrow').prefetch_related(
            'milestones', 'contributions__user',
        )

    def locked(self, pk):
        """Fetch one project holding a row lock for the rest of the transaction."""
        return self.select_for_update().get(pk=pk)


class ProjectManager(models.Manager.from_queryset(ProjectQuerySet)):
    def increment_raised(self, pk, amount):
        """Add ``amount`` to funding_raised with a database-side increment."""
        return self.filter(pk=pk).update(
            funding_raised=F('funding_raised') + amount,
            updated_at=timezone.now(),
        )

    def complete_if_goal_reached(self, pk):
        """
        Move a fundable project to completed once funding_raised >= funding_goal.
        Returns True only for the call that performed the transition.
        """
        updated = self.filter(
            pk=pk,
            status__in=self.model.FUNDABLE_STATUSES,
            funding_raised__gte=F('funding_goal'),
        ).update(status=self.model.COMPLETED, updated_at=timezone.now())
        return updated == 1
