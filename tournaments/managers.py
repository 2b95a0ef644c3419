from datetime import timedelta

from django.db import models


class TournamentQuerySet(models.QuerySet):
    def active(self):
        """Listed tournaments that are still upcoming or running."""
        return self.filter(is_active=True, status__in=("upcoming", "ongoing"))

    def due_to_start(self, now):
        return self.filter(status="upcoming", date_time__lte=now)

    def due_to_complete(self, now, match_duration_hours):
        return self.filter(
            status="ongoing",
            date_time__lte=now - timedelta(hours=match_duration_hours),
        )

    def with_slots_left(self):
        return self.annotate(
            spots_left=models.F("total_slots") - models.F("registered_slots")
        )


class TournamentManager(models.Manager):
    def get_queryset(self):
        return TournamentQuerySet(self.model, using=self._db)

    def active(self):
        return self.get_queryset().active()

    def due_to_start(self, now):
        return self.get_queryset().due_to_start(now)

    def due_to_complete(self, now, match_duration_hours):
        return self.get_queryset().due_to_complete(now, match_duration_hours)
