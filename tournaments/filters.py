import django_filters

from .models import Tournament


class TournamentFilter(django_filters.FilterSet):
    title = django_filters.CharFilter(lookup_expr="icontains")
    status = django_filters.ChoiceFilter(choices=Tournament.Status.choices)
    type = django_filters.ChoiceFilter(choices=Tournament.Type.choices)
    mode = django_filters.ChoiceFilter(choices=Tournament.Mode.choices)
    has_slots = django_filters.BooleanFilter(method="filter_has_slots")
    ordering = django_filters.OrderingFilter(
        fields=(
            ("date_time", "date_time"),
            ("entry_fee", "entry_fee"),
            ("winning_prize", "winning_prize"),
        )
    )

    class Meta:
        model = Tournament
        fields = {
            "game": ["exact"],
            "date_time": ["gte", "lte"],
        }

    def filter_has_slots(self, queryset, name, value):
        queryset = queryset.with_slots_left()
        if value:
            return queryset.filter(spots_left__gt=0)
        return queryset.filter(spots_left__lte=0)
