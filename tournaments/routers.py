from rest_framework.routers import DefaultRouter, SimpleRouter

from .views import AdminRegistrationViewSet, AdminTournamentViewSet, TournamentViewSet

router = DefaultRouter()
router.register(r"tournaments", TournamentViewSet, basename="tournament")

admin_router = SimpleRouter()
admin_router.register(r"tournaments", AdminTournamentViewSet, basename="admin-tournament")
admin_router.register(r"registrations", AdminRegistrationViewSet, basename="admin-registration")
