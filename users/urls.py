from django.urls import path

from .views import CurrentUserView, LeaderboardView

urlpatterns = [
    path("users/me/", CurrentUserView.as_view(), name="user-me"),
    path("users/leaderboard/", LeaderboardView.as_view(), name="user-leaderboard"),
]
