"""
This file contains shared fixtures for the test suite.
Fixtures defined here are available to all tests in the project.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from tournaments.models import Game, Tournament

User = get_user_model()


@pytest.fixture(autouse=True)
def override_settings(settings):
    """
    Override Django settings for the test environment.
    This fixture runs for every test and ensures that settings are
    optimized for testing.
    """
    settings.PASSWORD_HASHERS = [
        'django.contrib.auth.hashers.MD5PasswordHasher',
    ]
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.TOURNAMENT_REFUND_ON_UNREGISTER = False
    # Throttle counters live in the cache; start every test from zero.
    cache.clear()


@pytest.fixture
def api_client():
    """A pytest fixture that provides an instance of DRF's APIClient."""
    return APIClient()


@pytest.fixture
def user_factory(db):
    """A pytest fixture (factory) to create a user."""

    def _create_user(**kwargs):
        index = User.objects.count()
        defaults = {
            "username": f"user_{index}",
            "email": f"user_{index}@example.com",
            "password": "password",
        }
        defaults.update(kwargs)
        balance = defaults.pop("balance", None)
        user = User.objects.create_user(**defaults)
        if balance is not None:
            User.objects.filter(pk=user.pk).update(balance=Decimal(str(balance)))
            user.refresh_from_db()
        return user

    return _create_user


@pytest.fixture
def default_user(user_factory):
    """A fixture to get a standard user instance."""
    return user_factory(username="testuser", email="testuser@example.com")


@pytest.fixture
def operator(user_factory):
    return user_factory(username="operator", email="operator@example.com", role=User.Role.ADMIN)


@pytest.fixture
def authenticated_client(api_client, default_user):
    api_client.force_authenticate(user=default_user)
    return api_client


@pytest.fixture
def operator_client(operator):
    client = APIClient()
    client.force_authenticate(user=operator)
    return client


@pytest.fixture
def game(db):
    """Creates a dummy game."""
    return Game.objects.create(name="Free Fire")


@pytest.fixture
def tournament_factory(db, game):
    """Creates tournaments directly, bypassing the registry service."""

    def _create_tournament(**kwargs):
        index = Tournament.objects.count()
        defaults = {
            "tournament_id": f"T_TEST_{index}",
            "title": f"Weekend Cup {index}",
            "game": game,
            "game_name": game.name,
            "map": "Bermuda",
            "mode": Tournament.Mode.SQUAD,
            "type": Tournament.Type.FREE,
            "entry_fee": Decimal("0.00"),
            "winning_prize": Decimal("0.00"),
            "total_slots": 10,
            "date_time": timezone.now() + timedelta(days=1),
        }
        defaults.update(kwargs)
        return Tournament.objects.create(**defaults)

    return _create_tournament


@pytest.fixture
def paid_tournament(tournament_factory):
    return tournament_factory(
        title="Paid Cup",
        type=Tournament.Type.PAID,
        entry_fee=Decimal("100.00"),
        winning_prize=Decimal("1000.00"),
    )


@pytest.fixture
def free_tournament(tournament_factory):
    return tournament_factory(title="Free Cup")
