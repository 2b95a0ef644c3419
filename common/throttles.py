from rest_framework.throttling import UserRateThrottle


class VeryStrictThrottle(UserRateThrottle):
    """
    Used for money-out operations such as withdrawal requests.
    """
    scope = 'very_strict'


class StrictThrottle(UserRateThrottle):
    """
    Used for registration and result submission.
    """
    scope = 'strict'


class MediumThrottle(UserRateThrottle):
    """
    Used for authenticated reads such as ledger history.
    """
    scope = 'medium'


class RelaxedThrottle(UserRateThrottle):
    """
    Used for public listings and leaderboards.
    """
    scope = 'relaxed'
