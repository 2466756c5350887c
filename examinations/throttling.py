from rest_framework.throttling import UserRateThrottle


class ResponseRateThrottle(UserRateThrottle):
    """Rate limit for explicit answer submissions."""
    scope = 'responses'


class AutoSaveRateThrottle(UserRateThrottle):
    """Background auto-saves run on a timer; anything faster is a misbehaving client."""
    scope = 'autosave'
