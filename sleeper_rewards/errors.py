"""Error taxonomy for the rewards engine"""


class RewardsError(Exception):
    """Base exception for rewards engine errors"""
    retryable = False


class ValidationError(RewardsError):
    """Malformed input. Fix the request before retrying."""
    pass


class AuthenticationError(RewardsError):
    """Missing, invalid or expired wallet auth token. Re-authenticate before retrying."""
    pass


class PersistenceError(RewardsError):
    """Transaction, lock or connectivity failure. Safe to retry the whole call."""
    retryable = True


class DistributionConflict(RewardsError):
    """A distribution for the date was committed by a concurrent or earlier run"""

    def __init__(self, night_date):
        super().__init__(f"Distribution for {night_date} already recorded")
        self.night_date = night_date
