"""Exception types shared across the search and persistence layers."""


class JobfeedError(Exception):
    """Base class for all jobfeed errors."""


class SearchBackendError(JobfeedError):
    """The search backend returned something we cannot use."""


class RetryError(JobfeedError):
    """All retry attempts were exhausted.

    The last underlying exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts
