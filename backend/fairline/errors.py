class FairlineError(Exception):
    """Base class for pipeline errors."""


class MalformedDataError(FairlineError):
    """A provider payload (or one item in it) does not match any known shape.

    Schema drift is distinct from availability: raising this never touches
    provider health.
    """

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class TickAlreadyRunningError(FairlineError):
    """Raised when a manual tick is requested while another tick is active."""
