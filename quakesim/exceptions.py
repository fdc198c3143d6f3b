class QuakeSimError(Exception):
    """Base class for simulation errors."""


class InsufficientPicksError(QuakeSimError):
    """
    Raised when fewer stations than required carry a usable P pick at solve
    time.
    """

    def __init__(self, usable: int, required: int):
        self.usable = usable
        self.required = required
        self.message = (
            f"Location needs at least {required} stations with a P pick, got {usable}"
        )
        super().__init__(self.message)

    def __str__(self):
        return self.message


class RunStateError(QuakeSimError):
    """Raised when the scheduler is driven outside of an active run."""
