class ScoreSquareError(Exception):
    """Base class for leaderboard pipeline failures."""


class SourceUnavailable(ScoreSquareError):
    """The ledger endpoint is unreachable, removed, or returned garbage."""


class IdentityChunkFailed(ScoreSquareError):
    """One identity lookup chunk failed; the rest of the run continues."""

    def __init__(self, message, addresses=()):
        super().__init__(message)
        self.addresses = tuple(addresses)


class CacheCorrupt(ScoreSquareError):
    """A persisted snapshot could not be parsed."""
