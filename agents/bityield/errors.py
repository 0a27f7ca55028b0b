class BitYieldError(Exception):
    """Base class for recoverable BitYield failures."""


class NoSuitableOpportunitiesError(BitYieldError):
    """Filtering removed every candidate for the requested profile."""

    def __init__(self, message: str = "No suitable opportunities found matching your criteria"):
        super().__init__(message)


class ModelResponseError(BitYieldError):
    """Model output failed schema validation or referenced an unknown pool."""


class ConfigurationError(BitYieldError):
    """A required setting is missing; raised where the setting is first needed."""


class OracleSubmissionError(BitYieldError):
    """The oracle update transaction was not accepted for broadcast."""
