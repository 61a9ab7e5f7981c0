"""
Error taxonomy shared by the intakes. Each error carries the HTTP status it maps to.
"""


class RelayError(Exception):
    status = 500


class ValidationError(RelayError):
    """Bad or missing input from the caller."""
    status = 400


class ConfigurationError(RelayError):
    """A required deployment setting is missing."""
    status = 500


class PlatformProtocolError(RelayError):
    """The chat platform failed the shared-secret check."""
    status = 403


class UpstreamError(RelayError):
    """The spreadsheet endpoint failed or could not be reached."""
    status = 502

    def __init__(self, outcome):
        self.outcome = outcome
        super().__init__(outcome.describe())
