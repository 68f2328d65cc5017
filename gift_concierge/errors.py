class ConciergeError(Exception):
    """Base class for errors raised by the concierge pipeline."""


class ConfigurationError(ConciergeError):
    """A required setting (e.g. the model API key) is missing."""


class ExternalServiceError(ConciergeError):
    """The catalog or the inference endpoint failed or answered with a non-success status."""


class MalformedModelOutput(ConciergeError):
    """The model returned intent output that could not be parsed."""
