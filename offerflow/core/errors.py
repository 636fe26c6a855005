"""
Exception types shared by the offerflow services.
"""


class OfferflowError(Exception):
    """Base class for all offerflow errors."""


class ConfigurationError(OfferflowError, ValueError):
    """Missing or invalid environment configuration. Fatal at startup."""


class TransportError(OfferflowError):
    """The message broker is unreachable or the channel is closed."""


class DocumentError(OfferflowError):
    """A source document could not be turned into an offer payload."""


class PdfReadError(DocumentError):
    pass


class OfferParseError(DocumentError):
    pass


class OfferProcessingError(OfferflowError):
    """A raw offer message could not be normalized or persisted."""


class DuplicateOfferError(OfferProcessingError):
    pass
