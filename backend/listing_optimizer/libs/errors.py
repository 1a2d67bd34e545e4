"""Error kinds raised by the optimization pipeline.

Each error carries the HTTP status the API layer answers with. Stage errors
wrap the upstream exception (``raise ... from e``) and add the ASIN, region
and stage to the message.
"""


class ListingOptimizerError(Exception):
    status_code = 500


class InvalidIdentifierError(ListingOptimizerError):
    status_code = 400


class InvalidRegionError(ListingOptimizerError):
    status_code = 400


class ProductNotFoundError(ListingOptimizerError):
    status_code = 404


class ScrapeTimeoutError(ListingOptimizerError):
    """Page load exceeded the navigation timeout. Safe for the caller to retry."""
    status_code = 504


class ExtractionError(ListingOptimizerError):
    """The page loaded but the listing could not be read from it."""
    status_code = 502


class ResponseShapeError(ListingOptimizerError):
    """The completion service answered with incomplete or non-JSON data."""
    status_code = 502


class RewriteServiceError(ListingOptimizerError):
    status_code = 502


class ConfigurationError(ListingOptimizerError):
    status_code = 500


class StorageError(ListingOptimizerError):
    status_code = 500
