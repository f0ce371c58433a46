class PipelineError(Exception):
    pass


class ConfigurationError(PipelineError):
    """Raised before any API call when the run cannot be configured."""


class InvalidRangeError(ConfigurationError):
    pass


class FetchError(PipelineError):
    """A GA4 report request failed for one date (or the whole range)."""

    def __init__(self, message, start_date=None, end_date=None):
        super().__init__(message)
        self.start_date = start_date
        self.end_date = end_date


class InsertionError(PipelineError):
    """BigQuery rejected part of a batch. The batch may be partially applied."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class MergeError(PipelineError):
    pass
