"""Provider error taxonomy.

Per-call errors (``UpstreamUnavailable``, ``UpstreamMalformed``) are caught at
the fan-in and turned into "no data" for that one item. ``MissingCredentials``
short-circuits a whole endpoint to its static payload.
"""


class ProviderError(Exception):
    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class MissingCredentials(ProviderError):
    def __init__(self, provider: str):
        super().__init__(provider, "API key not configured")


class UpstreamUnavailable(ProviderError):
    """Transport failure or HTTP status >= 400."""

    def __init__(self, provider: str, message: str, status_code=None):
        super().__init__(provider, message)
        self.status_code = status_code


class UpstreamMalformed(ProviderError):
    """Body is not JSON or lacks the fields we need."""
