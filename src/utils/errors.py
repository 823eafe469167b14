"""Custom exception hierarchy for chordgraph.

All application exceptions inherit from :class:`ChordGraphError`, which
carries an optional ``provider_name`` so error handlers can identify which
data source (e.g. "musicbrainz_api", "musicbrainz_replica") caused the
failure.

The hierarchy is organized by layer:

    ChordGraphError  (base -- catch-all for any chordgraph error)
    +-- UpstreamError               (public web service refused the request)
    |   +-- TransientUpstreamError  (network error / HTTP 5xx, retryable)
    |       +-- RateLimitError      (provider rate-limit signal, 503/429)
    +-- ReplicaUnavailableError     (local mirror down, slow or broken)
    +-- CatalogUnavailableError     (every data source failed for one call)
    +-- GraphError                  (graph session misuse)
    |   +-- ExpansionInProgressError
    |   +-- UnknownNodeError
    |   +-- InvalidDepthError

Callers retry on TransientUpstreamError, fall back to the web service on
ReplicaUnavailableError, and surface CatalogUnavailableError to the user.
"Not found" is never an exception: it travels as ``None`` data.
"""


class ChordGraphError(Exception):
    """Base exception for all chordgraph errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which data source triggered the error.
    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[musicbrainz_api] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Upstream web-service errors
# ---------------------------------------------------------------------------

class UpstreamError(ChordGraphError):
    """Raised when the public catalog web service rejects a request.

    ``status_code`` is the HTTP status when one was received, ``None`` for
    transport-level failures.
    """

    def __init__(
        self,
        message: str = "Upstream catalog request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class TransientUpstreamError(UpstreamError):
    """Raised for failures worth retrying (network errors, HTTP 5xx)."""

    def __init__(
        self,
        message: str = "Upstream catalog temporarily unavailable",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, status_code=status_code)


class RateLimitError(TransientUpstreamError):
    """Raised when the provider signals that the rate limit was exceeded.

    MusicBrainz answers 503 when a client goes over 1 request/second and
    bans addresses that keep doing it, so this is always retried with
    backoff through the shared request throttle.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, status_code=status_code)


# ---------------------------------------------------------------------------
# Replica / routing errors
# ---------------------------------------------------------------------------

class ReplicaUnavailableError(ChordGraphError):
    """Raised when the local catalog replica cannot answer a query.

    Never retried inline: the router demotes the replica and falls back to
    the web service within the same call.
    """

    def __init__(
        self,
        message: str = "Local catalog replica is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CatalogUnavailableError(ChordGraphError):
    """Raised when neither the replica nor the web service could serve a call."""

    def __init__(
        self,
        message: str = "Catalog data is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Graph session errors
# ---------------------------------------------------------------------------

class GraphError(ChordGraphError):
    """Raised when a graph session operation cannot be performed."""

    def __init__(
        self,
        message: str = "Graph operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExpansionInProgressError(GraphError):
    """Raised when an expansion is requested while another one is running."""

    def __init__(
        self,
        message: str = "An expansion is already in progress",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnknownNodeError(GraphError):
    """Raised when a node id is not part of the session graph."""

    def __init__(
        self,
        message: str = "Node is not part of the graph",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidDepthError(GraphError):
    """Raised when an expansion depth is outside the supported range."""

    def __init__(
        self,
        message: str = "Expansion depth out of range",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
