"""Route-level retry policy.

Routes can override the retry ceiling and attach tags used to filter replay
batches. The ``retry`` decorator stores the settings on the endpoint
function; ``EndpointRoutePolicy`` reads them back at capture time.

Examples:
    Declaring a policy on a FastAPI endpoint::

        from request_retry.routing import retry

        @app.post("/api/invoices")
        @retry(5, tags=["billing", "invoices"])
        async def create_invoice(invoice: Invoice):
            ...

    Replaying only billing requests::

        $ request-retry process --tag billing
"""

from collections.abc import Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

POLICY_ATTRIBUTE = "__request_retry__"

F = TypeVar("F", bound=Callable[..., Any])


class RouteInfo:
    """The route that handled a request.

    Attributes:
        name: Route name, if the router assigns one.
        endpoint: Endpoint callable, if known.
    """

    def __init__(self, name: str | None = None, endpoint: Any = None) -> None:
        self.name = name
        self.endpoint = endpoint


class RouteRetrySettings:
    """Retry settings attached to an endpoint by ``retry``."""

    def __init__(self, max_retries: int | None = None, tags: list[str] | None = None) -> None:
        if max_retries is not None and max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.max_retries = max_retries
        self.tags = list(tags or [])


def retry(max_retries: int | None = None, tags: list[str] | None = None) -> Callable[[F], F]:
    """Attach a retry ceiling and tags to an endpoint.

    Args:
        max_retries: Ceiling for this route; the configured default when None.
        tags: Tags stored on captured records; the route name when empty.

    Returns:
        Decorator returning the endpoint unchanged apart from the settings.
    """
    settings = RouteRetrySettings(max_retries=max_retries, tags=tags)

    def decorator(endpoint: F) -> F:
        setattr(endpoint, POLICY_ATTRIBUTE, settings)
        return endpoint

    return decorator


@runtime_checkable
class RoutePolicy(Protocol):
    """Resolves route metadata consumed at capture time."""

    def max_retries(self, route: RouteInfo | None) -> int | None:
        """Ceiling declared by the route, or None to use the default."""
        ...

    def tags(self, route: RouteInfo | None) -> list[str]:
        """Tags declared by the route (falling back to its name), or []."""
        ...


class EndpointRoutePolicy:
    """Reads settings attached to endpoints with the ``retry`` decorator."""

    def _settings(self, route: RouteInfo | None) -> RouteRetrySettings | None:
        if route is None or route.endpoint is None:
            return None
        return getattr(route.endpoint, POLICY_ATTRIBUTE, None)

    def max_retries(self, route: RouteInfo | None) -> int | None:
        settings = self._settings(route)
        return settings.max_retries if settings else None

    def tags(self, route: RouteInfo | None) -> list[str]:
        if route is None:
            return []
        settings = self._settings(route)
        if settings and settings.tags:
            return list(settings.tags)
        return [route.name] if route.name else []
