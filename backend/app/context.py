"""Per-request caller information handed to the service layer."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """An authenticated account, as asserted by a verified identity token."""

    user_id: str
    email: str


@dataclass(frozen=True)
class CallerContext:
    """
    Who is calling and from where.

    Built once per request by the routers. ``address`` is the best-effort
    client address used both for rate limiting and for the access log;
    ``identity`` is ``None`` for anonymous callers.
    """

    address: str
    user_agent: str | None = None
    identity: Identity | None = None
