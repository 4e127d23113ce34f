# Overview: Request-scoped context handed explicitly to service functions.

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class Actor:
    """The authenticated principal a service call acts on behalf of."""
    user_id: Any
    level: int
    store_id: Any = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        level = user.role.level if user.role is not None else 0
        return cls(user_id=user.id, level=level, store_id=user.store_id)


class CorrelationAdapter(logging.LoggerAdapter):
    """Attaches the request correlation id to every record as `request_id`."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("request_id", self.extra["request_id"])
        return msg, kwargs


@dataclass
class RequestContext:
    correlation_id: str
    logger: logging.LoggerAdapter
    actor: Actor | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self):
        return self.actor.user_id if self.actor else None


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def build_context(
    logger: logging.Logger,
    *,
    correlation_id: str | None = None,
    actor: Actor | None = None,
) -> RequestContext:
    cid = correlation_id or new_correlation_id()
    return RequestContext(
        correlation_id=cid,
        logger=CorrelationAdapter(logger, {"request_id": cid}),
        actor=actor,
    )
