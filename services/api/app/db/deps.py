from __future__ import annotations

from fastapi import Header, Request
from services.api.app.errors import AuthRequiredError
from services.api.app.services.background import TaskRunner
from services.api.app.services.notifications import NotificationDispatcher
from services.api.app.services.scheduler import StatusScheduler
from services.api.app.services.sessions import SessionRegistry
from services.api.app.services.store import Store


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_scheduler(request: Request) -> StatusScheduler:
    return request.app.state.scheduler


def get_task_runner(request: Request) -> TaskRunner:
    return request.app.state.task_runner


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_current_user_id(
    request: Request, authorization: str | None = Header(default=None)
) -> str | None:
    """Authenticated user id, or None for a guest."""

    return get_sessions(request).resolve(_bearer_token(authorization))


def require_user_id(
    request: Request, authorization: str | None = Header(default=None)
) -> str:
    user_id = get_current_user_id(request, authorization)
    if user_id is None:
        raise AuthRequiredError()
    return user_id
