"""Shared FastAPI dependencies."""

from uuid import UUID

from fastapi import Request

from .interview.service import SchedulingService


class AuthRequired(Exception):
    """Raised when no authenticated user is attached to the session. Handled in main.py."""

    pass


def get_scheduler(request: Request) -> SchedulingService:
    """Get the scheduling service from app state."""
    return request.app.state.scheduler


def get_current_user_id(request: Request) -> UUID:
    """Id of the user the auth layer put in the signed session cookie."""
    user_id_str = request.session.get("user_id")
    if not user_id_str:
        raise AuthRequired()
    try:
        return UUID(user_id_str)
    except (ValueError, AttributeError):
        request.session.clear()
        raise AuthRequired()
