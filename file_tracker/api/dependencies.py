"""Request dependencies."""

from fastapi import Request

from file_tracker.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    """Service context created by the application lifespan."""
    return request.app.state.context
