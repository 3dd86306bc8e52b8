"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from workers.services import PipelineServices


def get_services(request: Request) -> PipelineServices:
    """The services built in the application lifespan."""
    return request.app.state.services
