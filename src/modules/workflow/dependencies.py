"""FastAPI dependencies for workflow services."""

from fastapi import Request

from src.modules.workflow.registry import StatusRegistry, build_status_registry


def get_status_registry(request: Request) -> StatusRegistry:
    """Return the registry built at startup, building it on first use if absent."""
    registry = getattr(request.app.state, "status_registry", None)
    if registry is None:
        registry = build_status_registry()
        request.app.state.status_registry = registry
    return registry
