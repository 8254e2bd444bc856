from __future__ import annotations

from collections.abc import Callable


def require_roles(roles: list[str]) -> Callable:
    """
    Route-level role requirement, declared next to the handler.

    The decorator does NOT perform auth itself. It attaches metadata that the global
    security dependency reads after routing and merges with the YAML rule for the path.
    """

    def decorator(fn: Callable) -> Callable:
        existing = set(getattr(fn, "__security_required_roles__", set()))
        setattr(fn, "__security_required_roles__", existing | set(roles))
        return fn

    return decorator
