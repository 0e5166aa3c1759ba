"""
Actor context middleware — resolves the acting user for each API request.

The upstream gateway authenticates the user and forwards the username in
``X-User`` (``X-Forwarded-User`` is accepted as a fallback). This hook
looks the name up and stores the Actor on ``g.actor``; unknown or
inactive names leave ``g.actor = None``, which the services treat as an
anonymous caller holding no capabilities.

Chain order:
  timing.py  →  actor_context.py  →  route handler
"""

import logging

from flask import g, request

from depot_mnr.services.permission import get_actor

logger = logging.getLogger(__name__)

ACTOR_SKIP_PREFIXES = ("/api/v1/health",)


def init_actor_context(app):
    """Register the actor lookup as a before_request hook."""

    @app.before_request
    def _actor_context():
        g.actor = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in ACTOR_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        username = (
            request.headers.get("X-User", "")
            or request.headers.get("X-Forwarded-User", "")
        ).strip()
        if not username:
            return None

        g.actor = get_actor(username)
        if g.actor is None:
            logger.warning("Unknown or inactive actor %r on %s %s",
                           username, request.method, request.path)
        return None
