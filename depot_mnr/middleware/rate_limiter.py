"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in depot_mnr/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from depot_mnr.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"
SETTINGS_LIMIT = "30/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Stage + container endpoints:  120/minute (clerks batch heavily)
        - Audit reads:                  300/minute
        - Settings:                      30/minute
        - Health check:                  exempt

    Rate limiting is skipped when RATELIMIT_ENABLED is false (testing).
    """
    if not app.config.get("RATELIMIT_ENABLED", True) or app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled")
        return

    for bp_name in ("stages", "containers"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("audit")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("settings")
    if bp:
        limiter.limit(SETTINGS_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — stages/containers: %s, audit: %s, settings: %s",
        WRITE_LIMIT, READ_LIMIT, SETTINGS_LIMIT,
    )
