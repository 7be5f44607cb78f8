"""
Rate limiting configuration.

The Limiter instance is created in reporting/__init__.py with no default
limits; this module applies per-blueprint limits. The impact-preview route
carries its own tighter limit (CONFIDENTIALITY_PREVIEW_RATE_LIMIT) because
each call walks every active user.

Usage:
    from reporting.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Confidentiality:  120/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("confidentiality")
    if bp:
        limiter.limit("120/minute")(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — confidentiality: 120/min, preview: %s",
        app.config.get("CONFIDENTIALITY_PREVIEW_RATE_LIMIT"),
    )
