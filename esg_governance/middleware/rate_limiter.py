"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter is created in ``create_app`` without default limits; this
module attaches one limit string per blueprint.  ``RATE_LIMITS`` in the
app config overrides individual entries.
"""

import logging

logger = logging.getLogger(__name__)

# Keyed by remote address
DEFAULT_LIMITS = {
    "break_glass": "10/minute",
    "permissions": "60/minute",
    "periods": "60/minute",
    "sections": "60/minute",
    "data_points": "60/minute",
    "audit": "200/minute",
}


def init_rate_limits(app, limiter):
    """Apply ``DEFAULT_LIMITS`` (plus config overrides) to registered blueprints."""
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped under TESTING")
        return

    limits = {**DEFAULT_LIMITS, **app.config.get("RATE_LIMITS", {})}
    applied = []
    for bp_name, limit in limits.items():
        bp = app.blueprints.get(bp_name)
        if bp is None:
            continue
        limiter.limit(limit)(bp)
        applied.append(f"{bp_name}={limit}")

    logger.info("Rate limits applied: %s", ", ".join(applied))
