"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
the bot tries to book an appointment.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    def main():
        try:
            validate_startup_config(settings)
        except StartupValidationError as e:
            logger.critical(f"Startup blocked: {e}")
            sys.exit(1)
"""

import logging
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config import SECRET_PLACEHOLDER, Settings

logger = logging.getLogger(__name__)

CALENDAR_BACKENDS = {"google", "memory"}
SLOT_LOCK_BACKENDS = {"memory", "redis"}

# Shared secrets shorter than this are accepted with a warning
MIN_SECRET_LENGTH = 24


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def _check_credentials(settings: Settings) -> str | None:
    """Error message for unusable Google credentials, None when they look valid."""
    if settings.GOOGLE_SERVICE_ACCOUNT_JSON:
        gc_path = Path(settings.GOOGLE_SERVICE_ACCOUNT_JSON)
        if not gc_path.exists():
            return f"Google Calendar credentials file not found: {gc_path}"
        if not gc_path.is_file():
            return f"Google Calendar credentials path is not a file: {gc_path}"
        try:
            content = gc_path.read_text()
        except PermissionError:
            return f"Google Calendar credentials file not readable (permission denied): {gc_path}"
        if len(content) < 100:  # Valid JSON key file is typically >1KB
            return f"Google Calendar credentials file appears empty or invalid: {gc_path}"
        logger.info(f"  [OK] Google Calendar credentials: {gc_path}")
        return None

    if settings.GOOGLE_CLIENT_EMAIL and settings.GOOGLE_PRIVATE_KEY:
        if "BEGIN PRIVATE KEY" not in settings.google_private_key:
            return "GOOGLE_PRIVATE_KEY does not look like a PEM private key"
        logger.info(f"  [OK] Google Calendar credentials: {settings.GOOGLE_CLIENT_EMAIL}")
        return None

    return (
        "Google Calendar credentials missing - set GOOGLE_SERVICE_ACCOUNT_JSON "
        "or GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY"
    )


def validate_startup_config(settings: Settings) -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. Webhook secret
    if not settings.WEBHOOK_SECRET or settings.WEBHOOK_SECRET == SECRET_PLACEHOLDER:
        critical_failures.append("WEBHOOK_SECRET is missing or placeholder - set a shared secret")
        results["webhook_secret"] = False
    else:
        results["webhook_secret"] = True
        logger.info("  [OK] Webhook secret configured")

    # 2. Calendar backend and calendar id
    if settings.CALENDAR_BACKEND not in CALENDAR_BACKENDS:
        critical_failures.append(
            f"CALENDAR_BACKEND must be one of {sorted(CALENDAR_BACKENDS)}, "
            f"got '{settings.CALENDAR_BACKEND}'"
        )
        results["calendar_backend"] = False
    else:
        results["calendar_backend"] = True

    if not settings.GOOGLE_CALENDAR_ID:
        critical_failures.append("GOOGLE_CALENDAR_ID is not set")
        results["calendar_id"] = False
    else:
        results["calendar_id"] = True
        logger.info(f"  [OK] Calendar: {settings.GOOGLE_CALENDAR_ID}")

    # 3. Google credentials (only for the real calendar)
    if settings.CALENDAR_BACKEND == "google":
        gc_error = _check_credentials(settings)
        results["google_credentials"] = gc_error is None
        if gc_error:
            critical_failures.append(gc_error)
    else:
        logger.warning(
            f"  [WARN] CALENDAR_BACKEND={settings.CALENDAR_BACKEND} - "
            f"appointments are not persisted"
        )

    # 4. Timezone
    try:
        ZoneInfo(settings.TIMEZONE)
        results["timezone"] = True
    except (ZoneInfoNotFoundError, ValueError):
        critical_failures.append(f"TIMEZONE '{settings.TIMEZONE}' is not a known IANA timezone")
        results["timezone"] = False

    # 5. Availability hour range
    if settings.AVAILABILITY_FIRST_HOUR > settings.AVAILABILITY_LAST_HOUR:
        critical_failures.append(
            f"AVAILABILITY_FIRST_HOUR ({settings.AVAILABILITY_FIRST_HOUR}) is after "
            f"AVAILABILITY_LAST_HOUR ({settings.AVAILABILITY_LAST_HOUR})"
        )
        results["availability_hours"] = False
    else:
        results["availability_hours"] = True

    # 6. Slot lock backend
    if settings.SLOT_LOCK_BACKEND not in SLOT_LOCK_BACKENDS:
        critical_failures.append(
            f"SLOT_LOCK_BACKEND must be one of {sorted(SLOT_LOCK_BACKENDS)}, "
            f"got '{settings.SLOT_LOCK_BACKEND}'"
        )
        results["slot_lock_backend"] = False
    elif settings.SLOT_LOCK_BACKEND == "redis" and not settings.REDIS_URL.startswith(
        ("redis://", "rediss://", "unix://")
    ):
        critical_failures.append(f"REDIS_URL is not a redis:// URL: '{settings.REDIS_URL}'")
        results["slot_lock_backend"] = False
    else:
        results["slot_lock_backend"] = True
        logger.info(f"  [OK] Slot lock backend: {settings.SLOT_LOCK_BACKEND}")

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 7. Webhook secret minimum length (security)
    if len(settings.WEBHOOK_SECRET) < MIN_SECRET_LENGTH:
        logger.warning(
            f"WEBHOOK_SECRET should be at least {MIN_SECRET_LENGTH} characters for security"
        )
        results["webhook_secret_length"] = False
    else:
        results["webhook_secret_length"] = True

    # 8. Evening price lower than base price is almost certainly a typo
    if settings.PRICE_EVENING_AMOUNT < settings.PRICE_BASE_AMOUNT:
        logger.warning(
            f"PRICE_EVENING_AMOUNT ({settings.PRICE_EVENING_AMOUNT}) is lower than "
            f"PRICE_BASE_AMOUNT ({settings.PRICE_BASE_AMOUNT})"
        )
        results["pricing"] = False
    else:
        results["pricing"] = True

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("=" * 60)
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        logger.critical("=" * 60)
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results
