"""Trial expiry job: transition lapsed trialing subscriptions to expired."""
from datetime import datetime
import logging
from typing import Optional

from freightgate.features.subscriptions.service import expire_lapsed_trials
from freightgate.models.subscription import ensure_utc, utc_now

logger = logging.getLogger("freightgate.workers.expire_trials")


def run_expire_trials(*, now: Optional[datetime] = None) -> dict:
    run_at = ensure_utc(now) or utc_now()
    expired = expire_lapsed_trials(now=run_at)
    logger.info("[expire_trials] run complete", extra={"run_at": run_at.isoformat(), "expired": expired})
    return {"run_at": run_at.isoformat(), "expired": expired}


if __name__ == "__main__":
    from freightgate.core.config import settings
    from freightgate.core.logging import configure_logging

    configure_logging(settings.ENV)
    result = run_expire_trials()
    print(result)
