from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from supplydesk.errors import ProviderUnavailable
from supplydesk.schemas.asset import AssetQuote

logger = logging.getLogger(__name__)

ProviderFetch = Callable[[], list[AssetQuote]]


def _provider_name(fetch: ProviderFetch) -> str:
    module = getattr(fetch, "__module__", None) or ""
    return module.rsplit(".", 1)[-1] or getattr(fetch, "__name__", "provider")


async def fetch_or_none(fetch: ProviderFetch, timeout_seconds: float) -> list[AssetQuote] | None:
    name = _provider_name(fetch)
    try:
        return await asyncio.wait_for(asyncio.to_thread(fetch), timeout=timeout_seconds)
    except ProviderUnavailable as exc:
        logger.warning("Provider %s unavailable: %s", name, exc.message)
    except TimeoutError:
        logger.warning("Provider %s timed out after %gs", name, timeout_seconds)
    except Exception:
        logger.exception("Provider %s failed unexpectedly", name)
    return None


async def fetch_both(
    primary: ProviderFetch,
    secondary: ProviderFetch,
    timeout_seconds: float,
) -> tuple[list[AssetQuote] | None, list[AssetQuote] | None]:
    # Results come back in argument order, whichever request finishes first.
    primary_quotes, secondary_quotes = await asyncio.gather(
        fetch_or_none(primary, timeout_seconds),
        fetch_or_none(secondary, timeout_seconds),
    )
    return primary_quotes, secondary_quotes
