import asyncio
import datetime
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from supplydesk.context import AppContext
from supplydesk.errors import AllSourcesUnavailable, ProviderUnavailable
from supplydesk.providers import coingecko, coinmarketcap
from supplydesk.schemas.asset import MajorSupplySnapshot, ReconciledAsset, Top100Response

logger = logging.getLogger(__name__)

router = APIRouter()


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _unavailable(error: str, exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"success": False, "error": error, "message": str(exc)},
    )


def _top100_response(data: list[ReconciledAsset], message: str | None = None) -> Top100Response:
    return Top100Response(message=message, timestamp=_now(), count=len(data), data=data)


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "timestamp": _now().isoformat()}


@router.get("/")
def index() -> dict:
    return {
        "message": "Crypto Supply Data API",
        "endpoints": {
            "health": "GET /health",
            "top100": "GET /api/top100",
            "top100_refresh": "POST /api/top100/refresh",
            "cache_stats": "GET /api/cache/stats",
            "publisher_status": "GET /api/publisher/status",
            "coinmarketcap": "GET /supply/coinmarketcap",
            "coingecko": "GET /supply/coingecko",
            "both": "GET /supply/both",
        },
    }


@router.get("/api/top100", response_model=Top100Response)
async def top100(context: AppContext = Depends(get_context)) -> Top100Response:
    try:
        data = await context.snapshot_service.get_snapshot()
    except AllSourcesUnavailable as exc:
        raise _unavailable("Failed to fetch top 100 cryptocurrencies", exc) from exc
    return _top100_response(data)


@router.post("/api/top100/refresh", response_model=Top100Response)
async def refresh_top100(context: AppContext = Depends(get_context)) -> Top100Response:
    try:
        data = await context.snapshot_service.refresh()
    except AllSourcesUnavailable as exc:
        raise _unavailable("Failed to refresh top 100 cryptocurrencies", exc) from exc
    return _top100_response(data, message="Cache refreshed successfully")


@router.get("/api/cache/stats")
def cache_stats(context: AppContext = Depends(get_context)) -> dict:
    stats = context.cache.stats()
    return {"hits": stats.hits, "misses": stats.misses, "keys": stats.keys}


@router.get("/api/publisher/status")
def publisher_status(context: AppContext = Depends(get_context)) -> dict:
    publisher = context.publisher
    if publisher is None:
        return {"enabled": False}
    last = publisher.last_result
    return {
        "enabled": True,
        "running": publisher.running,
        "state": publisher.state.value,
        "interval_seconds": publisher.interval_seconds,
        "skipped_cycles": publisher.skipped_cycles,
        "last_error": publisher.last_error,
        "last_result": None
        if last is None
        else {
            "tx_hash": last.tx_hash,
            "block_number": last.block_number,
            "symbols": last.symbols,
            "published_at": last.published_at.isoformat(),
        },
    }


async def _major_supply(fetch) -> MajorSupplySnapshot:
    try:
        return await asyncio.to_thread(fetch)
    except ProviderUnavailable as exc:
        logger.warning("Supply lookup failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"success": False, "error": str(exc)},
        ) from exc


@router.get("/supply/coinmarketcap")
async def supply_coinmarketcap() -> dict:
    data = await _major_supply(coinmarketcap.fetch_major_supply)
    return {"success": True, "data": data.model_dump(mode="json")}


@router.get("/supply/coingecko")
async def supply_coingecko() -> dict:
    data = await _major_supply(coingecko.fetch_major_supply)
    return {"success": True, "data": data.model_dump(mode="json")}


@router.get("/supply/both")
async def supply_both() -> dict:
    cmc_data, cg_data = await asyncio.gather(
        _major_supply(coinmarketcap.fetch_major_supply),
        _major_supply(coingecko.fetch_major_supply),
    )
    return {
        "success": True,
        "data": {
            "coinmarketcap": cmc_data.model_dump(mode="json"),
            "coingecko": cg_data.model_dump(mode="json"),
        },
    }
