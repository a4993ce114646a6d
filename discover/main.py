import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from discover.config import Settings, get_settings
from discover.middleware import RequestLoggingMiddleware
from discover.models.article import Article, FeedPage
from discover.models.quote import MarketSnapshot
from discover.models.weather import WeatherSnapshot
from discover.services.errors import MissingCredentials, ProviderError
from discover.services.market import MarketAggregator
from discover.services.weather import WeatherService
from discover.services.wordpress import WordPressClient

log = logging.getLogger("discover")

router = APIRouter()

def _now():
    return datetime.now(timezone.utc).isoformat()

def _cache_control(ttl: int) -> dict:
    return {"Cache-Control": f"public, s-maxage={ttl}, stale-while-revalidate"}

# ---------- Dependencies ----------
def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_market_service(request: Request) -> MarketAggregator:
    return request.app.state.market

def get_weather_service(request: Request) -> WeatherService:
    return request.app.state.weather

def get_wordpress(request: Request) -> WordPressClient:
    return request.app.state.wordpress

# ---------- Routes ----------
@router.get("/health")
def health():
    return {"status": "ok", "time_utc": _now()}

@router.get("/api/market", response_model=MarketSnapshot)
async def api_market(
    market: MarketAggregator = Depends(get_market_service),
    settings: Settings = Depends(get_app_settings),
):
    snapshot = await market.get_market()
    return JSONResponse(snapshot.model_dump(by_alias=True), headers=_cache_control(settings.MARKET_REVALIDATE))

@router.get("/api/weather", response_model=WeatherSnapshot)
async def api_weather(
    city: Optional[str] = Query(None, description="City name, e.g. San Francisco"),
    weather: WeatherService = Depends(get_weather_service),
    settings: Settings = Depends(get_app_settings),
):
    snapshot = await weather.get_weather(city or settings.DEFAULT_CITY)
    return JSONResponse(snapshot.model_dump(by_alias=True), headers=_cache_control(settings.WEATHER_REVALIDATE))

@router.get("/api/posts", response_model=FeedPage)
async def api_posts(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    wordpress: WordPressClient = Depends(get_wordpress),
    settings: Settings = Depends(get_app_settings),
):
    try:
        feed = await wordpress.get_posts(page=page, per_page=per_page)
    except MissingCredentials:
        raise HTTPException(status_code=503, detail="WordPress source not configured")
    except ProviderError as e:
        log.warning("feed page %s: %s", page, e)
        raise HTTPException(status_code=502, detail=str(e))
    return JSONResponse(feed.model_dump(by_alias=True), headers=_cache_control(settings.POSTS_REVALIDATE))

@router.get("/api/posts/{slug}", response_model=Article)
async def api_post(slug: str, wordpress: WordPressClient = Depends(get_wordpress)):
    try:
        article = await wordpress.get_article(slug)
    except MissingCredentials:
        raise HTTPException(status_code=503, detail="WordPress source not configured")
    except ProviderError as e:
        log.warning("article %s: %s", slug, e)
        raise HTTPException(status_code=502, detail=str(e))
    if article is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return JSONResponse(article.model_dump(by_alias=True))

# ---------- App ----------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | discover | %(message)s",
    )

    app = FastAPI(title="Discover API", version="0.1.0")
    app.state.settings = settings
    app.state.market = MarketAggregator(settings)
    app.state.weather = WeatherService(settings)
    app.state.wordpress = WordPressClient(settings)

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(router)
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("discover.main:app", host="0.0.0.0", port=8000)
