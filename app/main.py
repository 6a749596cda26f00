import asyncio
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.core.http_client import HttpClient
from app.modules.auth import routes as auth_routes
from app.modules.profiles import routes as profiles_routes
from app.modules.products import routes as products_routes
from app.modules.orders import routes as orders_routes
from app.modules.price_offers import routes as price_offers_routes
from app.modules.notifications import routes as notifications_routes
from app.modules.media import routes as media_routes
from app.modules.telegram import routes as telegram_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(profiles_routes.router, prefix="/api/v1")
app.include_router(products_routes.router, prefix="/api/v1")
app.include_router(orders_routes.router, prefix="/api/v1")
app.include_router(price_offers_routes.router, prefix="/api/v1")
app.include_router(notifications_routes.router, prefix="/api/v1")
app.include_router(media_routes.router, prefix="/api/v1")
app.include_router(telegram_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")

    if settings.enable_background_jobs:
        from app.modules.price_offers.expiry_scheduler import offer_expiry_loop
        app.state.offer_expiry_task = asyncio.create_task(offer_expiry_loop())
        logger.info(f"Offer expiry loop started - checking every {settings.offer_expiry_interval_seconds}s")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")
    task = getattr(app.state, "offer_expiry_task", None)
    if task is not None:
        task.cancel()
    HttpClient.close()


@app.get("/")
async def root():
    return {"message": "Welcome to partsbay-backend", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness check: reports which integrations are configured."""
    return {
        "status": "ready",
        "integrations": {
            "supabase": bool(settings.supabase_url),
            "telegram": bool(settings.telegram_bot_token),
            "cloudinary": settings.cloudinary_configured,
            "pusher": settings.pusher_configured,
            "email": bool(settings.resend_api_key),
            "s3_backup": settings.s3_configured,
        },
    }
