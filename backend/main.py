import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import settings
from core.limiter import limiter

# Routers
from routers import cart, promotions

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Storefront Promotions API started ({settings.APP_ENV}, {settings.CURRENCY})")
    yield
    logger.info("Storefront Promotions API stopped")


app = FastAPI(
    title="Storefront Promotions API",
    description="Moteur d'évaluation et d'application des promotions panier",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(promotions.router, prefix="/api/promotions", tags=["Promotions"])


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "app": "storefront-promotions", "version": "1.0.0"}
