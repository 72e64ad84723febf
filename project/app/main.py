# app/main.py

import multiprocessing
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.middleware.db_middleware import DBSessionMiddleware
from app.utils.cache import Cache
from app.utils.database import init_db
from app.utils.log import Log
from app.utils.rate_limit import RateLimiter, rate_limited

# --- загрузка переменных окружения ---
load_dotenv()

# --- sync логгер для раннего старта ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="main.py imports done")


# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup")

    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log ready")

    admin_created = await init_db()
    await app.state.log.log_info(target="startup", message="Database ready", data={"admin_created": admin_created})

    app.state.cache = Cache(log=app.state.log)
    app.state.rate_limiter = RateLimiter()
    await app.state.log.log_info(target="startup", message="Cache and rate limiter ready",
                                 data={"cache_enabled": app.state.cache.enabled})

    yield

    # shutdown
    await app.state.log.log_info(target="shutdown", message="Application stopping")
    await app.state.cache.close()
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log closed")


# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="La Fine Parfumerie API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)


# ────────────── Обработка ошибок ──────────────
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Невалидные данные: 400 со списком ошибок."""
    details = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    await request.app.state.log.log_warning("validation", "Invalid data", {"path": request.url.path, "errors": details})
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": {"error": "Invalid data", "details": details}}),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    await request.app.state.log.log_error("server", f"Unhandled error: {exc}", {"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/")
def read_root():
    return {"message": "La Fine Parfumerie API"}


# ────────────── Подключение роутов ──────────────
from app.routes import (  # noqa: E402
    admin,
    admin_order,
    admin_product,
    admin_promo,
    auth,
    catalog,
    checkout,
    cron,
    health,
    loyalty,
    order,
    recommendation,
    referral,
    review,
    webhook,
    wishlist,
)

admin_dependencies = [Depends(auth.get_admin_user), Depends(rate_limited("admin"))]

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(catalog.router, tags=["catalog"])
app.include_router(checkout.router, tags=["checkout"])
app.include_router(order.router, prefix="/orders", tags=["orders"])
app.include_router(webhook.router, tags=["webhook"])
app.include_router(review.router, tags=["reviews"])
app.include_router(wishlist.router, prefix="/wishlist", tags=["wishlist"])
app.include_router(loyalty.router, prefix="/loyalty", tags=["loyalty"])
app.include_router(referral.router, prefix="/referral", tags=["referral"])
app.include_router(recommendation.router, tags=["recommendations"])
app.include_router(admin_product.router, prefix="/admin/products", tags=["admin"], dependencies=admin_dependencies)
app.include_router(admin_order.router, prefix="/admin/orders", tags=["admin"], dependencies=admin_dependencies)
app.include_router(admin_promo.router, prefix="/admin/promo", tags=["admin"], dependencies=admin_dependencies)
app.include_router(admin.router, prefix="/admin", tags=["admin"], dependencies=admin_dependencies)
app.include_router(cron.router, prefix="/cron", tags=["cron"])
app.include_router(health.router, tags=["health"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="uvicorn.run")
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
