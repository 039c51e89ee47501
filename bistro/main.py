"""
FastAPI Application Entry Point

Bistro Boss API - restaurant ordering backend.

Endpoints:
    - POST /jwt: Issue an access token
    - /users, /users/admin/*: Identity registration and role administration
    - /menu, /reviews: Catalog
    - /carts: Shopping cart
    - POST /create-payment-intent, /payments: Checkout and reconciliation
    - GET /admin-stats, /user-stats, /order-stats: Statistics
    - GET /health: System health check

Author: Bistro Boss Team
Version: 1.0.0
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from bistro.core.config import Settings, get_settings, setup_logging
from bistro.core.exceptions import BistroError, NotFound
from bistro.core.security import TokenClaims, TokenService
from bistro.database import Database, get_db
from bistro.dependencies import (
    ensure_owner,
    get_current_identity,
    get_payment_service,
    get_token_service,
    require_admin,
)
from bistro.models import CartItem, MenuItem, Payment, Review, User, UserRole
from bistro.schemas import (
    AdminStats,
    AdminStatusResponse,
    CartItemCreate,
    CartItemResponse,
    CategoryStats,
    DeleteResult,
    ErrorResponse,
    HealthResponse,
    InsertResult,
    MenuItemCreate,
    MenuItemResponse,
    PaymentCreate,
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentRecordResult,
    PaymentResponse,
    ReconciliationResponse,
    RegisterResult,
    ReviewResponse,
    TokenRequest,
    TokenResponse,
    UpdateResult,
    UserCreate,
    UserResponse,
    UserStats,
)
from bistro.services.ledger import payment_to_ledger_row
from bistro.services.payment import BasePaymentService, get_payment_service as build_payment_service
from bistro.services.reconciliation import PaymentReconciler
from bistro.services.stats import StatsAggregator

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    settings: Settings = app.state.settings

    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await app.state.database.init()
    logger.info("✅ Database initialized")
    logger.info(f"✅ Payment Service: {app.state.payment_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await app.state.database.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def dispatch_ledger_export(payment_data: dict[str, Any]) -> None:
    """Queue the ledger export; runs after the response has been sent."""
    from bistro.tasks import export_payment_to_ledger

    try:
        export_payment_to_ledger.delay(payment_data)
    except Exception as e:
        # The payment is already committed; a missed export only affects the ledger
        logger.warning(f"Ledger export not queued for {payment_data.get('transaction_id')}: {e}")


def _check_redis(url: str) -> str:
    try:
        r = redis.Redis.from_url(url, socket_timeout=2)
        r.ping()
        r.close()
        return "healthy"
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return f"unhealthy: {e}"


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application with its process-wide services.

    The database, token service and payment provider are created here once
    and shared through app.state for the lifetime of the process.
    """
    settings = settings or get_settings()
    setup_logging(settings=settings)

    app = FastAPI(
        title=settings.app_name,
        description="Restaurant ordering backend: menu, carts, payments and statistics.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.database = Database(settings)
    app.state.token_service = TokenService.from_settings(settings)
    app.state.payment_service = build_payment_service(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_routes(app)

    return app


# =============================================================================
# ROUTES
# =============================================================================

def register_routes(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    # -------------------------------------------------------------------------
    # ROOT & HEALTH
    # -------------------------------------------------------------------------

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """API root with navigation links."""
        return {
            "message": f"🍽️ {settings.app_name} is running",
            "version": settings.app_version,
            "environment": settings.env_mode.value,
            "documentation": "/docs",
            "health": "/health",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(
        db: AsyncSession = Depends(get_db),
        payment_service: BasePaymentService = Depends(get_payment_service),
    ) -> HealthResponse:
        """Verify all system components are operational."""
        db_status = "healthy"
        try:
            await db.execute(text("SELECT 1"))
        except OperationalError as e:
            db_status = f"unhealthy: {e}"
            logger.error(f"Database health check failed: {e}")

        redis_status = await asyncio.to_thread(_check_redis, settings.redis_url)
        payment_status = "healthy" if await payment_service.health_check() else "unhealthy"

        overall = "operational" if all(
            s == "healthy" for s in [db_status, redis_status, payment_status]
        ) else "degraded"

        return HealthResponse(
            status=overall,
            database=db_status,
            redis=redis_status,
            payment_service=payment_status,
            timestamp=datetime.now(),
        )

    # -------------------------------------------------------------------------
    # TOKENS
    # -------------------------------------------------------------------------

    @app.post("/jwt", response_model=TokenResponse, tags=["Auth"])
    async def issue_token(
        claims: TokenRequest,
        token_service: TokenService = Depends(get_token_service),
    ) -> TokenResponse:
        """Sign the given identity claims for one token lifetime."""
        return TokenResponse(token=token_service.issue(claims.email, claims.role))

    # -------------------------------------------------------------------------
    # USERS
    # -------------------------------------------------------------------------

    @app.get("/users", response_model=List[UserResponse], responses=ERROR_RESPONSES, tags=["Users"])
    async def list_users(
        _: TokenClaims = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> List[UserResponse]:
        result = await db.execute(select(User).order_by(User.created_at))
        return [UserResponse.model_validate(u) for u in result.scalars().all()]

    @app.post("/users", response_model=RegisterResult, tags=["Users"])
    async def register_user(
        user_data: UserCreate,
        db: AsyncSession = Depends(get_db),
    ) -> RegisterResult:
        """Register an identity; an already known email is returned as-is."""
        result = await db.execute(select(User).where(User.email == user_data.email))
        existing = result.scalar_one_or_none()
        if existing is not None:
            return RegisterResult(inserted_id=existing.id, existing=True)

        role = UserRole.ADMIN if user_data.email in settings.admin_emails_list else UserRole.CUSTOMER
        user = User(id=uuid.uuid4(), name=user_data.name, email=user_data.email, role=role)
        db.add(user)
        await db.commit()

        logger.info(f"User {user.email} registered ({role.value})")
        return RegisterResult(inserted_id=user.id)

    @app.get(
        "/users/admin/{email}",
        response_model=AdminStatusResponse,
        responses=ERROR_RESPONSES,
        tags=["Users"],
    )
    async def get_admin_status(
        email: str,
        identity: TokenClaims = Depends(get_current_identity),
        db: AsyncSession = Depends(get_db),
    ) -> AdminStatusResponse:
        ensure_owner(identity, email)

        result = await db.execute(select(User).where(User.email == identity.email))
        user = result.scalar_one_or_none()
        return AdminStatusResponse(admin=bool(user and user.is_admin))

    @app.patch(
        "/users/admin/{user_id}",
        response_model=UpdateResult,
        responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}},
        tags=["Users"],
    )
    async def promote_user(
        user_id: uuid.UUID,
        identity: TokenClaims = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> UpdateResult:
        """Promote an identity to admin (admins only)."""
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")

        modified = 0
        if not user.is_admin:
            user.role = UserRole.ADMIN
            await db.commit()
            modified = 1
            logger.info(f"User {user.email} promoted to admin by {identity.email}")

        return UpdateResult(matched_count=1, modified_count=modified)

    # -------------------------------------------------------------------------
    # MENU & REVIEWS
    # -------------------------------------------------------------------------

    @app.get("/menu", response_model=List[MenuItemResponse], tags=["Menu"])
    async def list_menu(db: AsyncSession = Depends(get_db)) -> List[MenuItemResponse]:
        result = await db.execute(select(MenuItem).order_by(MenuItem.category, MenuItem.name))
        return [MenuItemResponse.model_validate(m) for m in result.scalars().all()]

    @app.post("/menu", response_model=InsertResult, responses=ERROR_RESPONSES, tags=["Menu"])
    async def create_menu_item(
        item_data: MenuItemCreate,
        _: TokenClaims = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> InsertResult:
        item = MenuItem(id=uuid.uuid4(), **item_data.model_dump())
        db.add(item)
        await db.commit()
        return InsertResult(inserted_id=item.id)

    @app.delete(
        "/menu/{item_id}",
        response_model=DeleteResult,
        responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}},
        tags=["Menu"],
    )
    async def delete_menu_item(
        item_id: uuid.UUID,
        _: TokenClaims = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> DeleteResult:
        item = await db.get(MenuItem, item_id)
        if item is None:
            raise NotFound(f"Menu item {item_id} not found")

        await db.delete(item)
        await db.commit()
        return DeleteResult(deleted_count=1)

    @app.get("/reviews", response_model=List[ReviewResponse], tags=["Reviews"])
    async def list_reviews(db: AsyncSession = Depends(get_db)) -> List[ReviewResponse]:
        result = await db.execute(select(Review))
        return [ReviewResponse.model_validate(r) for r in result.scalars().all()]

    # -------------------------------------------------------------------------
    # CARTS
    # -------------------------------------------------------------------------

    @app.get("/carts", response_model=List[CartItemResponse], responses=ERROR_RESPONSES, tags=["Carts"])
    async def list_cart(
        email: Optional[str] = Query(None),
        identity: TokenClaims = Depends(get_current_identity),
        db: AsyncSession = Depends(get_db),
    ) -> List[CartItemResponse]:
        ensure_owner(identity, email)

        result = await db.execute(
            select(CartItem).where(CartItem.email == identity.email).order_by(CartItem.created_at)
        )
        return [CartItemResponse.model_validate(c) for c in result.scalars().all()]

    @app.post("/carts", response_model=InsertResult, tags=["Carts"])
    async def add_to_cart(
        cart_data: CartItemCreate,
        db: AsyncSession = Depends(get_db),
    ) -> InsertResult:
        entry = CartItem(id=uuid.uuid4(), **cart_data.model_dump())
        db.add(entry)
        await db.commit()
        return InsertResult(inserted_id=entry.id)

    @app.delete(
        "/carts/{cart_id}",
        response_model=DeleteResult,
        responses={404: {"model": ErrorResponse}},
        tags=["Carts"],
    )
    async def remove_from_cart(
        cart_id: uuid.UUID,
        db: AsyncSession = Depends(get_db),
    ) -> DeleteResult:
        entry = await db.get(CartItem, cart_id)
        if entry is None:
            raise NotFound(f"Cart item {cart_id} not found")

        await db.delete(entry)
        await db.commit()
        return DeleteResult(deleted_count=1)

    # -------------------------------------------------------------------------
    # PAYMENTS
    # -------------------------------------------------------------------------

    @app.post(
        "/create-payment-intent",
        response_model=PaymentIntentResponse,
        responses={502: {"model": ErrorResponse}},
        tags=["Payments"],
    )
    async def create_payment_intent(
        intent_data: PaymentIntentCreate,
        payment_service: BasePaymentService = Depends(get_payment_service),
    ) -> PaymentIntentResponse:
        reconciler = PaymentReconciler(payment_service=payment_service, currency=settings.stripe_currency)
        client_secret = await reconciler.create_payment_intent(intent_data.price)
        return PaymentIntentResponse(client_secret=client_secret)

    @app.get(
        "/payments/{email}",
        response_model=List[PaymentResponse],
        responses=ERROR_RESPONSES,
        tags=["Payments"],
    )
    async def payment_history(
        email: str,
        identity: TokenClaims = Depends(get_current_identity),
        db: AsyncSession = Depends(get_db),
    ) -> List[PaymentResponse]:
        ensure_owner(identity, email)

        result = await db.execute(
            select(Payment).where(Payment.email == identity.email).order_by(Payment.created_at.desc())
        )
        return [PaymentResponse.model_validate(p) for p in result.scalars().all()]

    @app.post(
        "/payments",
        response_model=ReconciliationResponse,
        responses={503: {"model": ErrorResponse}},
        tags=["Payments"],
    )
    async def record_payment(
        payment_data: PaymentCreate,
        background_tasks: BackgroundTasks,
        db: AsyncSession = Depends(get_db),
    ) -> ReconciliationResponse:
        """Store the payment and remove the purchased cart entries."""
        reconciler = PaymentReconciler(db)
        outcome = await reconciler.record_payment(payment_data)

        if settings.ledger_export_enabled:
            background_tasks.add_task(dispatch_ledger_export, payment_to_ledger_row(outcome.payment))

        return ReconciliationResponse(
            payment_result=PaymentRecordResult(
                inserted_id=outcome.payment.id,
                duplicate=outcome.duplicate,
            ),
            delete_result=DeleteResult(deleted_count=outcome.deleted_count),
        )

    # -------------------------------------------------------------------------
    # STATISTICS
    # -------------------------------------------------------------------------

    @app.get("/admin-stats", response_model=AdminStats, responses=ERROR_RESPONSES, tags=["Stats"])
    async def admin_stats(
        _: TokenClaims = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> AdminStats:
        return await StatsAggregator(db).admin_stats()

    @app.get("/user-stats", response_model=UserStats, responses=ERROR_RESPONSES, tags=["Stats"])
    async def user_stats(
        identity: TokenClaims = Depends(get_current_identity),
        db: AsyncSession = Depends(get_db),
    ) -> UserStats:
        return await StatsAggregator(db).user_stats(identity.email)

    @app.get(
        "/order-stats",
        response_model=List[CategoryStats],
        responses=ERROR_RESPONSES,
        tags=["Stats"],
    )
    async def order_stats(
        _: TokenClaims = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> List[CategoryStats]:
        return await StatsAggregator(db).order_stats_by_category()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def register_error_handlers(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    @app.exception_handler(BistroError)
    async def bistro_exception_handler(request: Request, exc: BistroError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(OperationalError)
    async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(f"Store unavailable: {exc}")
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "error": "upstream failure",
                "detail": "Data store unavailable",
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all exception handler."""
        logger.exception(f"Unhandled exception: {exc}")

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal Server Error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )


app = create_app()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("bistro.main:app", host=settings.api_host, port=settings.api_port)
