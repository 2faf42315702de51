# FastAPI Server for the Encore Crowdfunding Platform

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from dotenv import load_dotenv

from config.app_config import ADMIN_EMAIL
from database.config import init_db, SessionLocal
from database.models import User, UserRole, UserType
from services.errors import FundingError, InvariantViolation

from routers import (
    campaigns_router,
    investments_router,
    fund_unlock_router,
    admin_router,
    revenue_router,
    webhooks_router,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


def seed_admin():
    """Make sure the configured admin account exists."""
    db = SessionLocal()
    try:
        admin = db.query(User).filter(User.email == ADMIN_EMAIL).first()
        if not admin:
            logger.info(f"Seeding admin user: {ADMIN_EMAIL}")
            db.add(User(
                email=ADMIN_EMAIL,
                name="Encore Admin",
                role=UserRole.ADMIN,
                user_type=UserType.ADMIN,
            ))
            db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Admin seeding failed: {e}")
        raise
    finally:
        db.close()


async def funding_error_handler(request: Request, exc: FundingError):
    if isinstance(exc, InvariantViolation):
        logger.error(f"{request.method} {request.url.path} aborted: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="Encore API",
        description="Music crowdfunding: ROI projection, milestone fund unlock and royalty payouts",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,  # Required when using "*"
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FundingError, funding_error_handler)

    app.include_router(campaigns_router, prefix="/api")
    app.include_router(investments_router, prefix="/api")
    app.include_router(fund_unlock_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(revenue_router, prefix="/api")
    app.include_router(webhooks_router, prefix="/api")

    @app.get("/")
    def root():
        return {
            "message": "Encore API",
            "version": "1.0.0",
            "status": "running"
        }

    @app.get("/health")
    def health_check():
        return {"status": "healthy"}

    return app


app = create_app()


@app.on_event("startup")
def startup_event():
    init_db()
    seed_admin()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
