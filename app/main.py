from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.logging import configure_logging
from app.api.v1.promotion.router import router as promotion_router
from app.api.v1.rollover.router import router as rollover_router
from app.api.v1.supplementary.router import router as supplementary_router


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Academic Progression Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(supplementary_router)
    app.include_router(promotion_router)
    app.include_router(rollover_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
