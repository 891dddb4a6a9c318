"""FastAPI application exposing the billing API."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from ..config import CONFIG, reload_config
from .routes import billing


load_dotenv()
reload_config()

app = FastAPI(
    title=CONFIG.api_title,
    version=CONFIG.api_version,
    description=(
        "Billing API for Helpy households: Stripe checkout, billing portal "
        "and the Stripe webhook receiver."
    ),
)


def _configure_cors(api_app: FastAPI) -> None:
    origins = list(getattr(CONFIG, "api_cors_origins", ()) or ())
    if not origins:
        return

    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


_configure_cors(app)


@app.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    """Simple health endpoint for load balancers and smoke tests."""

    return {"status": "ok", "environment": CONFIG.environment}


app.include_router(billing.router, prefix="/v1", tags=["billing"])
