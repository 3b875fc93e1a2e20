"""
zkVault — Core API Entry Point.

Initializes the FastAPI application, configures logging from Settings and
registers the vault router next to a health endpoint.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends, FastAPI

from zkvault.api.vault import get_vault, vault_router
from zkvault.core.config import settings
from zkvault.services.vault_controller import VaultController

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-7s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# --- Application boot timestamp for uptime tracking ---
_BOOT_TIME: float = time.time()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Privacy-preserving collateral vault minting ZkUSD against zero-knowledge membership proofs",
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

app.include_router(vault_router, prefix=settings.API_V1_STR)


@app.get("/health", tags=["System"])
def health(vault: VaultController = Depends(get_vault)) -> Dict[str, Any]:
    """Liveness probe with a summary of vault state."""
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.time() - _BOOT_TIME, 2),
        "deposits": vault.next_index,
        "events": len(vault.events),
        "collateral_reserve": str(vault.collateral_reserve),
    }


logger.info(f"[MAIN] {settings.PROJECT_NAME} API ready — prefix {settings.API_V1_STR}")
