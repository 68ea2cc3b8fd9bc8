# =============================================================================
# clinic_core/services/__init__.py
# Service Layer for the Clinic Sync Service
# =============================================================================
"""
Service layer between callers (Streamlit page, CLI) and the sync engine.

Usage Example:
-------------
    from clinic_core.services import get_sync_service

    service = get_sync_service()
    response = asyncio.run(service.trigger())
    print(response.to_dict())
    print(service.status()["overallPercentage"])
"""

from .base_service import BaseService, ServiceResult
from .sync_service import (
    SyncResponse,
    SyncService,
    build_sync_service,
    get_sync_service,
)

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    # Sync trigger / status
    "SyncResponse",
    "SyncService",
    "build_sync_service",
    "get_sync_service",
]
