# =============================================================================
# clinic_core/config/__init__.py
# Sync Service Configuration
# =============================================================================

from .settings import SyncSettings, load_settings

__all__ = ["SyncSettings", "load_settings"]
