"""
Factory for creating storage backends
"""
import importlib
from typing import Any, Dict, Optional, Type

import structlog

from storage.base import LocalStorageBackend, StorageBackend

logger = structlog.get_logger()


# Registry of available storage backends
STORAGE_BACKENDS = {
    "filesystem": LocalStorageBackend,
    "local": LocalStorageBackend,
}

# Backends imported on first use: (module, class)
LAZY_BACKENDS = {
    "s3": ("storage.backends.s3", "S3StorageBackend"),
    "b2": ("storage.backends.s3", "S3StorageBackend"),
}


def _lazy_import_backend(backend_type: str) -> Optional[Type[StorageBackend]]:
    if backend_type not in LAZY_BACKENDS:
        return None

    module_name, class_name = LAZY_BACKENDS[backend_type]
    try:
        module = importlib.import_module(module_name)
        backend_class = getattr(module, class_name)
    except ImportError as e:
        logger.error("Failed to import storage backend", backend=backend_type, error=str(e))
        raise ValueError(f"Storage backend '{backend_type}' is not available: {e}")

    STORAGE_BACKENDS[backend_type] = backend_class
    return backend_class


def create_storage_backend(config: Dict[str, Any]) -> StorageBackend:
    """
    Create a storage backend from configuration.

    Args:
        config: Backend configuration dictionary with a ``type`` key

    Returns:
        Initialized storage backend

    Raises:
        ValueError: If backend type is unknown or configuration is invalid
    """
    backend_type = config.get("type")
    if not backend_type:
        raise ValueError("Storage backend configuration must include 'type'")

    backend_class = STORAGE_BACKENDS.get(backend_type) or _lazy_import_backend(backend_type)
    if backend_class is None:
        raise ValueError(f"Unknown storage backend type: {backend_type}")

    return backend_class(config)


def storage_config_from_settings(settings) -> Dict[str, Any]:
    """Build a backend configuration from application settings."""
    return {
        "type": settings.STORAGE_BACKEND,
        "name": settings.STORAGE_BACKEND,
        "public_base": settings.STORAGE_PUBLIC_BASE,
        "base_path": settings.STORAGE_PATH,
        "bucket": settings.S3_BUCKET,
        "endpoint": settings.S3_ENDPOINT,
        "region": settings.S3_REGION,
        "access_key": settings.S3_ACCESS_KEY_ID,
        "secret_key": settings.S3_SECRET_ACCESS_KEY,
    }
