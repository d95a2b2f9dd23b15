"""Backend service initialization for the web API.

Registries are shared per data directory so the alert loop and request
handlers see the same in-memory state and the same lock.
"""

import threading
from pathlib import Path

from flask import current_app, has_app_context

_instances: dict = {}
_instances_lock = threading.Lock()


def get_data_dir() -> Path:
    from config.settings import DATA_DIR
    if has_app_context() and current_app.config.get("DATA_DIR"):
        return Path(current_app.config["DATA_DIR"])
    return Path(DATA_DIR)


def _shared(kind: str, factory):
    key = (kind, str(get_data_dir()))
    with _instances_lock:
        if key not in _instances:
            _instances[key] = factory(get_data_dir())
        return _instances[key]


def get_tag_registry():
    from tagtracker.registry import TagRegistry
    return _shared("tags", lambda d: TagRegistry(str(d / "tags.json")))


def get_product_registry():
    from tagtracker.registry import ProductRegistry
    return _shared("products", lambda d: ProductRegistry(str(d / "products.json")))


def get_location_registry():
    from tagtracker.registry import LocationRegistry
    return _shared("locations", lambda d: LocationRegistry(str(d / "locations.json")))


def get_tag_service():
    from tagtracker.tags import TagService
    return TagService(get_tag_registry(), get_product_registry(), get_location_registry())


def get_notification_dispatcher():
    """Return a NotificationDispatcher configured from settings."""
    from tagtracker.notifications.dispatcher import NotificationDispatcher
    return _shared("dispatcher", lambda d: NotificationDispatcher.from_settings())
