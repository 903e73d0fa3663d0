"""Loading of store adapters from an import path.

Deployments plug their rule, knowledge and file stores into the manager by
pointing ``RETENTION_MANAGER_ADAPTERS`` at a factory, for example
``my_platform.retention:build_adapters``. The factory receives the settings
and returns a RetentionAdapters instance.
"""

import importlib
import inspect
from typing import Any, Callable

from retention_service.config import Settings
from retention_service.observability.logging import get_logger
from retention_service.retention.errors import RetentionConfigurationError
from retention_service.retention.ports import RetentionAdapters

logger = get_logger(__name__)

AdapterFactory = Callable[[Settings], Any]


def load_adapter_factory(path: str) -> AdapterFactory:
    """Resolve a ``module:callable`` import path.

    Args:
        path: Import path of the factory

    Returns:
        The factory callable

    Raises:
        RetentionConfigurationError: If the path cannot be resolved
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise RetentionConfigurationError(f"Invalid adapters path: {path}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise RetentionConfigurationError(f"Failed to import adapters module {module_name}: {e}") from e

    factory = getattr(module, attribute, None)
    if factory is None or not callable(factory):
        raise RetentionConfigurationError(f"Adapters factory {attribute} not found in {module_name}")

    logger.debug("retention_adapters_factory_loaded", path=path)
    return factory


async def build_adapters(settings: Settings) -> RetentionAdapters:
    """Build the store adapters configured in ``settings``.

    Both plain and coroutine factories are supported.

    Raises:
        RetentionConfigurationError: If the factory is invalid
    """
    factory = load_adapter_factory(settings.retention_manager.adapters)
    adapters = factory(settings)
    if inspect.isawaitable(adapters):
        adapters = await adapters
    if not isinstance(adapters, RetentionAdapters):
        raise RetentionConfigurationError(
            f"Adapters factory {settings.retention_manager.adapters} "
            f"returned {type(adapters).__name__}, expected RetentionAdapters"
        )
    return adapters
