"""Engine factory."""

from __future__ import annotations

import logging

from dotenv import load_dotenv

from modstack.config import Settings, settings as default_settings
from modstack.engine.cache import BooleanCache, EngineCaches, InstanceStorage
from modstack.engine.composer import TransformComposer
from modstack.engine.config import EngineConfig
from modstack.engine.errors import ModifierErrorHandler, RecoveryStrategy
from modstack.engine.monitor import ModifierPerformanceMonitor

load_dotenv()

logging.basicConfig(
    level=getattr(logging, default_settings.modstack_log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

logger = logging.getLogger(__name__)


def create_engine(
    settings: Settings | None = None,
    caches: EngineCaches | None = None,
) -> TransformComposer:
    settings = settings or default_settings
    config = EngineConfig.from_settings(settings)

    # Import all processor modules to trigger registration
    _register_processors()

    caches = caches or EngineCaches(
        boolean=BooleanCache(capacity=settings.boolean_cache_capacity),
        instances=InstanceStorage(),
    )
    composer = TransformComposer(
        config=config,
        caches=caches,
        error_handler=ModifierErrorHandler(RecoveryStrategy.parse(config.recovery_strategy)),
        monitor=ModifierPerformanceMonitor(
            slow_modifier_ms=config.slow_modifier_ms,
            max_samples=config.max_timing_samples,
        ),
    )
    logger.debug(
        "Engine ready (%s): %d processors, recovery %s",
        settings.modstack_env,
        composer.registry.count,
        config.recovery_strategy,
    )
    return composer


def _register_processors() -> None:
    """Import all processor modules so @modifier_processor decorators fire."""
    import importlib
    import pkgutil

    package = importlib.import_module("modstack.engine.processors")
    for _, module_name, _ in pkgutil.iter_modules(package.__path__):
        importlib.import_module(f"modstack.engine.processors.{module_name}")
