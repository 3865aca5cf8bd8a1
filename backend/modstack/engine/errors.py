"""Modifier errors and recovery strategies.

A failing modifier is handed to ``ModifierErrorHandler.handle`` which logs it
and decides, per ``RecoveryStrategy``, whether processing continues and with
which instances.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from modstack.engine.instances import VirtualInstance
    from modstack.models.modifier import Modifier
    from modstack.models.shape import ShapeRecord

logger = logging.getLogger(__name__)


class ModifierError(Exception):
    code = "MODIFIER_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        modifier: Modifier | None = None,
        shape: ShapeRecord | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.modifier = modifier
        self.shape = shape
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ModifierProcessingError(ModifierError):
    code = "MODIFIER_PROCESSING_FAILED"


class BooleanOperationError(ModifierError):
    code = "BOOLEAN_OPERATION_FAILED"

    def __init__(
        self,
        message: str,
        operation: str,
        instances: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.operation = operation
        self.instances = instances or []
        self.details.setdefault("operation", operation)
        self.details.setdefault("instances", self.instances)


class MaterializationError(ModifierError):
    code = "MATERIALIZATION_FAILED"


class RecoveryStrategy(enum.Enum):
    SKIP_MODIFIER = "skip_modifier"
    USE_FALLBACK = "use_fallback"
    RETRY_ONCE = "retry_once"
    ABORT_PROCESSING = "abort_processing"

    @classmethod
    def parse(cls, value: str | RecoveryStrategy) -> RecoveryStrategy:
        if isinstance(value, RecoveryStrategy):
            return value
        key = value.strip().upper()
        if key in cls.__members__:
            return cls[key]
        return cls(value.strip().lower())


@dataclass
class RecoveryResult:
    recovered: bool
    # Instances to continue with; None keeps the pre-modifier list
    fallback: list[VirtualInstance] | None = None
    # The second attempt succeeded; fallback holds its output
    retried: bool = False


class ModifierErrorHandler:
    """Turns a modifier failure into a recovery decision."""

    def __init__(self, default_strategy: RecoveryStrategy = RecoveryStrategy.SKIP_MODIFIER) -> None:
        self.default_strategy = default_strategy
        self.history: list[ModifierError] = []

    def handle(
        self,
        error: Exception,
        modifier: Modifier,
        shape: ShapeRecord,
        strategy: RecoveryStrategy | None = None,
        retry: Callable[[], list[VirtualInstance]] | None = None,
    ) -> RecoveryResult:
        strategy = strategy or self.default_strategy
        wrapped = self._wrap(error, modifier, shape)
        self.history.append(wrapped)
        logger.warning(
            "Modifier %s (%s) failed on shape %s: %s [%s]",
            modifier.id,
            modifier.type,
            shape.id,
            error,
            strategy.name,
        )

        if strategy is RecoveryStrategy.ABORT_PROCESSING:
            raise ModifierProcessingError(
                f"Aborted at modifier {modifier.id} ({modifier.type}): {error}",
                modifier=modifier,
                shape=shape,
                details={"cause": type(error).__name__},
            ) from error

        if strategy is RecoveryStrategy.USE_FALLBACK:
            return RecoveryResult(recovered=True, fallback=[])

        if strategy is RecoveryStrategy.RETRY_ONCE and retry is not None:
            try:
                return RecoveryResult(recovered=True, fallback=retry(), retried=True)
            except Exception as e:
                logger.warning("Retry of modifier %s failed: %s", modifier.id, e)
                return RecoveryResult(recovered=False)

        return RecoveryResult(recovered=False)

    def clear(self) -> None:
        self.history.clear()

    @staticmethod
    def _wrap(error: Exception, modifier: Modifier, shape: ShapeRecord) -> ModifierError:
        if isinstance(error, ModifierError):
            return error
        return ModifierProcessingError(
            str(error),
            modifier=modifier,
            shape=shape,
            details={"cause": type(error).__name__},
        )
