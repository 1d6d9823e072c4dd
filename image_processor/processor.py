"""
Processing orchestrator

Routes a user request to the AI gateway or the local engine, owns the
run state machine (idle → running → succeeded | failed), and substitutes
the original image, flagged as degraded, when neither path produces one.
"""
import time
import uuid
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field, replace

from .config import get_config, EngineConfig, Operation, RunState, LOCAL_OPERATIONS
from .errors import ImageProcessorError, InvalidInput, ConcurrentRunError
from .enhancer import LocalEnhancer, ProcessingStep
from .gateway_service import AIGatewayService
from .logging_config import create_request_logger
from .resources import ImageResource
from . import codec

logger = logging.getLogger(__name__)


@dataclass
class EnhancementResult:
    """Outcome of one processing run"""
    success: bool
    image: Optional[ImageResource] = None
    operation: str = Operation.ENHANCE.value
    method: str = ""  # "ai", "local" or "passthrough"
    degraded: bool = False
    cached: bool = False
    original_dimensions: Optional[Tuple[int, int]] = None
    enhanced_dimensions: Optional[Tuple[int, int]] = None
    processing_time_ms: int = 0
    processing_steps: List[ProcessingStep] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "operation": self.operation,
            "method": self.method,
            "degraded": self.degraded,
            "cached": self.cached,
            "original_dimensions": self.original_dimensions,
            "enhanced_dimensions": self.enhanced_dimensions,
            "processing_time_ms": self.processing_time_ms,
            "processing_steps": [
                {"name": s.name, "method": s.method, "latency_ms": s.latency_ms, "details": s.details}
                for s in self.processing_steps
            ],
            "error": self.error,
            "error_kind": self.error_kind,
        }


class ResultCache:
    """In-memory LRU of finished results, keyed by image fingerprint and operation"""

    def __init__(self, max_entries: int = 32):
        self.max_entries = max_entries
        self._entries: "OrderedDict[Tuple[str, str], EnhancementResult]" = OrderedDict()

    @staticmethod
    def key(image: ImageResource, operation: Operation) -> Tuple[str, str]:
        return (image.fingerprint, operation.value)

    def get(self, image: ImageResource, operation: Operation) -> Optional[EnhancementResult]:
        key = self.key(image, operation)
        result = self._entries.get(key)
        if result is not None:
            self._entries.move_to_end(key)
        return result

    def put(self, image: ImageResource, operation: Operation, result: EnhancementResult) -> None:
        key = self.key(image, operation)
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ImageProcessor:
    """
    Orchestrates one user-initiated run at a time.

    A second process() call while a run is outstanding raises
    ConcurrentRunError; callers serialize their own requests.
    """

    def __init__(
        self,
        engine_config: Optional[EngineConfig] = None,
        enhancer: Optional[LocalEnhancer] = None,
        gateway: Optional[AIGatewayService] = None,
        cache: Optional[ResultCache] = None
    ):
        self.engine_config = engine_config or get_config().engine
        self.enhancer = enhancer or LocalEnhancer()
        self.gateway = gateway or AIGatewayService()
        if cache is None and self.engine_config.cache_results:
            cache = ResultCache(self.engine_config.cache_max_entries)
        self.cache = cache if self.engine_config.cache_results else None
        self._state = RunState.IDLE
        self._request_logger = create_request_logger(__name__)

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def uses_remote(self) -> bool:
        return self.engine_config.allow_remote_models and self.gateway.enabled

    async def process(self, image: ImageResource, operation=Operation.ENHANCE) -> EnhancementResult:
        """Run one request end to end; never raises for pipeline failures"""
        if self._state == RunState.RUNNING:
            raise ConcurrentRunError("A run is already in progress")

        operation = Operation.parse(operation)
        self._state = RunState.RUNNING
        start_time = time.time()
        self._request_logger.start_request(
            str(uuid.uuid4()), operation.value,
            remote=self.uses_remote, cache=self.cache is not None,
        )

        try:
            result = await self._process(image, operation)
        except BaseException:
            self._state = RunState.FAILED
            raise

        result.processing_time_ms = int((time.time() - start_time) * 1000)
        self._state = RunState.SUCCEEDED if result.success else RunState.FAILED
        self._request_logger.end_request(
            result.success,
            method=result.method,
            degraded=result.degraded,
            cached=result.cached,
            error_kind=result.error_kind,
        )
        return result

    async def _process(self, image: ImageResource, operation: Operation) -> EnhancementResult:
        try:
            codec.validate(image)
        except InvalidInput as e:
            logger.error(f"❌ Invalid input: {e}")
            return EnhancementResult(
                success=False, operation=operation.value, error=str(e), error_kind=e.kind
            )

        if self.cache is not None:
            cached = self.cache.get(image, operation)
            if cached is not None:
                logger.info("💾 Cache hit")
                return replace(cached, cached=True, processing_steps=list(cached.processing_steps))

        steps: List[ProcessingStep] = []
        last_error: Optional[str] = None
        last_error_kind: Optional[str] = None

        # --- Remote path ---
        if self.uses_remote:
            self._request_logger.log_routing_decision(operation.value, True, "Remote models allowed and gateway configured")
            call = await self.gateway.call(image, operation)
            steps.append(ProcessingStep(
                name=operation.value, method="ai", success=call.success,
                latency_ms=call.latency_ms, details=call.model,
            ))
            if call.success:
                return self._finish(image, operation, EnhancementResult(
                    success=True, image=call.image, operation=operation.value,
                    method="ai", processing_steps=steps,
                ))
            self._request_logger.log_fallback("gateway", call.error_kind, call.error)
            last_error, last_error_kind = call.error, call.error_kind
        else:
            reason = "Remote models disabled" if not self.engine_config.allow_remote_models else "Gateway not configured"
            self._request_logger.log_routing_decision(operation.value, False, reason)

        # --- Local path ---
        if operation in LOCAL_OPERATIONS:
            try:
                output = await self.enhancer.run(image)
                for step in output.steps:
                    self._request_logger.log_stage(step.name, step.latency_ms, details=step.details)
                steps.extend(output.steps)
                return self._finish(image, operation, EnhancementResult(
                    success=True, image=output.image, operation=operation.value,
                    method="local", original_dimensions=output.original_dimensions,
                    enhanced_dimensions=output.enhanced_dimensions, processing_steps=steps,
                ))
            except InvalidInput as e:
                logger.error(f"❌ Invalid input: {e}")
                return EnhancementResult(
                    success=False, operation=operation.value, processing_steps=steps,
                    error=str(e), error_kind=e.kind,
                )
            except ImageProcessorError as e:
                self._request_logger.log_fallback("local engine", e.kind, str(e))
                last_error, last_error_kind = str(e), e.kind
        else:
            logger.info(f"   No local equivalent for '{operation.value}'")

        # --- Degraded: hand back the original ---
        steps.append(ProcessingStep(name="passthrough", method="passthrough", success=True, latency_ms=0))
        return EnhancementResult(
            success=True,
            image=image,
            operation=operation.value,
            method="passthrough",
            degraded=True,
            processing_steps=steps,
            error=last_error,
            error_kind=last_error_kind,
        )

    def _finish(self, image: ImageResource, operation: Operation, result: EnhancementResult) -> EnhancementResult:
        if self.cache is not None:
            self.cache.put(image, operation, replace(result, processing_steps=list(result.processing_steps)))
        return result
