"""
AI Image Processor - Core Package
Local enhancement engine with an AI gateway relay and degraded fallback
"""
from .config import (
    get_config,
    reset_config,
    Config,
    Operation,
    RunState,
    EngineConfig,
    EnhancementParams,
    GatewayConfig,
    LOCAL_OPERATIONS,
)
from .errors import (
    ImageProcessorError,
    InvalidInput,
    DecodeError,
    ResampleError,
    EncodeError,
    ConcurrentRunError,
    GatewayError,
    RateLimitError,
    CreditsExhaustedError,
    GatewayNotConfiguredError,
)
from .resources import ImageResource, sniff_image_mime
from .raster import RasterSurface
from .codec import decode, encode
from .enhancer import (
    LocalEnhancer,
    EngineOutput,
    ProcessingStep,
    enhance_image,
    fit_within,
    build_brightness_lut,
)
from .gateway_service import (
    AIGatewayService,
    GatewayCallResult,
    OPERATION_PROMPTS,
    get_prompt,
    create_gateway_service,
)
from .processor import ImageProcessor, EnhancementResult, ResultCache

__all__ = [
    # Config
    'get_config',
    'reset_config',
    'Config',
    'Operation',
    'RunState',
    'EngineConfig',
    'EnhancementParams',
    'GatewayConfig',
    'LOCAL_OPERATIONS',

    # Errors
    'ImageProcessorError',
    'InvalidInput',
    'DecodeError',
    'ResampleError',
    'EncodeError',
    'ConcurrentRunError',
    'GatewayError',
    'RateLimitError',
    'CreditsExhaustedError',
    'GatewayNotConfiguredError',

    # Resources
    'ImageResource',
    'RasterSurface',
    'sniff_image_mime',
    'decode',
    'encode',

    # Local engine
    'LocalEnhancer',
    'EngineOutput',
    'ProcessingStep',
    'enhance_image',
    'fit_within',
    'build_brightness_lut',

    # AI gateway
    'AIGatewayService',
    'GatewayCallResult',
    'OPERATION_PROMPTS',
    'get_prompt',
    'create_gateway_service',

    # Orchestration
    'ImageProcessor',
    'EnhancementResult',
    'ResultCache',
]
