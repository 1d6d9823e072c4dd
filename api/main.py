import os
import time
import uuid
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, UploadFile, HTTPException, Form, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from image_processor.config import get_config, Operation
from image_processor.errors import ImageProcessorError, InvalidInput, DecodeError, GatewayError
from image_processor.enhancer import LocalEnhancer
from image_processor.gateway_service import AIGatewayService
from image_processor.processor import ImageProcessor, ResultCache
from image_processor.resources import ImageResource, sniff_image_mime
from image_processor.logging_config import setup_logging

config = get_config()

# Initialize logging
setup_logging(level=os.getenv("LOG_LEVEL", config.log_level), log_to_file=config.log_to_file)
logger = logging.getLogger(__name__)


# Pydantic models for API
class RelayRequest(BaseModel):
    """Request to transform an image through the AI gateway"""
    imageUrl: Optional[str] = None
    operation: Optional[str] = Operation.ENHANCE.value


class LocalEnhanceRequest(BaseModel):
    """Request to enhance an image with the local engine"""
    image: str  # data URI or http(s) URL


class LocalEnhanceResponse(BaseModel):
    """Response from the local engine"""
    image: str
    width: int
    height: int
    original_width: int
    original_height: int
    resized: bool
    processing_time_ms: int
    steps: List[Dict[str, Any]]


class ProcessResponse(BaseModel):
    """Response from an orchestrated upload"""
    success: bool
    request_id: str
    image: str
    operation: str
    method: str
    degraded: bool
    cached: bool
    processing_time_ms: int
    dimensions: Optional[Dict[str, int]] = None
    error: Optional[str] = None


# Shared services
_enhancer = LocalEnhancer()
_gateway = AIGatewayService()
_result_cache = ResultCache(config.engine.cache_max_entries)


def get_enhancer() -> LocalEnhancer:
    return _enhancer


def get_gateway() -> AIGatewayService:
    return _gateway


def get_result_cache() -> ResultCache:
    return _result_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting AI Image Processor API...")
    logger.info(f"   Gateway configured: {_gateway.enabled}")
    logger.info(f"   Remote models allowed: {config.engine.allow_remote_models}")
    logger.info(f"   Result cache: {config.engine.cache_results}")

    yield

    logger.info("Shutting down...")
    _result_cache.clear()


# Create FastAPI app
app = FastAPI(
    title="AI Image Processor API",
    description="Image enhancement through an AI gateway with a local fallback engine",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ==================== API Endpoints ====================

@app.get("/health")
async def health_check(gateway: AIGatewayService = Depends(get_gateway)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "gateway": gateway.enabled,
        "remote_models": config.engine.allow_remote_models,
    }


@app.post("/functions/v1/enhance-image")
async def enhance_image_relay(
    request: RelayRequest,
    gateway: AIGatewayService = Depends(get_gateway)
):
    """
    Relay an image to the AI gateway

    - Maps the operation to its prompt (unknown operations use "enhance")
    - Returns {"enhancedImageUrl": ...} or {"error": ...}
    """
    if not request.imageUrl:
        return _error(400, "Image URL is required")

    try:
        result = await gateway.transform(ImageResource(request.imageUrl), Operation.parse(request.operation))
    except GatewayError as e:
        logger.error(f"Error enhancing image: [{e.kind}] {e.message}")
        return _error(e.status_code, e.message)

    return {"enhancedImageUrl": result.uri}


@app.post("/api/v1/enhance/local", response_model=LocalEnhanceResponse)
async def enhance_local(
    request: LocalEnhanceRequest,
    enhancer: LocalEnhancer = Depends(get_enhancer)
):
    """
    Enhance an image with the local engine

    - Downscales to 1024px when larger, upscales 2x, lifts brightness/contrast
    - Returns the result as a PNG data URI
    """
    start_time = time.time()
    try:
        output = await enhancer.run(ImageResource(request.image))
    except ImageProcessorError as e:
        logger.error(f"Local enhancement failed: [{e.kind}] {e}")
        if isinstance(e, InvalidInput):
            status_code = 400
        elif isinstance(e, DecodeError):
            status_code = 422
        else:
            status_code = 500
        raise HTTPException(status_code, "Failed to enhance image")

    return LocalEnhanceResponse(
        image=output.image.uri,
        width=output.enhanced_dimensions[0],
        height=output.enhanced_dimensions[1],
        original_width=output.original_dimensions[0],
        original_height=output.original_dimensions[1],
        resized=output.resized,
        processing_time_ms=int((time.time() - start_time) * 1000),
        steps=[
            {"name": s.name, "latency_ms": s.latency_ms, "details": s.details}
            for s in output.steps
        ],
    )


@app.post("/api/v1/enhance/upload", response_model=ProcessResponse)
async def enhance_upload(
    file: UploadFile = File(...),
    operation: str = Form(Operation.ENHANCE.value),
    enhancer: LocalEnhancer = Depends(get_enhancer),
    gateway: AIGatewayService = Depends(get_gateway),
    cache: ResultCache = Depends(get_result_cache)
):
    """
    Process an uploaded image

    - Uses the AI gateway when allowed and configured, the local engine otherwise
    - Falls back to the original image (degraded=true) when processing fails
    """
    request_id = str(uuid.uuid4())

    # Validate file type
    if not file.content_type or not file.content_type.startswith('image/'):
        raise HTTPException(400, "Invalid file type. Please upload an image file.")

    content = await file.read()
    if len(content) > config.api.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(413, f"File too large. Maximum {config.api.max_upload_size_mb}MB.")

    mime_type = sniff_image_mime(content)
    if mime_type is None:
        raise HTTPException(400, "Invalid image data.")

    processor = ImageProcessor(
        engine_config=config.engine,
        enhancer=enhancer,
        gateway=gateway,
        cache=cache,
    )
    result = await processor.process(ImageResource.from_bytes(content, mime_type), operation)

    if not result.success:
        status_code = 400 if result.error_kind == InvalidInput.kind else 500
        raise HTTPException(status_code, "Processing failed")

    dimensions = None
    if result.original_dimensions and result.enhanced_dimensions:
        dimensions = {
            "original_width": result.original_dimensions[0],
            "original_height": result.original_dimensions[1],
            "enhanced_width": result.enhanced_dimensions[0],
            "enhanced_height": result.enhanced_dimensions[1],
        }

    return ProcessResponse(
        success=True,
        request_id=request_id,
        image=result.image.uri,
        operation=result.operation,
        method=result.method,
        degraded=result.degraded,
        cached=result.cached,
        processing_time_ms=result.processing_time_ms,
        dimensions=dimensions,
        error=result.error,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.api.host, port=config.api.port)
