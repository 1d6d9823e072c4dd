"""
Tests for the processing orchestrator: routing, fallback and run state.
"""

import asyncio

import httpx
import pytest

from image_processor.config import EngineConfig, EnhancementParams, Operation, RunState
from image_processor.enhancer import LocalEnhancer
from image_processor.errors import ConcurrentRunError
from image_processor.processor import ImageProcessor, ResultCache, EnhancementResult
from image_processor.resources import ImageResource

from conftest import GatewayStub, RESULT_URL, make_resource, decode_resource


def local_enhancer():
    return LocalEnhancer(EnhancementParams(decode_timeout_seconds=None))


def make_processor(gateway_stub=None, allow_remote=True, cache_results=False, enhancer=None, cache=None):
    stub = gateway_stub or GatewayStub()
    return ImageProcessor(
        engine_config=EngineConfig(allow_remote_models=allow_remote, cache_results=cache_results),
        enhancer=enhancer or local_enhancer(),
        gateway=stub.service(),
        cache=cache,
    )


class BlockingEnhancer(LocalEnhancer):
    """Local engine that waits for a signal before running"""

    def __init__(self):
        super().__init__(EnhancementParams(decode_timeout_seconds=None))
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def run(self, image):
        self.started.set()
        await self.release.wait()
        return await super().run(image)


@pytest.mark.asyncio
async def test_local_only_run(red_image):
    processor = make_processor(allow_remote=False)
    assert processor.state == RunState.IDLE

    result = await processor.process(red_image, "enhance")
    assert processor.state == RunState.SUCCEEDED
    assert result.success
    assert result.method == "local"
    assert not result.degraded
    assert result.original_dimensions == (500, 300)
    assert result.enhanced_dimensions == (1000, 600)
    assert decode_resource(result.image).convert("RGBA").getpixel((0, 0)) == (255, 10, 10, 255)


@pytest.mark.asyncio
async def test_remote_run(red_image):
    stub = GatewayStub()
    processor = make_processor(stub)
    assert processor.uses_remote

    result = await processor.process(red_image, "colorize")
    assert result.success
    assert result.method == "ai"
    assert result.image == ImageResource(RESULT_URL)
    assert result.operation == "colorize"
    assert len(stub.requests) == 1
    assert processor.state == RunState.SUCCEEDED


@pytest.mark.asyncio
async def test_gateway_failure_falls_back_to_local(red_image):
    stub = GatewayStub(httpx.Response(500))
    result = await make_processor(stub).process(red_image, "upscale")
    assert result.success
    assert result.method == "local"
    assert not result.degraded
    assert [s.method for s in result.processing_steps][0] == "ai"
    assert not result.processing_steps[0].success


@pytest.mark.asyncio
async def test_gateway_failure_without_local_equivalent_is_degraded(red_image):
    stub = GatewayStub(httpx.Response(402))
    processor = make_processor(stub)
    result = await processor.process(red_image, "colorize")
    assert result.success
    assert result.degraded
    assert result.method == "passthrough"
    assert result.image == red_image
    assert result.error_kind == "credits_exhausted"
    assert processor.state == RunState.SUCCEEDED


@pytest.mark.asyncio
async def test_remote_disabled_removebg_passes_original_through(red_image):
    stub = GatewayStub()
    result = await make_processor(stub, allow_remote=False).process(red_image, "removebg")
    assert result.degraded
    assert result.image == red_image
    assert result.error is None
    assert stub.requests == []


@pytest.mark.asyncio
async def test_missing_api_key_routes_locally(red_image):
    processor = ImageProcessor(
        engine_config=EngineConfig(allow_remote_models=True, cache_results=False),
        enhancer=local_enhancer(),
        gateway=GatewayStub().service(api_key=""),
    )
    assert not processor.uses_remote
    result = await processor.process(red_image, "brighten")
    assert result.method == "local"


@pytest.mark.asyncio
async def test_corrupt_image_degrades_with_decode_error():
    corrupt = ImageResource.from_bytes(b"\x89PNG\r\n\x1a\n garbage", "image/png")
    processor = make_processor(allow_remote=False)
    result = await processor.process(corrupt, "enhance")
    assert result.success
    assert result.degraded
    assert result.image == corrupt
    assert result.error_kind == "decode_error"
    assert processor.state == RunState.SUCCEEDED


@pytest.mark.asyncio
async def test_invalid_input_fails_the_run():
    stub = GatewayStub()
    processor = make_processor(stub)
    result = await processor.process(ImageResource("data:text/plain;base64,aGk="), "enhance")
    assert not result.success
    assert not result.degraded
    assert result.image is None
    assert result.error_kind == "invalid_input"
    assert processor.state == RunState.FAILED
    assert stub.requests == []


@pytest.mark.asyncio
async def test_empty_payload_fails_the_run():
    processor = make_processor(allow_remote=False)
    result = await processor.process(ImageResource("data:image/png;base64,"), "enhance")
    assert not result.success
    assert result.error_kind == "invalid_input"
    assert processor.state == RunState.FAILED


@pytest.mark.asyncio
async def test_processor_can_run_again_after_finishing(red_image):
    processor = make_processor(allow_remote=False)
    await processor.process(ImageResource("ftp://nowhere/cat.png"))
    assert processor.state == RunState.FAILED
    result = await processor.process(red_image)
    assert result.success
    assert processor.state == RunState.SUCCEEDED


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected(red_image):
    enhancer = BlockingEnhancer()
    processor = make_processor(allow_remote=False, enhancer=enhancer)

    first = asyncio.ensure_future(processor.process(red_image))
    await enhancer.started.wait()
    assert processor.state == RunState.RUNNING

    with pytest.raises(ConcurrentRunError):
        await processor.process(red_image)
    assert processor.state == RunState.RUNNING

    enhancer.release.set()
    result = await first
    assert result.success
    assert processor.state == RunState.SUCCEEDED


@pytest.mark.asyncio
async def test_cached_result_is_reused(red_image):
    stub = GatewayStub()
    cache = ResultCache(max_entries=4)
    processor = make_processor(stub, cache_results=True, cache=cache)

    first = await processor.process(red_image, "denoise")
    second = await processor.process(red_image, "denoise")
    assert not first.cached
    assert second.cached
    assert second.image == first.image
    assert len(stub.requests) == 1
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_cache_hits_do_not_share_steps(red_image):
    cache = ResultCache(max_entries=4)
    processor = make_processor(cache_results=True, cache=cache)

    first = await processor.process(red_image, "enhance")
    step_count = len(first.processing_steps)
    first.processing_steps.append(first.processing_steps[0])

    second = await processor.process(red_image, "enhance")
    assert second.cached
    assert len(second.processing_steps) == step_count
    second.processing_steps.clear()

    third = await processor.process(red_image, "enhance")
    assert len(third.processing_steps) == step_count


@pytest.mark.asyncio
async def test_cache_is_ignored_when_disabled(red_image):
    stub = GatewayStub()
    cache = ResultCache()
    processor = make_processor(stub, cache_results=False, cache=cache)
    await processor.process(red_image)
    await processor.process(red_image)
    assert len(stub.requests) == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_degraded_results_are_not_cached(red_image):
    cache = ResultCache()
    processor = make_processor(allow_remote=False, cache_results=True, cache=cache)
    await processor.process(red_image, "colorize")
    assert len(cache) == 0


def test_result_cache_evicts_least_recently_used():
    cache = ResultCache(max_entries=2)
    a, b, c = (make_resource(4, 4, color=(i, 0, 0, 255)) for i in (1, 2, 3))

    cache.put(a, Operation.ENHANCE, EnhancementResult(success=True, image=a))
    cache.put(b, Operation.ENHANCE, EnhancementResult(success=True, image=b))
    assert cache.get(a, Operation.ENHANCE) is not None
    cache.put(c, Operation.ENHANCE, EnhancementResult(success=True, image=c))

    assert cache.get(b, Operation.ENHANCE) is None
    assert cache.get(a, Operation.ENHANCE) is not None
    assert cache.get(c, Operation.ENHANCE) is not None
    assert cache.get(a, Operation.UPSCALE) is None


def test_result_to_dict(red_image):
    result = asyncio.run(make_processor(allow_remote=False).process(red_image))
    data = result.to_dict()
    assert data["success"] is True
    assert data["method"] == "local"
    assert [s["name"] for s in data["processing_steps"]] == ["decode", "transform", "encode"]
