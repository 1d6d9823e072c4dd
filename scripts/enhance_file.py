"""
Image File Enhancer
Run an operation on a local image file and write the result next to it
Supports: every gateway operation, with the local engine as fallback
"""
import sys
import asyncio
import logging
import argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from image_processor.config import get_config, Operation, EngineConfig
from image_processor.processor import ImageProcessor
from image_processor.resources import ImageResource, sniff_image_mime
from image_processor.codec import load_image_bytes
from image_processor.errors import ImageProcessorError
from image_processor.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}


async def enhance_file(input_path: Path, output_path: Path, operation: Operation, engine_config: EngineConfig) -> int:
    """Process one file; returns the process exit code"""
    data = input_path.read_bytes()
    mime_type = sniff_image_mime(data)
    if mime_type is None:
        print(f"❌ Not an image: {input_path}")
        return 2

    processor = ImageProcessor(engine_config=engine_config)
    result = await processor.process(ImageResource.from_bytes(data, mime_type), operation)

    if not result.success:
        print(f"❌ Failed ({result.error_kind}): {result.error}")
        return 1

    try:
        output_bytes = await load_image_bytes(result.image)
    except ImageProcessorError as e:
        print(f"❌ Could not retrieve result ({e.kind}): {e}")
        return 1

    output_mime = sniff_image_mime(output_bytes) or "image/png"
    if output_path.suffix == "":
        output_path = output_path.with_suffix(f".{EXTENSIONS.get(output_mime, 'png')}")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(output_bytes)

    print("\n" + "=" * 50)
    print("ENHANCEMENT SUMMARY")
    print("=" * 50)
    print(f"Operation:   {result.operation}")
    print(f"Method:      {result.method}")
    print(f"Degraded:    {result.degraded}")
    if result.enhanced_dimensions:
        print(f"Dimensions:  {result.original_dimensions} → {result.enhanced_dimensions}")
    print(f"Time:        {result.processing_time_ms}ms")
    print(f"Output:      {output_path}")
    print("=" * 50)
    return 0


def main() -> int:
    """CLI entry point"""
    parser = argparse.ArgumentParser(description='Enhance a local image file')
    parser.add_argument('input', help='Path to the source image')
    parser.add_argument('--output', help='Output path (default: <input>_<operation>.<ext>)')
    parser.add_argument(
        '--operation', default=Operation.ENHANCE.value,
        choices=[op.value for op in Operation], help='Operation to apply'
    )
    parser.add_argument('--local-only', action='store_true', help='Never call the AI gateway')
    parser.add_argument('--log-level', default='WARNING', help='Logging level')

    args = parser.parse_args()
    setup_logging(level=args.log_level, log_to_file=False)

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"❌ File not found: {input_path}")
        return 2

    output_path = Path(args.output) if args.output else input_path.with_name(f"{input_path.stem}_{args.operation}")

    engine_config = get_config().engine
    if args.local_only:
        engine_config = EngineConfig(allow_remote_models=False, cache_results=False)

    return asyncio.run(enhance_file(input_path, output_path, Operation(args.operation), engine_config))


if __name__ == "__main__":
    sys.exit(main())
