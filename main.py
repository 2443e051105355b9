#!/usr/bin/env python3
"""
Tiered Receipt Extraction System - Main Entry Point.

This is the main entry point for the receipt extraction system. It
provides a command-line interface over the extraction pipeline:
cheap engines first, escalating to stronger models only when the
result is not good enough.

Usage:
    Command Line:
        python main.py --input receipt.jpg --output results.json
        python main.py --input ./receipts/ --concurrency 5 --stagger 0.2
        python main.py --input ./receipts/ --tier claude-sonnet --strict

    Python:
        from main import run_extraction
        results = run_extraction("receipts/")
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import project modules
from config import ConfigurationManager
from tiered_extraction import ExtractionPipeline, ExtractionRequest
from tiered_extraction.concurrency import BatchOptions
from tiered_extraction.utils.exceptions import AllTiersRejectedError, ReceiptExtractionError
from tiered_extraction.utils.helpers import guess_media_type
from tiered_extraction.utils.logger import ROOT_LOGGER_NAME, get_logger, setup_logger_from_config

SUPPORTED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.gif', '.heic', '.heif', '.bmp', '.tiff'}


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Tiered Receipt Extraction System",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Process single receipt:
        python main.py --input receipt.jpg --output results.json

    Process directory, five at a time:
        python main.py --input ./receipts/ --concurrency 5 --stagger 0.2

    Only use one tier, fail instead of returning unaccepted results:
        python main.py --input ./receipts/ --tier claude-sonnet --strict
        """
    )

    # Input/Output arguments
    parser.add_argument(
        "--input", "-i",
        type=str,
        required=True,
        help="Input image or directory containing receipt images"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output JSON file (default: print to stdout)"
    )

    # Routing options
    parser.add_argument(
        "--tier", "-t",
        type=str,
        default=None,
        help="Only use this tier (name from routing.tiers)"
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Mark receipts no tier accepted as failed instead of returning the last result"
    )

    # Batch options
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum receipts processed at once (default: batch.concurrency)"
    )

    parser.add_argument(
        "--stagger",
        type=float,
        default=None,
        help="Seconds between worker start-ups (default: batch.stagger_delay)"
    )

    parser.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Stop the batch at the first failed receipt"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )

    # Logging options
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize the extraction system with configuration and logging.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Initialized configuration manager.
    """
    # Credentials live in .env next to main.py or in the environment
    load_dotenv(PROJECT_ROOT / ".env")
    load_dotenv()

    config = ConfigurationManager(args.config)

    logger = setup_logger_from_config()

    if args.debug:
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG)
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.setLevel(logging.DEBUG)

    logger.info("=" * 60)
    logger.info("TIERED RECEIPT EXTRACTION SYSTEM")
    logger.info("=" * 60)
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Input: {args.input}")
    logger.info(f"Output: {args.output or 'stdout'}")

    return config


def collect_inputs(input_path: str) -> List[Path]:
    """
    Validate the input path and return the images to process.

    Args:
        input_path: File or directory path.

    Returns:
        Sorted list of image paths.

    Raises:
        FileNotFoundError: If input path doesn't exist.
        ValueError: If a single file has an unsupported extension.
    """
    logger = get_logger(__name__)
    path = Path(input_path)

    if not path.exists():
        raise FileNotFoundError(f"Input path not found: {path}")

    if path.is_file():
        if path.suffix.lower() in SUPPORTED_EXTENSIONS:
            return [path]
        raise ValueError(f"Unsupported file type: {path.suffix}")

    files = sorted(
        child for child in path.iterdir()
        if child.is_file() and child.suffix.lower() in SUPPORTED_EXTENSIONS
    )
    if not files:
        logger.warning(f"No supported files found in: {path}")
    else:
        logger.info(f"Found {len(files)} files to process")
    return files


def load_requests(files: List[Path]) -> List[ExtractionRequest]:
    """Read each image into an ExtractionRequest."""
    return [
        ExtractionRequest(
            data=file_path.read_bytes(),
            media_type=guess_media_type(file_path) or "application/octet-stream",
            source_name=file_path.name,
        )
        for file_path in files
    ]


async def _run_batch(
    pipeline: ExtractionPipeline,
    requests: List[ExtractionRequest],
    options: BatchOptions,
) -> List[Dict[str, Any]]:
    outcomes = await pipeline.extract_batch_with_decisions(requests, options)

    records = []
    for request, outcome in zip(requests, outcomes):
        if outcome is None:
            records.append({'source': request.source_name, 'result': None, 'decision': None})
            continue
        result, decision = outcome
        records.append({
            'source': request.source_name,
            'result': result.to_dict(),
            'decision': decision.to_dict(),
        })
    return records


def run_extraction(
    input_path: str,
    output_path: Optional[str] = None,
    forced_tier: Optional[str] = None,
    strict: bool = False,
    concurrency: Optional[int] = None,
    stagger_delay: Optional[float] = None,
    stop_on_error: bool = False,
) -> List[Dict[str, Any]]:
    """
    Run the receipt extraction pipeline over a file or directory.

    This is the main programmatic entry point for the extraction system.

    Args:
        input_path: Path to input image or directory.
        output_path: JSON file to write; nothing is written when None.
        forced_tier: Only use this tier.
        strict: Treat receipts no tier accepted as failures.
        concurrency: Override batch.concurrency.
        stagger_delay: Override batch.stagger_delay.
        stop_on_error: Stop at the first failed receipt.

    Returns:
        One ``{source, result, decision}`` record per image; result and
        decision are None for failed receipts.

    Example:
        >>> records = run_extraction("receipts/")
        >>> for record in records:
        ...     print(record['source'], record['decision']['tier'])
    """
    logger = get_logger(__name__)

    files = collect_inputs(input_path)
    requests = load_requests(files)

    pipeline = ExtractionPipeline.from_config(
        forced_tier=forced_tier,
        exhaustion_policy='raise' if strict else None,
    )

    options = pipeline.default_batch_options()
    if concurrency is not None:
        options.concurrency = concurrency
    if stagger_delay is not None:
        options.stagger_delay = stagger_delay
    options.stop_on_error = options.stop_on_error or stop_on_error

    def on_progress(completed: int, total: int) -> None:
        logger.info(f"Progress: {completed}/{total}")

    def on_error(error: BaseException, request: ExtractionRequest, index: int) -> None:
        if isinstance(error, AllTiersRejectedError):
            logger.warning(f"  {request.source_name}: {error.decision.reason}")
        else:
            logger.error(f"  {request.source_name}: {error}")

    options.on_progress = on_progress
    options.on_error = on_error

    logger.info(f"Processing {len(requests)} receipts...")
    records = asyncio.run(_run_batch(pipeline, requests, options))

    for record in records:
        if record['result'] is None:
            logger.info(f"  {record['source']}: FAILED")
            continue
        logger.info(
            f"  {record['source']}: {record['decision']['tier']} "
            f"(accepted={record['decision']['accepted']}, "
            f"confidence={record['result']['overall_confidence']:.2f})"
        )

    if output_path:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding='utf-8')
        logger.info(f"JSON output: {output_file}")

    return records


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    try:
        args = parse_arguments(argv)

        initialize_system(args)
        logger = get_logger(__name__)

        records = run_extraction(
            input_path=args.input,
            output_path=args.output,
            forced_tier=args.tier,
            strict=args.strict,
            concurrency=args.concurrency,
            stagger_delay=args.stagger,
            stop_on_error=args.stop_on_error,
        )

        if not args.output:
            print(json.dumps(records, indent=2, ensure_ascii=False))

        failed = sum(1 for record in records if record['result'] is None)
        logger.info("=" * 60)
        logger.info(f"Extraction complete. Processed {len(records)} receipts, {failed} failed.")
        logger.info("=" * 60)

        return 0

    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except ReceiptExtractionError as e:
        print(f"Extraction error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
