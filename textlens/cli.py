"""Command-line interface for extracting text from image files.

Provides subcommands for processing a single image to JSON and a folder
of images to CSV, using the same pipeline as the API.
"""

import argparse
import csv
import json
import sys
from pathlib import Path

from textlens.exceptions import TextlensError
from textlens.extraction.factory import build_pipeline, build_repository
from textlens.extraction.pipeline import ExtractionOutcome, ExtractionPipeline
from textlens.preprocessing.image import SourceImage
from textlens.utils.config import AppConfig, load_config
from textlens.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.bmp")
_CSV_COLUMNS = ["filename", "status", "confidence", "image_id", "extracted_text", "error"]


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _load_source(path: Path) -> SourceImage:
    return SourceImage(data=path.read_bytes(), filename=path.name, storage_ref=str(path))


def _make_pipeline(config: AppConfig, store: bool) -> ExtractionPipeline:
    sink = None
    try:
        if store:
            sink = build_repository(config)
            sink.connect()
        pipeline = build_pipeline(config, sink=sink)
        pipeline.recognizer.initialize()
    except TextlensError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    return pipeline


def _csv_row(outcome: ExtractionOutcome) -> dict[str, object]:
    extracted = outcome.extracted
    return {
        "filename": outcome.filename,
        "status": "success" if extracted else "failed",
        "confidence": round(extracted.confidence, 2) if extracted else None,
        "image_id": extracted.image_id if extracted else None,
        "extracted_text": extracted.text if extracted else None,
        "error": outcome.error,
    }


def process_folder(
    input_dir: Path,
    output_csv: Path,
    pipeline: ExtractionPipeline,
    verbose: bool = False,
) -> dict[str, int]:
    """Process all images in a folder as one batch and export results to CSV.

    Args:
        input_dir: Directory containing image files.
        output_csv: Path for the output CSV file.
        pipeline: Extraction pipeline to run.
        verbose: Whether to print per-file results.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_images(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d images to process", len(files))
    batch = pipeline.process_batch([_load_source(path) for path in files])

    if verbose:
        for i, outcome in enumerate(batch.outcomes, 1):
            status = "ok" if outcome.success else f"failed ({outcome.error})"
            print(f"[{i}/{len(files)}] {outcome.filename}: {status}")

    _write_csv([_csv_row(o) for o in batch.outcomes], output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {
        "total": len(files),
        "successful": len(batch.succeeded),
        "failed": len(batch.failed),
    }
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write extraction rows to a CSV file.

    Args:
        rows: One dictionary per image.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed images.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def extract_single(file_path: Path, pipeline: ExtractionPipeline) -> dict[str, object]:
    """Process a single image and return its outcome as a dictionary."""
    outcome = pipeline.process(_load_source(file_path))
    return outcome.to_dict()


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Extract text from images of printed text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")
    parser.add_argument(
        "--store", action="store_true", help="Store results in the configured database"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of images")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with images")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    single_parser = subparsers.add_parser("extract", help="Process a single image")
    single_parser.add_argument("file", type=Path, help="Image file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        pipeline = _make_pipeline(config, args.store)
        process_folder(args.input_dir, args.output, pipeline, args.verbose)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        pipeline = _make_pipeline(config, args.store)
        result = extract_single(args.file, pipeline)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
        if not result["success"]:
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
