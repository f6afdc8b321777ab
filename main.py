#!/usr/bin/env python3
"""
BOM Extractor - CLI Entry Point

A LangGraph-based agent that extracts Bill of Materials tables from
engineering drawing PDFs with a hosted multimodal model, normalizes the
quantities and flags low-confidence rows for review.

Usage:
    # Single PDF
    python main.py ./drawings/isometric.pdf -o ./output

    # Several files and folders, all export formats
    python main.py ./drawings/ ./extra.pdf -o ./output --format all

    # Different provider, all-or-nothing batch
    python main.py ./drawings/ -o ./output --provider anthropic --strict

    # Check the API key works
    python main.py --check-connection
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime

from version import __version__, APP_NAME
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

FORMAT_CHOICES = ["xlsx", "csv", "json", "all"]


def resolve_formats(choice: str):
    """Expand the --format choice to a list of export formats."""
    if choice == "all":
        return ["xlsx", "csv", "json"]
    return [choice]


def main(argv=None):
    """Main entry point for the CLI."""
    from bom_tools.config import load_config
    from bom_tools.extraction_providers import get_available_providers

    parser = argparse.ArgumentParser(
        description=f"{APP_NAME} - Extract BOM tables from engineering drawing PDFs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ./drawings/isometric.pdf -o ./output
  %(prog)s ./drawings/ ./extra.pdf -o ./output --format all
  %(prog)s ./drawings/ -o ./output --provider anthropic --strict
  %(prog)s --check-connection
  %(prog)s --show-graph
        """
    )

    parser.add_argument(
        "input_paths",
        nargs="*",
        help="PDF files and/or folders containing PDFs"
    )

    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Directory for exports (default: export.output_dir from config)"
    )

    parser.add_argument(
        "--provider",
        choices=get_available_providers(),
        default=None,
        help="Extraction model provider, remembered for later runs (default: config provider.name, else the saved provider)"
    )

    parser.add_argument(
        "--model",
        default=None,
        help="Model override for the provider"
    )

    parser.add_argument(
        "--max-workers", "-w",
        type=int,
        default=None,
        help="Concurrent extraction requests (default: 4)"
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Fail the whole batch if any file fails (default: keep successful files)"
    )

    parser.add_argument(
        "--format", "-f",
        choices=FORMAT_CHOICES,
        default=None,
        help="Export format (default: xlsx)"
    )

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML config file"
    )

    parser.add_argument(
        "--no-checkpoints",
        action="store_true",
        help="Disable state checkpointing"
    )

    parser.add_argument(
        "--check-connection",
        action="store_true",
        help="Test the provider API key and exit"
    )

    parser.add_argument(
        "--show-graph",
        action="store_true",
        help="Show workflow graph visualization and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    args = parser.parse_args(argv)

    # Set logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Show graph visualization
    if args.show_graph:
        from bom_agent import get_workflow_visualization
        print(get_workflow_visualization())
        return 0

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid config file: {e}")
        return 1

    from bom_tools.settings import get_settings_manager
    settings = get_settings_manager()

    # --provider is remembered; config and BOM_PROVIDER apply to this run only
    if args.provider:
        provider_name = settings.resolve_provider(args.provider)
    else:
        provider_name = config.provider.name or settings.resolve_provider()
    model = args.model or config.provider.model

    if args.check_connection:
        ok, message = settings.test_connection(provider_name, model=model)
        print(f"  {settings.get_provider_display_name(provider_name)}: {message}")
        return 0 if ok else 1

    # Validate required arguments
    if not args.input_paths:
        parser.error("at least one input path is required (unless using --show-graph or --check-connection)")

    max_workers = args.max_workers if args.max_workers is not None else config.processing.max_workers
    if max_workers < 1:
        parser.error(f"max-workers must be at least 1, got {max_workers}")

    strict = args.strict if args.strict is not None else config.processing.strict
    formats = resolve_formats(args.format) if args.format else list(config.export.formats)

    # Resolve paths
    input_paths = [Path(p).resolve() for p in args.input_paths]
    output_path = Path(args.output or config.export.output_dir).resolve()

    missing = [p for p in input_paths if not p.exists()]
    if missing:
        for p in missing:
            logger.error(f"Input path does not exist: {p}")
        return 1

    api_key = settings.get_api_key(provider_name)
    if not api_key:
        env_names = " or ".join(settings.ENV_VARS.get(provider_name, ()))
        logger.error(f"No API key configured for {provider_name}. Set {env_names}.")
        return 1

    from bom_tools.extraction_providers import get_provider
    provider = get_provider(provider_name, api_key, model, timeout=config.provider.timeout_seconds)

    output_path.mkdir(parents=True, exist_ok=True)

    # Print banner
    print("\n" + "=" * 60)
    print(f"  {APP_NAME} v{__version__}")
    print("  BOM Extraction from Engineering Drawings")
    print("=" * 60)
    for p in input_paths:
        print(f"  Input:    {p}")
    print(f"  Output:   {output_path}")
    print(f"  Model:    {settings.get_provider_display_name(provider_name)} ({provider.model})")
    print(f"  Workers:  {max_workers}")
    print(f"  Mode:     {'Strict (all-or-nothing)' if strict else 'Partial (skip failed files)'}")
    print(f"  Formats:  {', '.join(formats)}")
    print("=" * 60 + "\n")

    # Run the workflow
    try:
        from bom_agent import run_extraction_workflow
        from bom_agent.nodes.batch_summary import file_result_from_state
        from bom_tools.metrics import format_metrics, compute_session_metrics
        from bom_tools.records import BomRecord

        start_time = datetime.now()

        result = run_extraction_workflow(
            input_paths=[str(p) for p in input_paths],
            output_path=str(output_path),
            provider=provider,
            export_formats=formats,
            strict=strict,
            max_workers=max_workers,
            max_file_size_mb=config.processing.max_file_size_mb,
            review_threshold=config.review.threshold,
            default_confidence=config.review.default_ocr_confidence,
            enable_checkpoints=not args.no_checkpoints
        )

        duration = (datetime.now() - start_time).total_seconds()

    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except Exception as e:
        logger.exception(f"Workflow failed: {e}")
        return 1

    records = [BomRecord.from_dict(r) for r in result.get("records") or []]
    files_completed = result.get("files_completed", [])
    files_failed = result.get("files_failed", [])

    # Print summary
    print("\n" + "=" * 60)
    print("  EXTRACTION FAILED" if result.get("batch_failed") else "  EXTRACTION COMPLETE")
    print("=" * 60)
    file_results = [file_result_from_state(r) for r in result.get("file_results", [])]
    print(format_metrics(compute_session_metrics(records, file_results)))
    print(f"  Tokens Used:          {result.get('total_tokens', 0):,}")
    print(f"  Duration:             {duration:.1f} seconds")
    print("=" * 60)

    export_paths = result.get("export_paths", [])
    if export_paths:
        print("\n  Exports:")
        for path in export_paths:
            print(f"    - {path}")

    if files_failed:
        print("\n  Failed files:")
        for f in files_failed:
            errors = f.get("errors") or ["Unknown error"]
            print(f"    - {f.get('filename', 'Unknown')}: {errors[0]}")

    if result.get("last_error"):
        print(f"\n  {result['last_error']}")

    print()

    if result.get("batch_failed") or not files_completed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
