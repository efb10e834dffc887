"""
Audio Quality Pipeline Runner
=============================

Score and clean audio clips from the command line.

Usage:
    python run_pipeline.py --input clip.mp3                 # Single file
    python run_pipeline.py --input ./uploads --workers 8    # Whole directory
    python run_pipeline.py --input ./uploads --trim-pauses --filter-speech
    python run_pipeline.py --report-only results.csv        # Report from existing CSV

Version: 1.0.0
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime

from audioclean.config import PipelineConfig, TransformConfig, CODEC_BACKENDS
from audioclean.orchestrator import BatchProcessor, process_single_file
from audioclean.reporting import QualityReporter, format_metrics, generate_report


def setup_logging(output_dir: str, verbose: bool = True):
    """Configure logging for the pipeline."""
    log_dir = Path(output_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pipeline_{timestamp}.log"

    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    # Reduce noise from third-party libraries
    logging.getLogger('matplotlib').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('numba').setLevel(logging.WARNING)

    return str(log_file)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Audio Quality Checker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Score one clip, write processed_<name>.wav
  python run_pipeline.py --input interview.m4a

  # Clean a directory with 8 workers
  python run_pipeline.py --input ./uploads --trim-pauses --filter-speech --workers 8

  # Generate report from existing results
  python run_pipeline.py --report-only pipeline_output/latest_results.csv
        """
    )

    parser.add_argument(
        '--input', '-i',
        type=str,
        default='.',
        help='Audio file or directory (default: current directory)'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default='pipeline_output',
        help='Output directory for results (default: pipeline_output)'
    )

    parser.add_argument(
        '--filter-speech',
        action='store_true',
        help='Apply the speech-band filter (1850 Hz band-pass)'
    )

    parser.add_argument(
        '--trim-pauses',
        action='store_true',
        help='Zero long low-level pauses'
    )

    parser.add_argument(
        '--codec',
        choices=CODEC_BACKENDS,
        default='auto',
        help='Decoder backend (default: auto)'
    )

    parser.add_argument(
        '--workers', '-w',
        type=int,
        default=4,
        help='Number of parallel workers for directories (default: 4)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--report-only',
        type=str,
        metavar='CSV_FILE',
        help='Generate report from existing results CSV (skip processing)'
    )

    parser.add_argument(
        '--no-report',
        action='store_true',
        help='Skip report generation after processing'
    )

    return parser


def run_single(path: Path, args, config: PipelineConfig, transforms: TransformConfig) -> int:
    result = process_single_file(str(path), config, transforms, args.output)

    print("\n" + "=" * 70)
    if not result.success:
        print(f"FAILED ({result.error.kind}): {result.error.message}")
        print("=" * 70)
        return 1

    for line in format_metrics(result.metrics):
        print(line)
    print(f"\nProcessed file: {result.output_path}")
    print("=" * 70)
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)

    # Setup logging
    log_file = setup_logging(args.output, args.verbose)
    logger = logging.getLogger(__name__)

    logger.info("=" * 70)
    logger.info("Audio Quality Pipeline")
    logger.info("=" * 70)

    # Report-only mode
    if args.report_only:
        logger.info(f"Generating report from: {args.report_only}")
        report_dir = Path(args.output) / "reports"
        generate_report(args.report_only, str(report_dir))
        logger.info(f"Report generated in: {report_dir}")
        return 0

    # Validate input path
    input_path = Path(args.input)
    if not input_path.exists():
        logger.error(f"Input path does not exist: {input_path}")
        return 1

    logger.info(f"Input: {input_path.absolute()}")
    logger.info(f"Output: {args.output}")
    logger.info(f"Log file: {log_file}")

    config = PipelineConfig(codec=args.codec, n_workers=args.workers, verbose=args.verbose)
    transforms = TransformConfig(filter_speech=args.filter_speech, trim_pauses=args.trim_pauses)

    if input_path.is_file():
        return run_single(input_path, args, config, transforms)

    try:
        processor = BatchProcessor(config)
        df = processor.run(str(input_path), args.output, transforms, args.workers)

        if df.empty:
            logger.warning("No results generated!")
            return 1

        logger.info(f"Processed {len(df)} files")

        # Generate reports
        if not args.no_report:
            logger.info("Generating reports...")
            report_dir = Path(args.output) / "reports"
            reporter = QualityReporter(df, str(report_dir))
            reporter.generate_full_report()
            logger.info(f"Reports saved to: {report_dir}")

        # Print summary
        print("\n" + "=" * 70)
        print("PIPELINE SUMMARY")
        print("=" * 70)
        print(f"Total files: {len(df)}")
        print(f"Successful: {df['success'].sum()}")
        print(f"Failed: {(~df['success'].astype(bool)).sum()}")

        if 'quality_score' in df.columns:
            scores = df['quality_score'].dropna()
            if len(scores) > 0:
                print(f"\nQuality score: {scores.mean():.1f} (min {scores.min():.0f}, max {scores.max():.0f})")

        print(f"\nResults: {args.output}/latest_results.csv")
        print(f"Reports: {args.output}/reports/")
        print("=" * 70)

        return 0

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
