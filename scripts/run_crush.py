"""Run a FileCrush job."""
import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import load_config, save_example_config
from storage.factory import create_input_storage, create_output_storage
from crush.errors import CrushError
from crush.job import CrushJob


logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Crush many small files into few large ones."
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config file (default: FILECRUSH_CONFIG or config/config.yaml)"
    )
    parser.add_argument(
        "--input-dir",
        type=str,
        default=None,
        help="Tree to crush, relative to the input storage (default: paths.input_dir)"
    )
    parser.add_argument(
        "--num-workers",
        type=int,
        default=None,
        help="Number of merge partitions (default: crush.num_workers)"
    )
    parser.add_argument(
        "--timestamp",
        type=int,
        default=None,
        help="Run timestamp in ms used in output names (default: now)"
    )
    parser.add_argument(
        "--compression",
        type=str,
        default=None,
        help="Compression of crushed files, 'none' to disable (default: crush.compression)"
    )
    parser.add_argument(
        "--delete-source-files",
        action="store_true",
        help="Delete small files once they have been crushed"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print plan without writing anything"
    )
    parser.add_argument(
        "--write-example-config",
        type=str,
        metavar="PATH",
        help="Write an example config file to PATH and exit"
    )

    args = parser.parse_args()

    if args.num_workers is not None and args.num_workers < 1:
        parser.error("--num-workers must be at least 1")

    if args.write_example_config:
        save_example_config(args.write_example_config)
        return

    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Could not load config: {e}", file=sys.stderr)
        sys.exit(1)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format=config.log_format
    )

    if args.num_workers is not None:
        config.crush.num_workers = args.num_workers
    if args.compression is not None:
        config.crush.compression = args.compression
    if args.delete_source_files:
        config.crush.delete_source_files = True

    logger.info("=" * 80)
    logger.info("FileCrush Starting")
    logger.info("=" * 80)

    try:
        job = CrushJob(
            config,
            input_storage=create_input_storage(config),
            output_storage=create_output_storage(config),
            timestamp=args.timestamp,
        )
        stats = job.run(input_dir=args.input_dir, dry_run=args.dry_run)
    except CrushError as e:
        logger.error(f"Crush failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Crush failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info(f"Done: {stats}")


if __name__ == "__main__":
    main()
