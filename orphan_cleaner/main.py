import argparse
import logging
import sys
from pathlib import Path

from . import config
from .config import CleanerConfig, SiblingErrorPolicy
from .core import OrphanCleanerApp
from .exceptions import ArchiveLocateError, OrphanCleanerError, ScanRootError

AUTO_DETECT = ""


def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the log directory."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "orphan_cleaner.log"

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="orphan-cleaner",
        description="Find, back up and remove image size variants whose original is gone.",
        epilog="Always preview with --dry-run first on a production library.",
    )

    action = p.add_mutually_exclusive_group(required=True)
    action.add_argument("--dry-run", action="store_true", help="Scan and report orphaned files without deleting them")
    action.add_argument("--clean", action="store_true", help="Delete orphaned files after taking a backup ZIP")
    action.add_argument("--restore", nargs="?", const=AUTO_DETECT, default=None, metavar="ZIP",
                        help="Restore from a backup ZIP (auto-detects the latest if no name is given)")

    p.add_argument("--delete", action="store_true",
                   help="Remove backup artifacts afterwards: the staging dir after --clean, the ZIP after --restore")

    p.add_argument("--root", type=Path, default=config.DEFAULT_ROOT, help="Media library root (year/month layout)")
    p.add_argument("--log-dir", type=Path, default=config.DEFAULT_LOG_DIR, help="Directory for CSV audit logs")
    p.add_argument("--workers", type=int, default=config.DEFAULT_MAX_WORKERS,
                   help="Parallel directory workers for scanning (1 = sequential)")
    p.add_argument("--on-sibling-error", choices=[policy.value for policy in SiblingErrorPolicy],
                   default=SiblingErrorPolicy.SKIP.value,
                   help="If a directory can't be listed while looking for parents: "
                        "'skip' assumes not orphaned, 'orphan' assumes no parent")
    p.add_argument("--report-csv", type=Path, default=None, help="With --dry-run, also export the orphan list to CSV")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return p


def build_config(args: argparse.Namespace) -> CleanerConfig:
    return CleanerConfig(
        root=args.root.resolve(),
        log_dir=args.log_dir.resolve(),
        cleanup=args.delete,
        sibling_error_policy=SiblingErrorPolicy(args.on_sibling_error),
        max_workers=max(1, args.workers),
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    cfg = build_config(args)

    setup_logging(cfg.log_dir, args.verbose)

    logging.info("=== Orphaned Image Cleaner Started ===")
    logging.info(f"Root:   {cfg.root}")
    logging.info(f"Logs:   {cfg.log_dir}")
    if args.delete:
        logging.info("--delete: backup artifacts will be removed after the operation")
    else:
        logging.info("Backup artifacts will be kept (default)")

    app = OrphanCleanerApp(cfg)

    try:
        if args.restore is not None:
            app.restore(args.restore or None)
        elif args.clean:
            app.clean()
        else:
            app.preview(report_csv=args.report_csv)
            logging.info("This was a dry run. Use --clean to actually delete files.")
    except ArchiveLocateError as e:
        logging.error(str(e))
        return 1
    except ScanRootError as e:
        logging.error(f"Cannot scan: {e}")
        return 1
    except OrphanCleanerError:
        logging.exception("Fatal error, operation aborted.")
        return 1
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
