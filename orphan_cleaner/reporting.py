import csv
import logging
from collections import defaultdict
from pathlib import Path, PurePosixPath
from typing import Dict, List

from .models import OrphanRecord

SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]
RULE = "=" * 60


def format_bytes(size: int) -> str:
    """1024-based, two decimals with trailing zeros trimmed: 1536 -> '1.5 KB'."""
    if size <= 0:
        return "0 Bytes"
    i = 0
    scaled = float(size)
    while scaled >= 1024 and i < len(SIZE_UNITS) - 1:
        scaled /= 1024
        i += 1
    value = f"{scaled:.2f}".rstrip("0").rstrip(".")
    return f"{value} {SIZE_UNITS[i]}"


def group_by_directory(orphans: List[OrphanRecord]) -> Dict[str, List[OrphanRecord]]:
    groups: Dict[str, List[OrphanRecord]] = defaultdict(list)
    for rec in orphans:
        groups[str(PurePosixPath(rec.relative_path).parent)].append(rec)
    return dict(sorted(groups.items()))


def log_orphan_report(orphans: List[OrphanRecord], total_size: int, dry_run: bool = False):
    """Writes the orphan list, grouped by month directory, to the log."""
    logging.info(RULE)
    logging.info("DRY RUN RESULTS" if dry_run else "ORPHANED FILES FOUND")
    logging.info(RULE)

    for directory, records in group_by_directory(orphans).items():
        logging.info(f"{directory}/")
        for rec in records:
            logging.info(f"   {rec.filename} ({rec.dimension_tag}) - {format_bytes(rec.size)}")

    logging.info(RULE)
    logging.info("SUMMARY:")
    logging.info(f"   Orphaned files: {len(orphans)}")
    logging.info(f"   Total size: {format_bytes(total_size)}")
    if dry_run:
        logging.info("Run with --clean to remove these files (a backup is taken first)")


def write_orphan_csv(orphans: List[OrphanRecord], output_csv: Path):
    """
    Exports the orphan list for review outside the tool.
    """
    headers = [
        "Relative Path",
        "Dimensions",
        "Base Name",
        "Size Bytes",
        "Size",
    ]
    output_csv.parent.mkdir(parents=True, exist_ok=True)
    with open(output_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(headers)
        for rec in orphans:
            writer.writerow([
                rec.relative_path,
                rec.dimension_tag,
                rec.base_name,
                rec.size,
                format_bytes(rec.size),
            ])
    logging.info(f"Report complete: {len(orphans)} orphans written to {output_csv}")


def log_restore_hint(archive_path: Path):
    name = archive_path.name
    logging.info(f"To restore manually, extract: {name}")
    logging.info("To restore using this tool:")
    logging.info(f"   orphan-cleaner --restore {name}")
    logging.info(f"   orphan-cleaner --restore {name} --delete   (removes the archive afterwards)")
