"""
DDI Mining - Main Entry Point

Usage:
    ddi-mining --drug "doxorubicin"
    ddi-mining --drugs cisplatin paclitaxel --export csv --output ddi.csv
    ddi-mining --csv drugs.csv
    ddi-mining --indication "breast cancer"
    ddi-mining --all
    ddi-mining --health-check
"""

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import List

from ddi_mining.config import get_config
from ddi_mining.exceptions import MiningError
from ddi_mining.export.exporter import SUPPORTED_FORMATS
from ddi_mining.factory import create_orchestrator
from ddi_mining.models import MiningJob
from ddi_mining.orchestrator import DDIMiningOrchestrator
from ddi_mining.utils.logger import get_logger, setup_logger


def read_drug_csv(csv_path: str, drug_column: str = "drug_name") -> List[str]:
    """Read drug names from one column of a CSV file."""
    logger = get_logger()
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    drug_names = []
    with open(path, 'r', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        if drug_column not in (reader.fieldnames or []):
            raise ValueError(f"Column '{drug_column}' not found in CSV")
        for row in reader:
            name = (row.get(drug_column) or "").strip()
            if name:
                drug_names.append(name)

    logger.info(f"Read {len(drug_names)} drug names from {csv_path}")
    return drug_names


def print_job_summary(job: MiningJob, orchestrator: DDIMiningOrchestrator):
    logger = get_logger()
    progress = orchestrator.get_progress(job.job_id)
    reports = orchestrator.get_reports(job.job_id)

    logger.info(f"\n{'='*60}")
    logger.info("MINING SUMMARY")
    logger.info(f"{'='*60}")
    logger.info(f"  Job ID: {job.job_id}")
    logger.info(f"  Status: {job.status.value}")
    logger.info(f"  Drugs: {progress['processed_count']}/{progress['total_drugs']}")
    logger.info(f"  Failed: {len(progress['failed_drugs'])}")
    logger.info(f"  Raw entries per source: {progress['per_source_counts']}")
    logger.info(f"  Interaction records: {reports['normalization']['entries_out']}")
    logger.info(f"  Elapsed: {progress['elapsed_ms'] / 1000:.1f}s")
    logger.info(f"{'='*60}")

    if job.errors:
        logger.warning(f"\nErrors ({len(job.errors)}):")
        for error in job.errors[:10]:
            logger.warning(f"  - {error}")


def run_health_check(orchestrator: DDIMiningOrchestrator) -> int:
    """Check connectivity to every evidence source."""
    logger = get_logger()

    logger.info("\n" + "="*60)
    logger.info("SYSTEM HEALTH CHECK")
    logger.info("="*60)

    results = orchestrator.health_check()
    for source, healthy in results.items():
        symbol = "OK" if healthy else "FAILED"
        logger.info(f"  [{symbol}] {source}")

    all_healthy = bool(results) and all(results.values())
    logger.info(f"Sources: {'PASSED' if all_healthy else 'DEGRADED'}")
    logger.info("="*60 + "\n")

    return 0 if all_healthy else 1


def export(orchestrator: DDIMiningOrchestrator, fmt: str, output: str = None):
    payload = orchestrator.export_results(fmt)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        get_logger().info(f"Exported results to {path}")
    else:
        sys.stdout.write(payload.decode("utf-8"))
        sys.stdout.write("\n")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="DDI Mining - Mine drug-drug interaction evidence from trials, labels and literature"
    )

    parser.add_argument("--drug", type=str, help="Single drug name to mine")
    parser.add_argument("--drugs", type=str, nargs="+", help="Several drug names to mine as one job")
    parser.add_argument("--csv", type=str, help="Path to CSV file with drug names")
    parser.add_argument("--column", type=str, default="drug_name",
                        help="Column name in CSV containing drug names")
    parser.add_argument("--indication", type=str, nargs="+", help="Mine drugs associated with indications")
    parser.add_argument("--all", action="store_true", help="Mine every drug in the curated vocabulary")
    parser.add_argument("--export", type=str, choices=SUPPORTED_FORMATS,
                        help="Export results after mining")
    parser.add_argument("--output", type=str, help="Export file (stdout when omitted)")
    parser.add_argument("--health-check", action="store_true",
                        help="Check connectivity to all evidence sources")
    parser.add_argument("--log-level", type=str, default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    config = get_config()
    setup_logger(
        level=getattr(logging, (args.log_level or config.logging.level).upper(), logging.INFO),
        log_dir=config.logging.log_dir,
        max_bytes=config.logging.max_file_size,
        backup_count=config.logging.backup_count,
    )
    logger = get_logger()

    try:
        with create_orchestrator(config) as orchestrator:
            if args.health_check:
                sys.exit(run_health_check(orchestrator))

            if args.drug:
                records = orchestrator.mine_single_drug(args.drug)
                logger.info(f"{args.drug}: {len(records)} interaction record(s)")
                print_job_summary(orchestrator.get_job(orchestrator.tracker.latest_job_id), orchestrator)
            elif args.drugs or args.csv:
                names = args.drugs or read_drug_csv(args.csv, args.column)
                print_job_summary(orchestrator.mine_multiple_drugs(names), orchestrator)
            elif args.indication:
                print_job_summary(orchestrator.mine_by_indications(args.indication), orchestrator)
            elif args.all:
                print_job_summary(orchestrator.mine_all_known_drugs(), orchestrator)
            else:
                parser.print_help()
                sys.exit(1)

            if args.export:
                export(orchestrator, args.export, args.output)

    except (MiningError, ValueError, FileNotFoundError) as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
