#!/usr/bin/env python3
"""
Copies the newest airdrop report to the static site's data directory.

The site reads web/public/data/latest-report.json. When no report exists yet an
empty placeholder with the same shape is written instead.
"""
import os, sys, json, shutil, argparse, logging
from typing import List, Optional

from dotenv import load_dotenv

from airdrop_finder import REPORT_PREFIX, report_dir_from_env

logger = logging.getLogger(__name__)

DEFAULT_OUT_FILE = os.path.join("web", "public", "data", "latest-report.json")
EMPTY_REPORT = {"generatedAt": None, "meta": {}, "results": []}


def find_latest_report(report_dir: str) -> Optional[str]:
    # timestamps in the file names sort lexicographically
    if not os.path.isdir(report_dir):
        return None
    files = sorted(n for n in os.listdir(report_dir)
                   if n.startswith(REPORT_PREFIX) and n.endswith(".json"))
    if not files:
        return None
    return os.path.join(report_dir, files[-1])


def prepare(report_dir: str, out_file: str) -> Optional[str]:
    """Copy the latest report to out_file. Returns the source path, or None if a placeholder was written."""
    out_dir = os.path.dirname(out_file)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    latest = find_latest_report(report_dir)
    if latest is None:
        with open(out_file, "w", encoding="utf-8") as f:
            json.dump(EMPTY_REPORT, f, indent=2)
        return None
    shutil.copyfile(latest, out_file)
    return latest


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    ap = argparse.ArgumentParser(description="Publish the latest airdrop report for the static site")
    ap.add_argument("--reports-dir", default=None, help="where airdrop-report-*.json files live (default: $REPORT_DIR or reports/)")
    ap.add_argument("--out", default=DEFAULT_OUT_FILE, help="destination JSON file")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    latest = prepare(args.reports_dir or report_dir_from_env(), args.out)
    if latest is None:
        logger.warning("No report found. Wrote empty %s", args.out)
    else:
        print(f"Copied {latest} -> {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
