import sys
import json
import argparse
import logging

import pymysql

from probe.core import DEFAULT_USER_AGENT, setup_logger, logger
from probe.db import get_connection
from detection.catalog import DEFAULT_CATALOG, catalog_from_records
from detection.engine import ProviderDetector
from detection.mysql_storage import MySQLDetectionResultStore, MySQLFingerprintStore
from detection.recommendations import get_integration_instructions


class DetectionSession:
    """
    Wires catalog, optional MySQL store and detector for one CLI run.
    MySQL is optional: without it detection still runs, nothing is saved.
    """

    def __init__(self, catalog_from_db=False, ensure_schema=False):
        self.connection = get_connection()
        self.store = None
        self.detector = None
        catalog = DEFAULT_CATALOG

        try:
            if self.connection is not None:
                self.store = MySQLDetectionResultStore(self.connection)
                if ensure_schema:
                    self._ensure_schema()
                if catalog_from_db:
                    catalog = self._load_catalog()
            elif catalog_from_db:
                logger.warning("[CATALOG] --catalog-from-db requested but MySQL is unavailable. Using built-in catalog.")

            self.detector = ProviderDetector(catalog=catalog, store=self.store)
        except Exception:
            self.close()
            raise

    def _ensure_schema(self):
        try:
            self.store.ensure_schema()
        except pymysql.MySQLError as e:
            logger.error(f"[STORE] Could not create hosting tables: {e}. Detection results will not be saved.")
            self.store = None

    def _load_catalog(self):
        try:
            rows = MySQLFingerprintStore(self.connection).get_active_fingerprints()
        except Exception as e:
            logger.error(f"[CATALOG] Failed to read fingerprints: {e}. Using built-in catalog.")
            return DEFAULT_CATALOG
        if not rows:
            logger.warning("[CATALOG] No active fingerprint rows. Using built-in catalog.")
            return DEFAULT_CATALOG
        return catalog_from_records(rows)

    def close(self):
        if self.detector is not None:
            self.detector.shutdown(wait=True)
        if self.connection is not None:
            self.connection.close()
            self.connection = None


def print_summary(result):
    print("\n==============================")
    print("HOST DETECTION SUMMARY")
    print("==============================")
    print(f"Site:             {result.normalized_url}")
    print(f"Duration:         {result.duration_ms} ms")
    if result.primary_provider:
        print(f"Primary Provider: {result.primary_provider.display_name} ({result.overall_confidence:.0f}%)")
    else:
        print("Primary Provider: none detected")
    print("Candidates:")
    for p in result.candidate_providers:
        print(f"  - {p.provider_name:<16} {p.confidence:6.2f}")
    print(f"Methods:          {', '.join(result.detection_methods_used) or '-'}")
    print(f"Automation:       {'available' if result.automation_available else 'not available'}")
    print("Recommendations:")
    for line in result.recommendations:
        print(f"  - {line}")
    print("==============================\n")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Hosting provider detection CLI")
    parser.add_argument("domain", help="Domain or URL to inspect")
    parser.add_argument("--quick", action="store_true", help="Single-request header check only")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent for probes")
    parser.add_argument("--user-token", default=None, help="Owner of the run; enables saving the result")
    parser.add_argument("--instructions", action="store_true", help="Print integration steps for the primary provider")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--catalog-from-db", action="store_true", help="Load fingerprints from MySQL")
    parser.add_argument("--ensure-schema", action="store_true", help="Create the hosting tables if missing")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Log individual probe failures")
    args = parser.parse_args(argv)

    if args.log_file or args.verbose:
        root = logging.getLogger("detector")
        root.handlers.clear()
        setup_logger(log_file=args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    session = DetectionSession(catalog_from_db=args.catalog_from_db, ensure_schema=args.ensure_schema)
    try:
        if args.quick:
            provider = session.detector.quick_detect(args.domain)
            if args.json:
                print(json.dumps({"domain": args.domain, "provider": provider}))
            else:
                print(provider or "none")
            return 0

        try:
            result = session.detector.detect_provider(
                args.domain,
                user_agent=args.user_agent,
                identity_context=args.user_token,
            )
        except ValueError as e:
            print(f"INPUT_ERROR: {e}")
            return 2

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print_summary(result)

        if args.instructions:
            primary = result.primary_provider
            if primary is not None and primary.profile is not None:
                print(get_integration_instructions(primary.profile, result.domain))
            else:
                print("No integration instructions available: no provider with a capability profile detected.")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
