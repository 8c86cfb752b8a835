#!/usr/bin/env python3
"""
Vehicle Safety Audit - Command Line Entry Point

Merges the DiveDeep, VinAudit and Grounded feeds into the shared vehicle
store, records audit decisions and exports audit reports.

Usage:
    safety-audit [--config CONFIG_PATH] merge --divedeep F --vinaudit F --grounded F
    safety-audit [--config CONFIG_PATH] lookup PLATE
    safety-audit [--config CONFIG_PATH] audit PLATE --auditor ID (--approve | --block REASON)
    safety-audit [--config CONFIG_PATH] export [--filter all|passed|blocked] [--pdf]

Environment Variables:
    Any ${VAR} referenced by the configuration file, e.g. FIREBASE_TOKEN
"""

import asyncio
import argparse
import sys
from datetime import datetime
from typing import List, Optional

from .exceptions import AuditError, FlushFailed
from .exporters import ExcelExporter, PDFReportGenerator
from .models import ReportFilter, SourceKind
from .processors.audit_session import advisory_verdict
from .service import AuditService, FeedUpload
from .utils import create_output_directories, load_config, setup_logging_from_config


class SafetyAuditTool:
    """
    Main orchestrator for the command line.
    """

    def __init__(self, config_path: str = "config/config.yaml"):
        self.config_path = config_path
        self.config = None
        self.logger = None
        self.service: Optional[AuditService] = None
        self.exports_path = None
        self.reports_path = None

    def initialize(self) -> bool:
        """Initialize configuration, logging and the service."""
        try:
            self.config = load_config(self.config_path)
        except FileNotFoundError as e:
            print(f"ERROR: Configuration file not found: {e}")
            return False
        except ValueError as e:
            print(f"ERROR: Configuration validation failed: {e}")
            return False

        self.logger = setup_logging_from_config(self.config.logging)
        self.exports_path, self.reports_path = create_output_directories(self.config)

        try:
            self.service = AuditService.from_config(self.config)
        except AuditError as e:
            self.logger.error(f"Could not open datastore: {e}")
            return False

        self.logger.info(f"Configuration loaded from: {self.config_path}")
        self.logger.info(f"Datastore backend: {self.config.datastore.backend}")
        return True

    async def merge_feeds(self, args: argparse.Namespace) -> bool:
        """Merge the given feed files into the vehicle store."""
        skip_rows = args.skip_rows if args.skip_rows is not None else self.config.feeds.skip_rows

        feeds: List[FeedUpload] = []
        for kind, path in (
            (SourceKind.DIVE_DEEP, args.divedeep),
            (SourceKind.VIN_AUDIT, args.vinaudit),
            (SourceKind.GROUNDED, args.grounded)
        ):
            if path:
                feeds.append(FeedUpload(source_kind=kind, source=path, skip_rows=skip_rows))

        if not feeds:
            self.logger.error("No feed files given")
            return False

        try:
            store, warnings = await self.service.normalize_and_merge(feeds)
        except FlushFailed as e:
            self.logger.error(f"Merged {len(e.store)} vehicle(s) but could not save them: {e}")
            self._log_warnings(e.warnings)
            return False

        self._log_warnings(warnings)
        self.logger.info(f"Vehicle store now holds {len(store)} vehicle(s)")

        if args.export_vehicles:
            exporter = self._excel_exporter()
            exporter.export_vehicles(store.all())

        return True

    def lookup_vehicle(self, args: argparse.Namespace) -> bool:
        """Print the merged record for a plate."""
        record = self.service.lookup(args.plate)

        print(f"Plate:           {record.plate}")
        print(f"Vehicle:         {record.display_name or '-'}")
        print(f"DiveDeep:        {record.dive_deep_status.value}")
        print(f"VinAudit:        {record.vin_audit_status.value}")
        print(f"Grounded:        {record.grounded_status.value}")
        for key, value in record.extra_info.items():
            print(f"  {key}: {value}")
        print(f"Feed verdict:    {advisory_verdict(record).value}")

        for outcome in self.service.history.for_plate(record.plate):
            detail = outcome.problem_description or ''
            print(
                f"  {outcome.timestamp:%d-%m-%Y %H:%M} {outcome.result.value} "
                f"by {outcome.auditor_identity} {detail}".rstrip()
            )
        return True

    async def audit_vehicle(self, args: argparse.Namespace) -> bool:
        """Record one audit decision."""
        session = self.service.begin_audit(args.plate, args.auditor)
        self.logger.info(
            f"Auditing {session.vehicle_ref.plate}; feed verdict: {session.advisory.value}"
        )

        if args.approve:
            outcome = await self.service.approve(session)
            print(outcome.qr_payload)
        else:
            self.service.block(session)
            outcome = await self.service.submit_problem(session, args.block)

        self.logger.info(f"Recorded {outcome.result.value} for {outcome.plate}")
        return True

    def export_report(self, args: argparse.Namespace) -> bool:
        """Export audit report files."""
        report_filter = ReportFilter(args.filter)
        rows = self.service.export_report(report_filter)

        self._excel_exporter().export_audit_report(rows, report_filter)

        if args.pdf:
            generator = PDFReportGenerator(
                output_path=self.reports_path,
                file_prefix=self.config.output.file_prefix,
                branding=self.config.branding.dict()
            )
            generator.generate_audit_summary(rows, self.service.store.all())

        return True

    async def run(self, args: argparse.Namespace) -> bool:
        """Run one command."""
        if not self.initialize():
            return False

        start_time = datetime.now()
        try:
            await self.service.load()

            if args.command == 'merge':
                success = await self.merge_feeds(args)
            elif args.command == 'lookup':
                success = self.lookup_vehicle(args)
            elif args.command == 'audit':
                success = await self.audit_vehicle(args)
            else:
                success = self.export_report(args)

        except AuditError as e:
            self.logger.error(f"{type(e).__name__}: {e}")
            success = False
        finally:
            await self.service.close()

        duration = (datetime.now() - start_time).total_seconds()
        self.logger.info(f"Command '{args.command}' finished in {duration:.2f}s")
        return success

    def _excel_exporter(self) -> ExcelExporter:
        return ExcelExporter(
            output_path=self.exports_path,
            file_prefix=self.config.output.file_prefix,
            branding={'primary_color': self.config.branding.primary_color}
        )

    def _log_warnings(self, warnings) -> None:
        if not warnings:
            return
        self.logger.warning(f"{len(warnings)} feed warning(s):")
        for warning in warnings:
            self.logger.warning(f"  - {warning}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Vehicle Safety Audit - merge inspection feeds and record audit decisions"
    )
    parser.add_argument(
        "--config", "-c",
        default="config/config.yaml",
        help="Path to configuration file (default: config/config.yaml)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    merge = subparsers.add_parser("merge", help="Merge feed files into the vehicle store")
    merge.add_argument("--divedeep", help="DiveDeep feed (.csv or .xlsx)")
    merge.add_argument("--vinaudit", help="VinAudit feed (.csv or .xlsx)")
    merge.add_argument("--grounded", help="Grounded feed (.csv or .xlsx)")
    merge.add_argument("--skip-rows", type=int, default=None, help="Rows to skip above the header")
    merge.add_argument("--export-vehicles", action="store_true", help="Also write the vehicle workbook")

    lookup = subparsers.add_parser("lookup", help="Show the merged record for a plate")
    lookup.add_argument("plate")

    audit = subparsers.add_parser("audit", help="Record an audit decision")
    audit.add_argument("plate")
    audit.add_argument("--auditor", required=True, help="Auditor identity")
    decision = audit.add_mutually_exclusive_group(required=True)
    decision.add_argument("--approve", action="store_true", help="Pass the vehicle")
    decision.add_argument("--block", metavar="REASON", help="Block the vehicle with a problem description")

    export = subparsers.add_parser("export", help="Export the audit report")
    export.add_argument(
        "--filter",
        choices=[f.value for f in ReportFilter],
        default=ReportFilter.ALL.value
    )
    export.add_argument("--pdf", action="store_true", help="Also generate the PDF summary")

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    tool = SafetyAuditTool(config_path=args.config)

    success = asyncio.run(tool.run(args))

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
