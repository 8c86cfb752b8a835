"""
Excel exporter for audit reports and the merged vehicle list.
Uses xlsxwriter through pandas.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

import pandas as pd

from ..models import AuditResult, ReportFilter, VehicleRecord
from .report_projection import REPORT_COLUMNS


VEHICLE_COLUMNS = [
    'Plate',
    'Vehicle Name',
    'DiveDeep Status',
    'VinAudit Status',
    'Grounded Status',
    'Last Merged At'
]

_SHEET_NAMES = {
    ReportFilter.ALL: 'All_Audits',
    ReportFilter.PASSED_ONLY: 'Passed',
    ReportFilter.BLOCKED_ONLY: 'Blocked'
}


class ExcelExporter:
    """
    Exports report rows and vehicle records to formatted Excel files.
    """

    def __init__(
        self,
        output_path: Path,
        file_prefix: str = "safety_audit",
        branding: Optional[Dict[str, Any]] = None
    ):
        self.output_path = Path(output_path)
        self.file_prefix = file_prefix
        self.branding = branding or {}
        self.logger = logging.getLogger(self.__class__.__name__)

        self.primary_color = self.branding.get('primary_color', '#C8102E')
        self.header_bg_color = self.primary_color.replace('#', '')

    def _get_filename(self, name: str) -> Path:
        """Generate filename with date."""
        date_str = datetime.now().strftime("%d-%m-%Y")
        return self.output_path / f"{self.file_prefix}_{name}_{date_str}.xlsx"

    def _header_format(self, workbook):
        return workbook.add_format({
            'bold': True,
            'bg_color': self.header_bg_color,
            'font_color': 'white',
            'border': 1
        })

    def _write_sheet(
        self,
        writer: pd.ExcelWriter,
        df: pd.DataFrame,
        sheet_name: str,
        header_format,
        with_filter: bool = True
    ) -> None:
        """Write a dataframe with styled headers, sized columns and frozen header row."""
        df.to_excel(writer, sheet_name=sheet_name, index=False)

        worksheet = writer.sheets[sheet_name]
        for col_num, value in enumerate(df.columns.values):
            worksheet.write(0, col_num, value, header_format)
            if df.empty:
                max_len = len(value) + 2
            else:
                max_len = max(df[value].astype(str).map(len).max(), len(value)) + 2
            worksheet.set_column(col_num, col_num, min(max_len, 50))

        if with_filter and len(df.columns):
            worksheet.autofilter(0, 0, len(df), len(df.columns) - 1)
        worksheet.freeze_panes(1, 0)

    def export_audit_report(
        self,
        rows: List[Dict[str, Any]],
        report_filter: ReportFilter = ReportFilter.ALL
    ) -> Path:
        """Export projected audit rows to Excel."""
        filename = self._get_filename(f"audit_report_{report_filter.value}")
        self.logger.info(f"Exporting {len(rows)} audit row(s) to {filename}")

        df = pd.DataFrame(rows, columns=REPORT_COLUMNS)

        with pd.ExcelWriter(filename, engine='xlsxwriter') as writer:
            header_format = self._header_format(writer.book)

            self._write_sheet(writer, df, _SHEET_NAMES[report_filter], header_format)

            if report_filter is ReportFilter.ALL:
                passed_df = df[df['Result'] == AuditResult.PASS.value]
                blocked_df = df[df['Result'] == AuditResult.BLOCKED.value]
                self._write_sheet(writer, passed_df, 'Passed', header_format)
                self._write_sheet(writer, blocked_df, 'Blocked', header_format)

            if not df.empty:
                auditor_df = (
                    df.groupby(['Auditor', 'Result']).size()
                    .unstack(fill_value=0)
                    .reset_index()
                )
                self._write_sheet(
                    writer, auditor_df, 'By_Auditor', header_format, with_filter=False
                )

        self.logger.info(f"Audit report exported to {filename}")
        return filename

    def export_vehicles(self, records: Iterable[VehicleRecord]) -> Path:
        """Export merged vehicle records to Excel."""
        filename = self._get_filename("vehicles")

        data = []
        for record in records:
            row = {
                'Plate': record.plate,
                'Vehicle Name': record.display_name,
                'DiveDeep Status': record.dive_deep_status.value,
                'VinAudit Status': record.vin_audit_status.value,
                'Grounded Status': record.grounded_status.value,
                'Last Merged At': record.last_merged_at.isoformat() if record.last_merged_at else ''
            }
            for key, value in record.extra_info.items():
                row[f"Extra: {key}"] = value
            data.append(row)

        self.logger.info(f"Exporting {len(data)} vehicle(s) to {filename}")

        df = pd.DataFrame(data)
        extra_cols = sorted(c for c in df.columns if c not in VEHICLE_COLUMNS)
        df = df.reindex(columns=VEHICLE_COLUMNS + extra_cols).fillna('')
        df = df.sort_values('Plate') if not df.empty else df

        with pd.ExcelWriter(filename, engine='xlsxwriter') as writer:
            header_format = self._header_format(writer.book)

            self._write_sheet(writer, df, 'All_Vehicles', header_format)

            summary = []
            for column in ('DiveDeep Status', 'VinAudit Status', 'Grounded Status'):
                for value, count in df[column].value_counts().items():
                    summary.append({'Check': column, 'Value': value, 'Count': int(count)})

            summary_df = pd.DataFrame(summary, columns=['Check', 'Value', 'Count'])
            self._write_sheet(
                writer, summary_df, 'By_Status', header_format, with_filter=False
            )

        self.logger.info(f"Vehicles exported to {filename}")
        return filename
