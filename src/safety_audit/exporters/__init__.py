"""Export modules for report projection, Excel and PDF generation."""

from .report_projection import REPORT_COLUMNS, ReportExporter
from .excel_exporter import ExcelExporter
from .pdf_report_generator import PDFReportGenerator

__all__ = [
    'REPORT_COLUMNS',
    'ReportExporter',
    'ExcelExporter',
    'PDFReportGenerator'
]
