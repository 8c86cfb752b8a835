"""
PDF audit summary report.
Uses reportlab for PDF generation and matplotlib for charts.
"""

import io
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch, mm
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, Image
)
from reportlab.lib.enums import TA_CENTER

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from ..models import AuditResult, CheckStatus, VehicleRecord
from ..processors.audit_session import advisory_verdict


DEFAULT_CHART_COLORS = ['#2E7D32', '#C8102E', '#9E9E9E', '#1565C0', '#F9A825', '#6D4C41']

VERDICT_ORDER = [CheckStatus.PASS.value, CheckStatus.FAIL.value, CheckStatus.UNKNOWN.value]

# name, parent, overrides
_STYLE_TABLE = [
    ('ReportTitle', 'Title', {'fontSize': 20, 'spaceAfter': 6, 'alignment': TA_CENTER}),
    ('ReportSubtitle', 'Normal', {'fontSize': 9, 'textColor': colors.gray, 'alignment': TA_CENTER, 'spaceAfter': 14}),
    ('Section', 'Heading2', {'fontSize': 13, 'spaceBefore': 14, 'spaceAfter': 6}),
    ('Cell', 'Normal', {'fontSize': 8, 'leading': 10}),
    ('Body', 'Normal', {'fontSize': 10, 'leading': 14, 'spaceAfter': 6}),
    ('StatValue', 'Normal', {'fontSize': 22, 'leading': 26, 'alignment': TA_CENTER}),
    ('StatLabel', 'Normal', {'fontSize': 9, 'textColor': colors.gray, 'alignment': TA_CENTER}),
]


class PDFReportGenerator:
    """
    Generates the branded audit summary PDF.

    The summary is built from projected report rows (see ReportExporter)
    plus the current vehicle records, which feed the fleet verdict chart.
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

        self.accent = self.branding.get('primary_color', '#C8102E')
        self.chart_colors = self.branding.get('chart_colors') or DEFAULT_CHART_COLORS
        self.organization = self.branding.get('organization', 'Fleet Safety')
        self.footer_text = self.branding.get(
            'footer_text',
            'Vehicle safety audit - internal use only'
        )

        self.styles = self._build_styles()

    def _build_styles(self):
        styles = getSampleStyleSheet()
        for name, parent, overrides in _STYLE_TABLE:
            styles.add(ParagraphStyle(name=name, parent=styles[parent], **overrides))

        styles['ReportTitle'].textColor = colors.HexColor(self.accent)
        styles['StatValue'].textColor = colors.HexColor(self.accent)
        return styles

    def _output_file(self) -> Path:
        stamp = datetime.now().strftime("%d-%m-%Y")
        return self.output_path / f"{self.file_prefix}_audit_summary_{stamp}.pdf"

    def _draw_page_frame(self, canvas, doc):
        """Branded band on top, footer text and page number at the bottom."""
        page_width, page_height = A4
        band_height = 22*mm

        canvas.saveState()

        canvas.setFillColor(colors.HexColor(self.accent))
        canvas.rect(0, page_height - band_height, page_width, band_height, fill=True, stroke=False)

        canvas.setFillColor(colors.white)
        canvas.setFont('Helvetica-Bold', 13)
        canvas.drawString(15*mm, page_height - 14*mm, self.organization)
        canvas.setFont('Helvetica', 9)
        canvas.drawRightString(page_width - 15*mm, page_height - 14*mm, "Vehicle Safety Audit")

        canvas.setFillColor(colors.gray)
        canvas.setFont('Helvetica', 8)
        canvas.drawString(15*mm, 12*mm, self.footer_text)
        canvas.drawRightString(page_width - 15*mm, 12*mm, f"Page {doc.page}")

        canvas.restoreState()

    def _figure_to_image(self, fig, width: float, height: float) -> Image:
        buf = io.BytesIO()
        fig.savefig(buf, format='png', dpi=150, bbox_inches='tight')
        plt.close(fig)
        buf.seek(0)
        return Image(buf, width=width*inch, height=height*inch)

    def _decision_chart(self, passed: int, blocked: int) -> Image:
        """Donut of passed vs blocked decisions."""
        width, height = 3.2, 2.6
        fig, ax = plt.subplots(figsize=(width, height))

        wedges, _ = ax.pie(
            [passed, blocked],
            colors=[self.chart_colors[0], self.chart_colors[1 % len(self.chart_colors)]],
            startangle=90,
            wedgeprops={'width': 0.4}
        )
        ax.text(0, 0, f"{passed + blocked:,}", ha='center', va='center', fontsize=14, fontweight='bold')
        ax.legend(
            wedges,
            [f"Passed ({passed:,})", f"Blocked ({blocked:,})"],
            loc='center left',
            bbox_to_anchor=(1, 0.5),
            fontsize=8,
            frameon=False
        )
        ax.set_title("Decisions", fontsize=10, fontweight='bold', color=self.accent)

        return self._figure_to_image(fig, width, height)

    def _verdict_chart(self, verdicts: Counter) -> Image:
        """Horizontal bars of the combined feed verdict across the fleet."""
        width, height = 3.6, 2.6
        fig, ax = plt.subplots(figsize=(width, height))

        labels = [label for label in VERDICT_ORDER if verdicts.get(label)]
        values = [verdicts[label] for label in labels]
        palette = {
            CheckStatus.PASS.value: self.chart_colors[0],
            CheckStatus.FAIL.value: self.chart_colors[1 % len(self.chart_colors)],
            CheckStatus.UNKNOWN.value: self.chart_colors[2 % len(self.chart_colors)]
        }

        bars = ax.barh(labels, values, color=[palette[label] for label in labels])
        ax.invert_yaxis()
        ax.bar_label(bars, labels=[f"{v:,}" for v in values], padding=3, fontsize=8)
        ax.set_xlabel("Vehicles", fontsize=8)
        ax.spines[['top', 'right']].set_visible(False)
        ax.set_title("Feed verdict", fontsize=10, fontweight='bold', color=self.accent)

        return self._figure_to_image(fig, width, height)

    def _stat_strip(self, stats: List[Tuple[str, str]]) -> Table:
        values = [Paragraph(value, self.styles['StatValue']) for value, _ in stats]
        labels = [Paragraph(label, self.styles['StatLabel']) for _, label in stats]

        table = Table([values, labels], colWidths=[180*mm / len(stats)] * len(stats))
        table.setStyle(TableStyle([
            ('LINEBELOW', (0, 1), (-1, 1), 1.5, colors.HexColor(self.accent)),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('TOPPADDING', (0, 0), (-1, 0), 8),
            ('BOTTOMPADDING', (0, 1), (-1, 1), 8),
        ]))
        return table

    def _rows_table(
        self,
        headers: List[str],
        rows: List[List[Any]],
        col_widths: List[float]
    ) -> Table:
        cells = [[Paragraph(str(value), self.styles['Cell']) for value in row] for row in rows]
        table = Table([headers] + cells, colWidths=[w*mm for w in col_widths], repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(self.accent)),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 8),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LINEBELOW', (0, 1), (-1, -1), 0.25, colors.lightgrey),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
        ]))
        return table

    def generate_audit_summary(
        self,
        rows: List[Dict[str, Any]],
        vehicles: Iterable[VehicleRecord]
    ) -> Path:
        """
        Generate the audit summary report.

        Args:
            rows: Projected audit report rows
            vehicles: Current vehicle records, for the feed verdict chart

        Returns:
            Path of the written PDF
        """
        filename = self._output_file()
        self.logger.info(f"Generating audit summary: {filename}")

        passed = [r for r in rows if r['Result'] == AuditResult.PASS.value]
        blocked = [r for r in rows if r['Result'] == AuditResult.BLOCKED.value]
        auditors = Counter(r['Auditor'] for r in rows)
        verdicts = Counter(advisory_verdict(record).value for record in vehicles)

        story = [
            Paragraph("Audit Summary", self.styles['ReportTitle']),
            Paragraph(
                f"Generated {datetime.now().strftime('%d-%m-%Y %H:%M')} - "
                f"{sum(verdicts.values()):,} vehicle(s) on record",
                self.styles['ReportSubtitle']
            ),
            self._stat_strip([
                (f"{len(rows):,}", "Decisions"),
                (f"{len(passed):,}", "Passed"),
                (f"{len(blocked):,}", "Blocked"),
                (f"{len(auditors):,}", "Auditors")
            ]),
            Spacer(1, 12)
        ]

        charts = []
        if rows:
            charts.append(self._decision_chart(len(passed), len(blocked)))
        if verdicts:
            charts.append(self._verdict_chart(verdicts))
        if charts:
            story.append(Table([charts]))

        story.append(Paragraph("Blocked Vehicles", self.styles['Section']))
        if blocked:
            story.append(self._rows_table(
                ['Time', 'Plate', 'Vehicle', 'Problem', 'Auditor'],
                [
                    [r['Timestamp'][:16].replace('T', ' '), r['Plate'], r['Vehicle Name'],
                     r['Problem Description'], r['Auditor']]
                    for r in blocked
                ],
                col_widths=[28, 22, 32, 70, 28]
            ))
        else:
            story.append(Paragraph("No vehicles were blocked.", self.styles['Body']))

        if auditors:
            story.append(Paragraph("Decisions per Auditor", self.styles['Section']))
            story.append(self._rows_table(
                ['Auditor', 'Passed', 'Blocked'],
                [
                    [
                        auditor,
                        sum(1 for r in passed if r['Auditor'] == auditor),
                        sum(1 for r in blocked if r['Auditor'] == auditor)
                    ]
                    for auditor, _ in auditors.most_common()
                ],
                col_widths=[80, 30, 30]
            ))

        doc = SimpleDocTemplate(
            str(filename),
            pagesize=A4,
            topMargin=30*mm,
            bottomMargin=22*mm,
            leftMargin=15*mm,
            rightMargin=15*mm,
            title="Vehicle Safety Audit Summary",
            author=self.organization
        )
        doc.build(story, onFirstPage=self._draw_page_frame, onLaterPages=self._draw_page_frame)

        self.logger.info(f"Audit summary generated: {filename}")
        return filename
