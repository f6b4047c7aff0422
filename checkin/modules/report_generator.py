"""
Report Generator Module - Event Check-in

This module backs the control panel. It loads participants and attendance
from the participant store, computes the headline counts, and exports
either collection as CSV, Excel or PDF with human-readable headers.

Features:
- Read-only control panel data (newest first)
- Summary counts
- CSV/Excel export through pandas
- PDF export through ReportLab
"""

import pandas as pd
import io
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from checkin.modules.errors import StoreError

DISPLAY_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'

PARTICIPANT_COLUMNS = ['Full Name', 'Email', 'Phone', 'Organization', 'Category', 'Registered At']
ATTENDANCE_COLUMNS = ['Participant', 'Email', 'Organization', 'Check-in Time', 'Check-out Time']

COLLECTIONS = {
    'participants': 'Participants',
    'attendance': 'Attendance',
}

EXPORT_FORMATS = {
    'csv': 'text/csv',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'pdf': 'application/pdf',
}

MESSAGE_LOAD_FAILED = "There was a problem loading the data. Please refresh the page."


def format_display_time(value: Optional[datetime]) -> str:
    """Format a UTC timestamp in local time for people to read."""
    if value is None:
        return ''
    return value.astimezone().strftime(DISPLAY_TIME_FORMAT)


class ReportGenerator:
    """
    Control panel data and exports.
    """

    def __init__(self, participant_store, event_name: str = 'Academic Event'):
        """
        Initialize the report generator.

        Args:
            participant_store: ParticipantStore instance
            event_name (str): Event name used in PDF titles
        """
        self.store = participant_store
        self.event_name = event_name
        self.logger = logging.getLogger(__name__)

    def load_dashboard(self) -> Dict[str, Any]:
        """
        Load everything the control panel shows.

        Returns:
            Dict[str, Any]: participants, attendance and stats on success;
            an error message and empty collections on failure
        """
        try:
            participants = self.store.list_participants()
            attendance = self.store.list_attendance()
            stats = {
                'total_participants': self.store.count_participants(),
                'total_attendance': self.store.count_attendance(),
                'checked_in_now': self.store.count_open_attendance(),
                'unique_attendees': self.store.count_attendees(),
            }
        except StoreError as e:
            self.logger.error(f"Control panel data load failed: {str(e)}")
            return {
                'success': False,
                'error': MESSAGE_LOAD_FAILED,
                'participants': [],
                'attendance': [],
                'stats': {}
            }

        return {
            'success': True,
            'participants': participants,
            'attendance': attendance,
            'stats': stats
        }

    def participant_rows(self, participants=None) -> List[Dict[str, str]]:
        if participants is None:
            participants = self.store.list_participants()
        return [
            {
                'Full Name': p.full_name,
                'Email': p.email,
                'Phone': p.phone or '',
                'Organization': p.organization or '',
                'Category': p.category or '',
                'Registered At': format_display_time(p.created_at),
            }
            for p in participants
        ]

    def attendance_rows(self, attendance=None) -> List[Dict[str, str]]:
        if attendance is None:
            attendance = self.store.list_attendance()
        return [
            {
                'Participant': entry.full_name,
                'Email': entry.email,
                'Organization': entry.organization or '',
                'Check-in Time': format_display_time(entry.record.check_in_at),
                'Check-out Time': format_display_time(entry.record.check_out_at),
            }
            for entry in attendance
        ]

    def export(self, collection: str, output_format: str) -> Dict[str, Any]:
        """
        Export a collection to a file held in memory.

        Args:
            collection (str): 'participants' or 'attendance'
            output_format (str): 'csv', 'xlsx' or 'pdf'

        Returns:
            Dict[str, Any]: success, filename, mimetype and content bytes,
            or success False with an error message
        """
        if collection not in COLLECTIONS:
            return {'success': False, 'error': f'Unknown collection: {collection}'}
        if output_format not in EXPORT_FORMATS:
            return {'success': False, 'error': f'Unsupported output format: {output_format}'}

        try:
            if collection == 'participants':
                rows, columns = self.participant_rows(), PARTICIPANT_COLUMNS
            else:
                rows, columns = self.attendance_rows(), ATTENDANCE_COLUMNS
        except StoreError as e:
            self.logger.error(f"Export of {collection} failed: {str(e)}")
            return {'success': False, 'error': MESSAGE_LOAD_FAILED}

        title = COLLECTIONS[collection]
        if output_format == 'csv':
            content = self._generate_csv(rows, columns)
        elif output_format == 'xlsx':
            content = self._generate_excel(rows, columns, title)
        else:
            content = self._generate_pdf(rows, columns, f"{self.event_name} - {title}")

        filename = f"{collection}.{output_format}"
        self.logger.info(f"Export generated: {filename} ({len(rows)} rows)")

        return {
            'success': True,
            'filename': filename,
            'mimetype': EXPORT_FORMATS[output_format],
            'content': content,
            'rows': len(rows)
        }

    def _generate_csv(self, rows: List[Dict[str, str]], columns: List[str]) -> bytes:
        df = pd.DataFrame(rows, columns=columns)
        # BOM so spreadsheet apps pick up UTF-8 names
        return df.to_csv(index=False).encode('utf-8-sig')

    def _generate_excel(self, rows: List[Dict[str, str]], columns: List[str], sheet_name: str) -> bytes:
        buffer = io.BytesIO()
        df = pd.DataFrame(rows, columns=columns)
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
        return buffer.getvalue()

    def _generate_pdf(self, rows: List[Dict[str, str]], columns: List[str], title: str) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), title=title)
        elements = []
        styles = getSampleStyleSheet()

        title_style = ParagraphStyle(
            'ExportTitle',
            parent=styles['Heading1'],
            fontSize=16,
            spaceAfter=12,
            alignment=1  # Center alignment
        )
        elements.append(Paragraph(title, title_style))
        elements.append(Paragraph(
            f"Generated on {datetime.now().strftime(DISPLAY_TIME_FORMAT)} - {len(rows)} records",
            styles['Normal']
        ))
        elements.append(Spacer(1, 12))

        cell_style = ParagraphStyle('ExportCell', parent=styles['Normal'], fontSize=8, leading=10)
        table_data = [['#'] + columns]
        for index, row in enumerate(rows, start=1):
            table_data.append([str(index)] + [Paragraph(_pdf_escape(row[col]), cell_style) for col in columns])

        data_table = Table(table_data, repeatRows=1)
        data_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.black)
        ]))
        elements.append(data_table)

        doc.build(elements)
        return buffer.getvalue()


def _pdf_escape(value: str) -> str:
    return (value or '').replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
