import csv
import io
from datetime import timedelta

import pytest
from openpyxl import load_workbook

from checkin.modules.errors import StoreError
from checkin.modules.report_generator import (
    ATTENDANCE_COLUMNS,
    MESSAGE_LOAD_FAILED,
    PARTICIPANT_COLUMNS,
    ReportGenerator,
    format_display_time,
)

from conftest import BASE_TIME


class BrokenStore:
    def list_participants(self):
        raise StoreError("no such table: participants")

    def list_attendance(self):
        raise StoreError("no such table: attendance")


@pytest.fixture
def reports(store, make_participant):
    make_participant('p-1', organization='City Hospital', category='Nurse', phone='0912 345 6789')
    make_participant('p-2', full_name='Ben Cruz', email='ben@example.com', minutes=5)
    store.toggle_attendance('p-1', at=BASE_TIME + timedelta(hours=1))
    store.toggle_attendance('p-1', at=BASE_TIME + timedelta(hours=2))
    store.toggle_attendance('p-2', at=BASE_TIME + timedelta(hours=3))
    return ReportGenerator(store, event_name='Nursing Summit')


def read_csv(content):
    return list(csv.reader(io.StringIO(content.decode('utf-8-sig'))))


def test_dashboard_lists_and_counts(reports):
    data = reports.load_dashboard()

    assert data['success'] is True
    assert [p.id for p in data['participants']] == ['p-2', 'p-1']
    assert [e.full_name for e in data['attendance']] == ['Ben Cruz', 'Ana Gomez']
    assert data['stats'] == {
        'total_participants': 2,
        'total_attendance': 2,
        'checked_in_now': 1,
        'unique_attendees': 2,
    }


def test_dashboard_load_failure():
    data = ReportGenerator(BrokenStore()).load_dashboard()

    assert data['success'] is False
    assert data['error'] == MESSAGE_LOAD_FAILED
    assert data['participants'] == []
    assert data['attendance'] == []


def test_participants_csv(reports):
    result = reports.export('participants', 'csv')

    assert result['filename'] == 'participants.csv'
    assert result['mimetype'] == 'text/csv'
    rows = read_csv(result['content'])
    assert rows[0] == PARTICIPANT_COLUMNS
    assert rows[2] == ['Ana Gomez', 'ana@example.com', '0912 345 6789', 'City Hospital', 'Nurse',
                       format_display_time(BASE_TIME)]


def test_attendance_csv(reports):
    rows = read_csv(reports.export('attendance', 'csv')['content'])

    assert rows[0] == ATTENDANCE_COLUMNS
    assert rows[1][0] == 'Ben Cruz'
    assert rows[1][4] == ''
    assert rows[2][3] == format_display_time(BASE_TIME + timedelta(hours=1))
    assert rows[2][4] == format_display_time(BASE_TIME + timedelta(hours=2))


def test_excel_export_headers(reports):
    result = reports.export('attendance', 'xlsx')

    assert result['filename'] == 'attendance.xlsx'
    sheet = load_workbook(io.BytesIO(result['content'])).active
    header = [cell.value for cell in next(sheet.iter_rows(min_row=1, max_row=1))]
    assert header == ATTENDANCE_COLUMNS
    assert sheet.max_row == 3


def test_pdf_export(reports):
    result = reports.export('participants', 'pdf')

    assert result['filename'] == 'participants.pdf'
    assert result['mimetype'] == 'application/pdf'
    assert result['content'].startswith(b'%PDF')


def test_empty_exports_still_have_headers(store):
    reports = ReportGenerator(store)

    rows = read_csv(reports.export('participants', 'csv')['content'])

    assert rows == [PARTICIPANT_COLUMNS]
    assert reports.export('attendance', 'pdf')['content'].startswith(b'%PDF')


@pytest.mark.parametrize('collection, output_format', [
    ('rooms', 'csv'),
    ('participants', 'docx'),
])
def test_unknown_export_is_rejected(store, collection, output_format):
    result = ReportGenerator(store).export(collection, output_format)

    assert result['success'] is False


def test_export_load_failure():
    result = ReportGenerator(BrokenStore()).export('participants', 'csv')

    assert result == {'success': False, 'error': MESSAGE_LOAD_FAILED}


class CountingStore:
    def list_participants(self):
        return []

    def list_attendance(self):
        return []

    def count_participants(self):
        return 7

    def count_attendance(self):
        return 5

    def count_open_attendance(self):
        return 2

    def count_attendees(self):
        return 4


def test_dashboard_counts_come_from_the_store():
    data = ReportGenerator(CountingStore()).load_dashboard()

    assert data['stats'] == {
        'total_participants': 7,
        'total_attendance': 5,
        'checked_in_now': 2,
        'unique_attendees': 4,
    }
