import csv
import io

import pytest

from app import create_app
from config import validate_config, TestingConfig
from checkin.modules.report_generator import PARTICIPANT_COLUMNS, MESSAGE_LOAD_FAILED
from checkin.modules.errors import StoreError


def register_ana(client):
    response = client.post('/api/register', json={
        'full_name': 'Ana Gomez',
        'email': 'ana@example.com',
        'category': 'Nurse',
    })
    assert response.status_code == 201
    return response.get_json()


def test_index_redirects_to_registration(client):
    response = client.get('/')

    assert response.status_code == 302
    assert response.headers['Location'].endswith('/register')


def test_registration_form_renders(client):
    response = client.get('/register')

    assert response.status_code == 200
    assert b'Event Registration' in response.data
    assert b'Nursing Student' in response.data


def test_form_registration_shows_qr_code(client, notifier, app):
    response = client.post('/register', data={'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert response.status_code == 200
    assert b'Registration Complete!' in response.data
    assert b'data:image/png;base64,' in response.data
    assert b'event-qr-Ana-Gomez.png' in response.data
    assert len(notifier.sent) == 1
    assert app.extensions['checkin']['store'].count_participants() == 1


def test_form_registration_with_errors_writes_nothing(client, app):
    response = client.post('/register', data={'full_name': '', 'email': 'nope'})

    assert response.status_code == 200
    assert b'Full name is required' in response.data
    assert b'Invalid email address format' in response.data
    assert app.extensions['checkin']['store'].count_participants() == 0


def test_form_registration_email_failure_warns(client):
    # Email is disabled in the testing configuration
    response = client.post('/register', data={'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert b'Registration Complete!' in response.data
    assert b'there was a problem sending the email' in response.data


def test_api_registration(client, notifier):
    data = register_ana(client)

    assert data['success'] is True
    assert data['email_sent'] is True
    assert data['participant']['full_name'] == 'Ana Gomez'
    assert data['participant']['category'] == 'Nurse'
    assert data['qr_image'].startswith('data:image/png;base64,')


def test_api_registration_validation_error(client, app):
    response = client.post('/api/register', json={'full_name': 'Ana Gomez', 'email': 'bad'})

    assert response.status_code == 400
    assert 'email' in response.get_json()['errors']
    assert app.extensions['checkin']['store'].count_participants() == 0


def test_api_registration_requires_json(client):
    response = client.post('/api/register', data='not json', content_type='text/plain')

    assert response.status_code == 400


def test_api_registration_store_failure(client, app, monkeypatch):
    def fail(participant):
        raise StoreError("disk full")

    monkeypatch.setattr(app.extensions['checkin']['store'], 'create_participant', fail)

    response = client.post('/api/register', json={'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert response.status_code == 500
    assert response.get_json()['success'] is False


def test_qr_download(client, notifier):
    participant_id = register_ana(client)['participant']['id']

    response = client.get(f'/participants/{participant_id}/qr.png')

    assert response.status_code == 200
    assert response.mimetype == 'image/png'
    assert response.data.startswith(b'\x89PNG')
    assert 'event-qr-Ana-Gomez.png' in response.headers['Content-Disposition']


def test_qr_download_unknown_participant(client):
    assert client.get('/participants/missing/qr.png').status_code == 404


def test_scan_flow_over_http(client, notifier, app):
    participant_id = register_ana(client)['participant']['id']

    stopped = client.post('/api/scan', json={'payload': participant_id, 'station': 'door'}).get_json()
    assert stopped['status'] == 'ignored'

    start = client.post('/api/scanner/start', json={'station': 'door'}).get_json()
    assert start['state'] == 'active'

    result = client.post('/api/scan', json={'payload': participant_id, 'station': 'door'}).get_json()
    assert result['status'] == 'checked_in'
    assert result['title'] == 'Check-in Successful!'
    assert result['scanner']['display'] == 'success'

    store = app.extensions['checkin']['store']
    assert store.count_attendance() == 1

    status = client.get('/api/scanner/status?station=door').get_json()
    assert status['last_outcome']['status'] == 'checked_in'

    stop = client.post('/api/scanner/stop', json={'station': 'door'}).get_json()
    assert stop['state'] == 'idle'


def test_scan_invalid_code(client, app):
    client.post('/api/scanner/start', json={})

    result = client.post('/api/scan', json={'payload': 'not-a-participant'}).get_json()

    assert result['status'] == 'invalid_code'
    assert result['success'] is False
    assert app.extensions['checkin']['store'].count_attendance() == 0


def test_scan_requires_payload(client):
    response = client.post('/api/scan', json={'station': 'door'})

    assert response.status_code == 400


def test_stations_are_independent(client, notifier):
    participant_id = register_ana(client)['participant']['id']
    client.post('/api/scanner/start', json={'station': 'door'})
    client.post('/api/scanner/start', json={'station': 'hall'})

    client.post('/api/scan', json={'payload': participant_id, 'station': 'door'})
    door_status = client.get('/api/scanner/status?station=door').get_json()
    hall_status = client.get('/api/scanner/status?station=hall').get_json()

    assert door_status['last_outcome']['status'] == 'checked_in'
    assert hall_status['last_outcome'] is None


def test_status_and_stop_do_not_create_stations(client, app):
    for index in range(500):
        response = client.get(f'/api/scanner/status?station=s{index}')
        assert response.get_json()['state'] == 'idle'

    stopped = client.post('/api/scanner/stop', json={'station': 'ghost'})

    assert stopped.status_code == 200
    assert stopped.get_json()['state'] == 'idle'
    assert len(app.extensions['checkin']['scanners']) == 0


def test_unlisted_station_is_refused(tmp_path):
    app = create_app('testing', {
        'DATABASE_PATH': str(tmp_path / 'app.db'),
        'SCANNER_STATIONS': ['door'],
    })
    client = app.test_client()

    assert client.post('/api/scanner/start', json={'station': 'door'}).status_code == 200
    refused = client.post('/api/scanner/start', json={'station': 'hall'})
    assert refused.status_code == 404
    assert client.post('/api/scan', json={'payload': 'x', 'station': 'hall'}).status_code == 404
    assert client.get('/scanner').data.count(b'data-station="door"') == 1


def test_station_limit(tmp_path):
    app = create_app('testing', {
        'DATABASE_PATH': str(tmp_path / 'app.db'),
        'SCANNER_MAX_STATIONS': 2,
    })
    client = app.test_client()
    client.post('/api/scanner/start', json={'station': 'door'})
    client.post('/api/scanner/start', json={'station': 'hall'})

    refused = client.post('/api/scanner/start', json={'station': 'lobby'})
    assert refused.status_code == 503

    client.post('/api/scanner/stop', json={'station': 'hall'})
    assert client.post('/api/scanner/start', json={'station': 'lobby'}).status_code == 200
    assert len(app.extensions['checkin']['scanners']) == 2


def test_scanner_page(client):
    response = client.get('/scanner?station=door')

    assert response.status_code == 200
    assert b'data-station="door"' in response.data


def test_control_panel(client, notifier):
    register_ana(client)

    response = client.get('/control')

    assert response.status_code == 200
    assert b'Ana Gomez' in response.data
    assert b'Control Panel' in response.data


def test_control_panel_load_failure(client, app, monkeypatch):
    def fail():
        raise StoreError("database is locked")

    monkeypatch.setattr(app.extensions['checkin']['store'], 'list_participants', fail)

    response = client.get('/control')

    assert response.status_code == 200
    assert MESSAGE_LOAD_FAILED.encode() in response.data


@pytest.mark.parametrize('output_format, mimetype', [
    ('csv', 'text/csv'),
    ('xlsx', 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'),
    ('pdf', 'application/pdf'),
])
def test_control_exports(client, notifier, output_format, mimetype):
    register_ana(client)

    response = client.get(f'/control/export/participants.{output_format}')

    assert response.status_code == 200
    assert response.mimetype == mimetype
    assert f'participants.{output_format}' in response.headers['Content-Disposition']
    assert len(response.data) > 0


def test_csv_export_content(client, notifier):
    register_ana(client)

    response = client.get('/control/export/participants.csv')
    rows = list(csv.reader(io.StringIO(response.data.decode('utf-8-sig'))))

    assert rows[0] == PARTICIPANT_COLUMNS
    assert rows[1][:2] == ['Ana Gomez', 'ana@example.com']


def test_unknown_export_is_not_found(client):
    assert client.get('/control/export/rooms.csv').status_code == 404
    assert client.get('/control/export/participants.docx').status_code == 404


def test_validate_config():
    settings = {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}
    assert validate_config(settings) == []

    settings.update(ATTENDANCE_MODE='checkout', NOTIFICATIONS_EMAIL_ENABLED=True, MAIL_SERVER='')
    errors = validate_config(settings)

    assert any('ATTENDANCE_MODE' in error for error in errors)
    assert any('MAIL_SERVER' in error for error in errors)


def test_invalid_configuration_is_refused(tmp_path):
    with pytest.raises(RuntimeError):
        create_app('testing', {
            'DATABASE_PATH': str(tmp_path / 'app.db'),
            'ATTENDANCE_MODE': 'checkout',
        })


def test_checkin_mode_app(tmp_path):
    app = create_app('testing', {
        'DATABASE_PATH': str(tmp_path / 'app.db'),
        'ATTENDANCE_MODE': 'checkin',
    })

    assert app.extensions['checkin']['attendance'].mode == 'checkin'
