import pytest

from checkin.modules.errors import StoreError, ValidationError
from checkin.modules.qr_generator import DATA_URL_PREFIX, QRGenerator, decode_data_url
from checkin.modules.registration_manager import (
    MESSAGE_EMAIL_WARNING,
    MESSAGE_SAVE_FAILED,
    RegistrationManager,
)

from conftest import BASE_TIME, FakeNotifier

CATEGORIES = ['Physician', 'Nurse']


def build_manager(store, notifier=None, id_factory=None):
    return RegistrationManager(
        store,
        QRGenerator(),
        notifier or FakeNotifier(),
        categories=CATEGORIES,
        id_factory=id_factory,
        clock=lambda: BASE_TIME,
    )


class FailingStore:
    def create_participant(self, participant):
        raise StoreError("disk I/O error")


def test_register_ana_gomez(store):
    notifier = FakeNotifier()
    manager = build_manager(store, notifier, id_factory=lambda: 'ana-id')

    result = manager.register_participant({'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert result['success'] is True
    assert result['email_sent'] is True
    assert result['warning'] is None
    assert result['qr_image'].startswith(DATA_URL_PREFIX)
    assert decode_data_url(result['qr_image']).startswith(b'\x89PNG')

    stored = store.get_participant('ana-id')
    assert stored.full_name == 'Ana Gomez'
    assert stored.email == 'ana@example.com'
    assert stored.qr_code == result['qr_image']
    assert stored.created_at == BASE_TIME

    assert notifier.sent == [('ana@example.com', 'Ana Gomez', result['qr_image'])]


def test_generated_ids_are_unique(store):
    manager = build_manager(store)

    first = manager.register_participant({'full_name': 'Ana Gomez', 'email': 'ana@example.com'})
    second = manager.register_participant({'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert first['participant'].id != second['participant'].id
    assert store.count_participants() == 2


def test_fields_are_normalized(store):
    manager = build_manager(store)

    result = manager.register_participant({
        'full_name': '  Ana   Gomez ',
        'email': ' Ana@Example.COM ',
        'phone': ' +63 912 345 6789 ',
        'organization': '',
        'category': 'Nurse',
    })

    participant = result['participant']
    assert participant.full_name == 'Ana Gomez'
    assert participant.email == 'ana@example.com'
    assert participant.phone == '+63 912 345 6789'
    assert participant.organization is None
    assert participant.category == 'Nurse'


@pytest.mark.parametrize('form_data, field', [
    ({'full_name': 'Ana Gomez', 'email': 'not-an-email'}, 'email'),
    ({'full_name': '', 'email': 'ana@example.com'}, 'full_name'),
    ({'full_name': 'Ana Gomez', 'email': 'ana@example.com', 'phone': 'call me'}, 'phone'),
    ({'full_name': 'Ana Gomez', 'email': 'ana@example.com', 'category': 'Astronaut'}, 'category'),
])
def test_invalid_registration_writes_nothing(store, form_data, field):
    notifier = FakeNotifier()
    manager = build_manager(store, notifier)

    result = manager.register_participant(form_data)

    assert result['success'] is False
    assert field in result['errors']
    assert store.count_participants() == 0
    assert notifier.sent == []


def test_all_field_errors_reported_at_once(store):
    manager = build_manager(store)

    with pytest.raises(ValidationError) as excinfo:
        manager.validate_registration({'full_name': ' ', 'email': ''})

    assert set(excinfo.value.errors) == {'full_name', 'email'}


def test_email_failure_is_only_a_warning(store):
    manager = build_manager(store, FakeNotifier(fail=True), id_factory=lambda: 'ana-id')

    result = manager.register_participant({'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert result['success'] is True
    assert result['email_sent'] is False
    assert result['warning'] == MESSAGE_EMAIL_WARNING
    assert result['qr_image'].startswith(DATA_URL_PREFIX)
    assert store.get_participant('ana-id') is not None


def test_store_failure_aborts_registration():
    notifier = FakeNotifier()
    manager = build_manager(FailingStore(), notifier)

    result = manager.register_participant({'full_name': 'Ana Gomez', 'email': 'ana@example.com'})

    assert result['success'] is False
    assert result['error'] == MESSAGE_SAVE_FAILED
    assert notifier.sent == []
