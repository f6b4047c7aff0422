"""
Registration Manager Module - Event Check-in

This module handles attendee registration. A registration validates the
submitted form, generates a fresh participant identifier, renders it into a
QR code, stores the participant, and emails the QR code to the attendee.

Only a failed database write aborts a registration. A failed email is
downgraded to a warning: the participant is stored and the QR code is still
returned so it can be shown on screen.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging
import re
import uuid

from checkin.modules.errors import NotificationError, StoreError, ValidationError
from checkin.modules.participant_store import Participant, utc_now

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?[0-9\s().-]{7,20}$')

MAX_NAME_LENGTH = 200
MAX_FIELD_LENGTH = 200

MESSAGE_SUCCESS = "Your QR code has been generated and sent to your email."
MESSAGE_EMAIL_WARNING = (
    "Registration completed, but there was a problem sending the email. "
    "Your QR code is shown on screen."
)
MESSAGE_SAVE_FAILED = "An error occurred while saving your registration. Please try again."


class RegistrationManager:
    """
    Registers attendees and issues their QR codes.
    """

    def __init__(self, participant_store, qr_generator, notification_system,
                 categories: Optional[List[str]] = None,
                 id_factory: Callable[[], str] = None,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize the registration manager.

        Args:
            participant_store: ParticipantStore instance
            qr_generator: QRGenerator instance
            notification_system: Object with a send_qr_email(email, full_name, data_url) method
            categories (List[str]): Accepted attendee categories; empty accepts none
            id_factory: Produces new participant identifiers
            clock: Returns the current UTC time
        """
        self.store = participant_store
        self.qr_generator = qr_generator
        self.notifier = notification_system
        self.categories = list(categories or [])
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def register_participant(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register a new participant.

        Args:
            form_data (Dict[str, Any]): Submitted fields (full_name, email, phone,
                organization, category)

        Returns:
            Dict[str, Any]: Registration result. On success it carries the
            participant, the QR data URL, whether the email was sent, and an
            optional warning. On failure it carries an error message and, for
            validation failures, per-field errors.
        """
        try:
            cleaned = self.validate_registration(form_data)
        except ValidationError as e:
            return {
                'success': False,
                'error': 'Please correct the highlighted fields.',
                'errors': e.errors
            }

        participant_id = self.id_factory()

        try:
            qr_result = self.qr_generator.generate_participant_qr_code(participant_id)
        except (ValueError, OSError) as e:
            self.logger.error(f"QR code generation failed for {participant_id}: {str(e)}")
            return {
                'success': False,
                'error': MESSAGE_SAVE_FAILED,
                'errors': {}
            }

        participant = Participant(
            id=participant_id,
            full_name=cleaned['full_name'],
            email=cleaned['email'],
            phone=cleaned['phone'],
            organization=cleaned['organization'],
            category=cleaned['category'],
            qr_code=qr_result['data_url'],
            created_at=self.clock(),
        )

        try:
            self.store.create_participant(participant)
        except StoreError as e:
            self.logger.error(f"Registration failed for {participant.email}: {str(e)}")
            return {
                'success': False,
                'error': MESSAGE_SAVE_FAILED,
                'errors': {}
            }

        self.logger.info(f"Participant registered: {participant.id} ({participant.email})")

        email_sent = True
        warning = None
        try:
            self.notifier.send_qr_email(participant.email, participant.full_name, participant.qr_code)
        except NotificationError as e:
            # Registration stands; the QR code is shown on screen instead
            self.logger.warning(f"QR code email not delivered for {participant.id}: {str(e)}")
            email_sent = False
            warning = MESSAGE_EMAIL_WARNING

        return {
            'success': True,
            'participant': participant,
            'qr_image': participant.qr_code,
            'email_sent': email_sent,
            'warning': warning,
            'message': MESSAGE_SUCCESS if email_sent else MESSAGE_EMAIL_WARNING,
            'errors': {}
        }

    def validate_registration(self, form_data: Dict[str, Any]) -> Dict[str, Optional[str]]:
        """
        Validate and normalize registration fields.

        Returns:
            Dict[str, Optional[str]]: Cleaned values; blank optional fields become None

        Raises:
            ValidationError: With one message per invalid field
        """
        def clean(name):
            value = form_data.get(name)
            if value is None:
                return ''
            return re.sub(r'\s+', ' ', str(value)).strip()

        errors = {}
        full_name = clean('full_name')
        email = clean('email').lower()
        phone = clean('phone')
        organization = clean('organization')
        category = clean('category')

        if not full_name:
            errors['full_name'] = 'Full name is required'
        elif len(full_name) > MAX_NAME_LENGTH:
            errors['full_name'] = f'Full name must be at most {MAX_NAME_LENGTH} characters'

        if not email:
            errors['email'] = 'Email is required'
        elif not EMAIL_PATTERN.match(email):
            errors['email'] = 'Invalid email address format'

        if phone and not PHONE_PATTERN.match(phone):
            errors['phone'] = 'Invalid phone number format'

        if len(organization) > MAX_FIELD_LENGTH:
            errors['organization'] = f'Organization must be at most {MAX_FIELD_LENGTH} characters'

        if category and category not in self.categories:
            errors['category'] = 'Please choose a category from the list'

        if errors:
            raise ValidationError(errors)

        return {
            'full_name': full_name,
            'email': email,
            'phone': phone or None,
            'organization': organization or None,
            'category': category or None,
        }
