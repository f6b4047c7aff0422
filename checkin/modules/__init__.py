# Event Check-in - Modules Package
"""
Core business logic modules for the Event Check-in system.
"""

__version__ = "1.0.0"
__description__ = "Core modules for event registration and check-in"

# Module descriptions
MODULES = {
    'errors': 'Exception types shared by all modules',
    'database_manager': 'Database connections and schema management',
    'participant_store': 'Typed participant and attendance records',
    'qr_generator': 'QR code generation',
    'notification_system': 'QR code email delivery',
    'registration_manager': 'Attendee registration',
    'attendance_manager': 'Scan validation and attendance recording',
    'scanner': 'Scanner state machine and station registry',
    'camera': 'Background camera capture and QR decoding',
    'report_generator': 'Control panel data and exports'
}


def get_module_info():
    """Get information about available modules"""
    return MODULES
