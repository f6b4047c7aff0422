# Event Check-in - App Package
"""
Main application package for the Event Check-in system.
This package contains the templates, static files and all system modules.
"""

__version__ = "1.0.0"
__author__ = "Event Check-in Team"
__description__ = "A Flask-based event registration and QR code check-in system"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.participant_store import ParticipantStore
from .modules.qr_generator import QRGenerator
from .modules.notification_system import NotificationSystem
from .modules.registration_manager import RegistrationManager
from .modules.attendance_manager import AttendanceManager
from .modules.scanner import ScannerFlow, ScannerRegistry
from .modules.report_generator import ReportGenerator

__all__ = [
    'DatabaseManager',
    'ParticipantStore',
    'QRGenerator',
    'NotificationSystem',
    'RegistrationManager',
    'AttendanceManager',
    'ScannerFlow',
    'ScannerRegistry',
    'ReportGenerator'
]
