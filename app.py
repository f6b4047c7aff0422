"""
Event Check-in - Main Application

This module is the entry point of the event check-in system. It builds the
Flask application, wires the system components together and defines the
routes for the three parts of the system:

- Registration: attendees register, receive a QR code on screen and by email
- Scanner: QR codes are scanned at the door to check attendees in and out
- Control panel: read-only participant and attendance lists with exports

Run the web application with ``flask --app app run`` and a camera scanning
station with ``flask --app app scan-station``.
"""

from flask import (Flask, render_template, request, jsonify, redirect, url_for,
                   flash, send_file, abort, current_app)
import click
import io
import time
import logging

from config import get_config, validate_config
from checkin.modules.database_manager import DatabaseManager
from checkin.modules.participant_store import ParticipantStore
from checkin.modules.qr_generator import QRGenerator, decode_data_url, qr_download_filename
from checkin.modules.notification_system import NotificationSystem
from checkin.modules.registration_manager import RegistrationManager
from checkin.modules.attendance_manager import AttendanceManager, STATUS_BUSY
from checkin.modules.scanner import ScannerFlow, ScannerRegistry, idle_status
from checkin.modules.camera import CameraScanner
from checkin.modules.report_generator import ReportGenerator, format_display_time
from checkin.modules.errors import StoreError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)

DEFAULT_STATION = 'default'


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name (str): Configuration name ('development', 'testing', 'production')
        overrides (dict): Settings applied on top of the configuration class

    Returns:
        Flask: Configured application
    """
    # Initialize Flask application with correct template and static folders
    app = Flask(__name__,
                template_folder='checkin/templates',
                static_folder='checkin/static')

    get_config(config_name).init_app(app)
    if overrides:
        app.config.update(overrides)

    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    errors = validate_config(app.config)
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise RuntimeError("Invalid configuration: " + "; ".join(errors))

    init_components(app)
    register_routes(app)
    register_commands(app)

    logger.info(f"Event check-in application created ({app.config['ATTENDANCE_MODE']} mode)")
    return app


def init_components(app):
    """Initialize system components and attach them to the application."""
    db_manager = DatabaseManager(app.config['DATABASE_PATH'])
    participant_store = ParticipantStore(db_manager)
    qr_generator = QRGenerator.from_config(app.config)
    notification_system = NotificationSystem.from_config(app.config)
    attendance_manager = AttendanceManager.from_config(participant_store, app.config)

    app.extensions['checkin'] = {
        'db': db_manager,
        'store': participant_store,
        'qr': qr_generator,
        'notifier': notification_system,
        'registration': RegistrationManager(
            participant_store,
            qr_generator,
            notification_system,
            categories=app.config['REGISTRATION_CATEGORIES']
        ),
        'attendance': attendance_manager,
        'reports': ReportGenerator(participant_store, event_name=app.config['EVENT_NAME']),
        # Browser scanner pages run the camera client-side, so web flows have none
        'scanners': ScannerRegistry.from_config(
            lambda: ScannerFlow.from_config(attendance_manager, app.config), app.config
        ),
    }


def components():
    return current_app.extensions['checkin']


def default_station():
    stations = current_app.config.get('SCANNER_STATIONS')
    return stations[0] if stations else DEFAULT_STATION


def _station_from(data):
    station = str((data or {}).get('station') or request.args.get('station') or '').strip()
    return station or default_station()


def _station_unavailable(station):
    registry = components()['scanners']
    if not registry.is_allowed(station):
        return jsonify({'success': False, 'error': f"Unknown scanner station: {station}"}), 404
    return jsonify({'success': False, 'error': 'Too many active scanner stations'}), 503


def register_routes(app):

    app.add_template_filter(format_display_time, 'display_time')

    @app.context_processor
    def inject_event():
        return {'event_name': app.config['EVENT_NAME']}

    @app.route('/')
    def index():
        """Main landing page"""
        return redirect(url_for('register'))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    @app.route('/register', methods=['GET', 'POST'])
    def register():
        """Registration form and completion page"""
        categories = app.config['REGISTRATION_CATEGORIES']

        if request.method == 'POST':
            try:
                result = components()['registration'].register_participant(request.form.to_dict())
            except Exception as e:
                logger.error(f"Registration error: {str(e)}")
                flash('An error occurred during registration. Please try again.', 'error')
                return render_template('register.html', categories=categories,
                                       form=request.form, errors={})

            if not result['success']:
                flash(result['error'], 'error')
                return render_template('register.html', categories=categories,
                                       form=request.form, errors=result['errors'])

            if result['warning']:
                flash(result['warning'], 'warning')
            else:
                flash(result['message'], 'success')

            participant = result['participant']
            return render_template('registration_complete.html',
                                   participant=participant,
                                   qr_image=result['qr_image'],
                                   email_sent=result['email_sent'],
                                   download_name=qr_download_filename(participant.full_name))

        return render_template('register.html', categories=categories, form={}, errors={})

    @app.route('/api/register', methods=['POST'])
    def api_register():
        """JSON registration endpoint"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({
                'success': False,
                'error': 'Expected a JSON object',
                'errors': {}
            }), 400

        try:
            result = components()['registration'].register_participant(data)
        except Exception as e:
            logger.error(f"API registration error: {str(e)}")
            return jsonify({
                'success': False,
                'error': 'An error occurred during registration. Please try again.',
                'errors': {}
            }), 500

        if not result['success']:
            status_code = 400 if result['errors'] else 500
            return jsonify({
                'success': False,
                'error': result['error'],
                'errors': result['errors']
            }), status_code

        participant = result['participant']
        return jsonify({
            'success': True,
            'participant': participant.to_dict(),
            'qr_image': result['qr_image'],
            'qr_download_url': url_for('participant_qr', participant_id=participant.id),
            'email_sent': result['email_sent'],
            'warning': result['warning'],
            'message': result['message']
        }), 201

    @app.route('/participants/<participant_id>/qr.png')
    def participant_qr(participant_id):
        """Download a participant's QR code as PNG"""
        try:
            participant = components()['store'].get_participant(participant_id)
        except StoreError as e:
            logger.error(f"QR download failed for {participant_id}: {str(e)}")
            abort(500)

        if participant is None:
            abort(404)

        try:
            png_bytes = decode_data_url(participant.qr_code)
        except ValueError:
            # Stored image unreadable; the identifier is enough to render it again
            logger.warning(f"Stored QR image for {participant_id} is unreadable, regenerating")
            png_bytes = components()['qr'].generate_participant_qr_code(participant.id)['png_bytes']

        return send_file(
            io.BytesIO(png_bytes),
            mimetype='image/png',
            as_attachment=True,
            download_name=qr_download_filename(participant.full_name)
        )

    # ------------------------------------------------------------------
    # Scanner
    # ------------------------------------------------------------------
    @app.route('/scanner')
    def scanner():
        """QR code scanning interface"""
        return render_template('scanner.html',
                               station=request.args.get('station') or default_station(),
                               attendance_mode=app.config['ATTENDANCE_MODE'],
                               resume_delay=app.config['SCAN_RESUME_DELAY_SECONDS'],
                               display_seconds=app.config['SCAN_SUCCESS_DISPLAY_SECONDS'])

    @app.route('/api/scanner/start', methods=['POST'])
    def api_scanner_start():
        station = _station_from(request.get_json(silent=True))
        flow = components()['scanners'].get(station)
        if flow is None:
            return _station_unavailable(station)
        started = flow.start()
        return jsonify({'success': started, **flow.status()})

    @app.route('/api/scanner/stop', methods=['POST'])
    def api_scanner_stop():
        flow = components()['scanners'].find(_station_from(request.get_json(silent=True)))
        if flow is None:
            return jsonify({'success': True, **idle_status()})
        flow.stop()
        return jsonify({'success': True, **flow.status()})

    @app.route('/api/scanner/status')
    def api_scanner_status():
        flow = components()['scanners'].find(_station_from(None))
        status = flow.status() if flow is not None else idle_status()
        return jsonify({'success': True, **status})

    @app.route('/api/scan', methods=['POST'])
    def api_scan():
        """API endpoint for processing a decoded QR payload"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or 'payload' not in data:
            return jsonify({
                'success': False,
                'status': 'error',
                'message': 'No QR payload provided'
            }), 400

        station = _station_from(data)
        flow = components()['scanners'].get(station)
        if flow is None:
            return _station_unavailable(station)

        try:
            outcome = flow.handle_decoded(data.get('payload'))
        except Exception as e:
            logger.error(f"Scan processing error: {str(e)}")
            return jsonify({
                'success': False,
                'status': 'error',
                'message': 'An error occurred while processing the scan'
            }), 500

        return jsonify({**outcome.to_dict(), 'scanner': flow.status()})

    # ------------------------------------------------------------------
    # Control panel
    # ------------------------------------------------------------------
    @app.route('/control')
    def control_panel():
        """Read-only participants and attendance view"""
        data = components()['reports'].load_dashboard()
        if not data['success']:
            flash(data['error'], 'error')

        return render_template('control.html',
                               participants=data['participants'],
                               attendance=data['attendance'],
                               stats=data['stats'])

    @app.route('/control/export/<any(participants, attendance):collection>.<any(csv, xlsx, pdf):output_format>')
    def control_export(collection, output_format):
        """Export participants or attendance"""
        try:
            result = components()['reports'].export(collection, output_format)
        except Exception as e:
            logger.error(f"Export error: {str(e)}")
            result = {'success': False, 'error': 'An error occurred while generating the export.'}

        if not result['success']:
            flash(result['error'], 'error')
            return redirect(url_for('control_panel'))

        return send_file(
            io.BytesIO(result['content']),
            mimetype=result['mimetype'],
            as_attachment=True,
            download_name=result['filename']
        )

    @app.errorhandler(404)
    def not_found(error):
        if request.path.startswith('/api/'):
            return jsonify({'success': False, 'error': 'Not found'}), 404
        return render_template('error.html', code=404, message='Page not found.'), 404

    @app.errorhandler(500)
    def server_error(error):
        if request.path.startswith('/api/'):
            return jsonify({'success': False, 'error': 'Internal server error'}), 500
        return render_template('error.html', code=500,
                               message='Something went wrong. Please try again.'), 500


def register_commands(app):

    @app.cli.command('scan-station')
    @click.option('--camera', 'camera_index', type=int, default=None,
                  help='Camera index (defaults to CAMERA_INDEX).')
    @click.option('--station', default='camera', show_default=True,
                  help='Station name used in log messages.')
    def scan_station(camera_index, station):
        """Run a camera scanning station until interrupted."""
        if camera_index is None:
            camera_index = app.config['CAMERA_INDEX']

        def report(outcome):
            if outcome.status == STATUS_BUSY:
                return
            logger.info(f"[{station}] {outcome.status}: {outcome.message}")
            click.echo(f"{outcome.title} {outcome.message}")

        camera = CameraScanner(camera_index)
        flow = ScannerFlow.from_config(components()['attendance'], app.config,
                                       camera=camera, on_outcome=report)

        if not flow.start():
            raise click.ClickException(flow.camera_error or 'Unable to start the camera.')

        click.echo(f"Scanning station '{station}' on camera {camera_index}. Press Ctrl+C to stop.")
        try:
            while camera.is_running:
                time.sleep(0.5)
        except KeyboardInterrupt:
            click.echo('Stopping scanner...')
        finally:
            flow.stop()

        if flow.camera_error:
            raise click.ClickException(flow.camera_error)


if __name__ == '__main__':
    app = create_app()

    # Run the application
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=5000)
