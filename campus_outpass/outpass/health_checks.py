import logging
import os
import time

from django.conf import settings
from django.core.mail import get_connection
from django.db import connections
from django.db.utils import OperationalError

logger = logging.getLogger(__name__)


def check_database():
    try:
        db_conn = connections['default']
        start_time = time.time()
        with db_conn.cursor() as cursor:
            cursor.execute("SELECT 1")
        latency = (time.time() - start_time) * 1000  # ms
        return {'status': 'good', 'latency': f"{int(latency)}ms"}
    except OperationalError:
        logger.exception("Database health check failed")
        return {'status': 'error', 'latency': '-'}


def check_email():
    try:
        connection = get_connection(backend=settings.EMAIL_BACKEND, fail_silently=False)
        connection.open()
        connection.close()
        return {'status': 'good', 'details': 'Connected'}
    except Exception as e:
        logger.warning("Email health check failed: %s", e)
        return {'status': 'error', 'details': 'Connection Failed'}


def check_storage():
    media_root = str(settings.MEDIA_ROOT)
    if os.path.isdir(media_root) and os.access(media_root, os.W_OK):
        return {'status': 'good', 'details': 'Writable'}
    if not os.path.exists(media_root):
        return {'status': 'warning', 'details': 'Upload folder will be created on first upload'}
    return {'status': 'error', 'details': 'Upload folder is not writable'}


def get_server_stats():
    return {
        'version': settings.OUTPASS_VERSION,
        'environment': 'Production' if not settings.DEBUG else 'Development',
        'debug_mode': settings.DEBUG,
        'time_zone': settings.TIME_ZONE,
    }
