"""Main blueprint with health check and dashboard endpoints."""
from datetime import timedelta

from flask import Blueprint, g, jsonify, request
from sqlalchemy import text

from salonhub import database
from salonhub.exceptions import ValidationError
from salonhub.middleware import require_tenant
from salonhub.routing import Partition
from salonhub.services import analytics_service
from salonhub.services.cache_service import get_cache
from salonhub.utils.formatters import parse_datetime, utcnow

main_bp = Blueprint('main', __name__)

DEFAULT_DASHBOARD_DAYS = 30


@main_bp.route('/health')
def health():
    """
    Health check that runs a trivial query on each partition.

    Returns:
        200: Healthy (both partitions reachable)
        500: Unhealthy
    """
    partitions = {}
    healthy = True
    for partition in Partition:
        try:
            with database.engines[partition].connect() as conn:
                conn.execute(text('SELECT 1'))
            partitions[partition.value] = 'connected'
        except Exception as e:
            healthy = False
            partitions[partition.value] = f'error: {e}'

    cache = get_cache()
    return jsonify({
        'status': 'healthy' if healthy else 'unhealthy',
        'databases': partitions,
        'cache': 'connected' if cache is not None and cache.enabled else 'disabled',
    }), 200 if healthy else 500


@main_bp.route('/api/dashboard')
@require_tenant
def dashboard():
    """Salon dashboard for ?start=&end= (defaults to the last 30 days)."""
    end = parse_datetime(request.args.get('end')) or utcnow()
    start = parse_datetime(request.args.get('start')) or end - timedelta(days=DEFAULT_DASHBOARD_DAYS)
    if start >= end:
        raise ValidationError('start must be before end')

    data = analytics_service.get_dashboard(database.get_session(), g.tenant_id, start, end, cache=get_cache())
    return jsonify({'status': 'success', 'data': data})
