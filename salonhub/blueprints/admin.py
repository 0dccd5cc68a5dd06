"""Super-admin JSON API for tenants and subscriptions."""
import logging

from flask import Blueprint, current_app, jsonify, request

from salonhub.database import get_session
from salonhub.exceptions import ValidationError
from salonhub.middleware import require_super_admin
from salonhub.services import super_admin_service
from salonhub.utils.pagination import clamp_page

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('A JSON object body is required')
    return data


def _tenant_dict(salon, subscription):
    data = salon.to_dict()
    data['subscription'] = subscription.to_dict() if subscription else None
    return data


@admin_bp.route('/tenants', methods=['GET'])
@require_super_admin
def list_tenants():
    page, per_page = clamp_page(request.args.get('page'), request.args.get('per_page'))
    result = super_admin_service.get_tenants_with_subscriptions(
        get_session(), status=request.args.get('status'), search=request.args.get('q'),
        page=page, per_page=per_page
    )
    return jsonify({
        'status': 'success',
        'data': [_tenant_dict(item['salon'], item['subscription']) for item in result['items']],
        'meta': result['meta'],
    })


@admin_bp.route('/tenants', methods=['POST'])
@require_super_admin
def create_tenant():
    result = super_admin_service.create_tenant(
        get_session(), _json_body(), trial_days=current_app.config.get('TRIAL_DAYS', 14)
    )
    data = _tenant_dict(result['salon'], result['subscription'])
    data['owner'] = result['owner'].to_dict()
    return jsonify({'status': 'success', 'data': data}), 201


@admin_bp.route('/tenants/<int:tenant_id>', methods=['GET'])
@require_super_admin
def tenant_detail(tenant_id):
    details = super_admin_service.get_tenant_details(get_session(), tenant_id)
    data = _tenant_dict(details['salon'], details['subscription'])
    data['owner'] = details['owner'].to_dict() if details['owner'] else None
    data['stats'] = {k: float(v) if k == 'revenue' else v for k, v in details['stats'].items()}
    return jsonify({'status': 'success', 'data': data})


@admin_bp.route('/tenants/<int:tenant_id>/status', methods=['PATCH'])
@require_super_admin
def update_tenant_status(tenant_id):
    data = _json_body()
    if not data.get('status'):
        raise ValidationError('status is required')
    salon = super_admin_service.update_tenant_status(
        get_session(), tenant_id, data['status'], data.get('reason')
    )
    return jsonify({'status': 'success', 'data': salon.to_dict()})


@admin_bp.route('/tenants/<int:tenant_id>/onboarding/complete', methods=['POST'])
@require_super_admin
def complete_onboarding(tenant_id):
    salon = super_admin_service.complete_onboarding(get_session(), tenant_id)
    return jsonify({'status': 'success', 'data': salon.to_dict()})


@admin_bp.route('/tenants/<int:tenant_id>/subscription/upgrade', methods=['POST'])
@require_super_admin
def upgrade_subscription(tenant_id):
    data = _json_body()
    try:
        months = int(data.get('months', 1))
    except (TypeError, ValueError):
        raise ValidationError('months must be an integer')
    subscription = super_admin_service.upgrade_subscription(get_session(), tenant_id, data.get('plan'), months)
    return jsonify({'status': 'success', 'data': subscription.to_dict()})


@admin_bp.route('/tenants/<int:tenant_id>/subscription/cancel', methods=['POST'])
@require_super_admin
def cancel_subscription(tenant_id):
    subscription = super_admin_service.cancel_subscription(get_session(), tenant_id)
    return jsonify({'status': 'success', 'data': subscription.to_dict()})
