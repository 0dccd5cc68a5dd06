"""Middleware for tenant context and super-admin access."""
import hmac
from functools import wraps

from flask import current_app, g, request

from salonhub.database import get_session
from salonhub.exceptions import BusinessLogicError, NotFoundError, UnauthorizedError
from salonhub.models import Salon


def load_tenant_context():
    """
    Load the tenant of the request into g.

    The tenant comes from the X-Tenant-ID header. Sets g.tenant_id
    (None when the header is absent or not a number).
    """
    g.tenant_id = None
    raw = request.headers.get('X-Tenant-ID')
    if raw:
        try:
            g.tenant_id = int(raw)
        except ValueError:
            g.tenant_id = None


def require_tenant(f):
    """Decorator: require a known tenant in the request context."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise BusinessLogicError('X-Tenant-ID header is required')
        if get_session().get(Salon, g.tenant_id) is None:
            raise NotFoundError(f"Tenant {g.tenant_id} not found")
        return f(*args, **kwargs)
    return decorated_function


def require_super_admin(f):
    """Decorator: require the super-admin API token in X-Admin-Token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('SUPER_ADMIN_API_TOKEN')
        provided = request.headers.get('X-Admin-Token', '')
        if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
            raise UnauthorizedError('Super-admin access required')
        return f(*args, **kwargs)
    return decorated_function
