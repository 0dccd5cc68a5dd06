"""User model - platform accounts for super admins, salon admins, staff and customers."""
import enum

from sqlalchemy import Column, String, Boolean, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class UserRole(str, enum.Enum):
    """Account roles."""
    SUPER_ADMIN = 'super_admin'
    SALON_ADMIN = 'salon_admin'
    STAFF = 'staff'
    CUSTOMER = 'customer'


ROLE_PERMISSIONS = {
    UserRole.SUPER_ADMIN.value: ['dashboard', 'analytics', 'tenants', 'subscriptions', 'system'],
    UserRole.SALON_ADMIN.value: [
        'dashboard', 'appointments', 'billing', 'staff',
        'customers', 'inventory', 'settings', 'analytics',
    ],
    UserRole.STAFF.value: ['appointments', 'customers', 'billing'],
    UserRole.CUSTOMER.value: ['profile', 'appointments', 'wallet'],
}


class User(model_base(EntityKind.USER)):
    """Platform user. Lives in the platform partition; tenant_id points at a Salon by value."""

    __tablename__ = 'users'

    id = Column(IdType, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)
    tenant_id = Column(IdType, nullable=True, index=True)  # Salon id, no FK across partitions
    active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    extra_permissions = Column(JSON, nullable=False, default=list)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('super_admin', 'salon_admin', 'staff', 'customer')",
            name='check_user_role'
        ),
    )

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def permissions(self):
        """Role permissions plus any explicitly granted ones."""
        granted = list(ROLE_PERMISSIONS.get(self.role, []))
        for permission in self.extra_permissions or []:
            if permission not in granted:
                granted.append(permission)
        return granted

    @property
    def is_super_admin(self):
        return self.role == UserRole.SUPER_ADMIN.value

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'phone': self.phone,
            'role': self.role,
            'tenant_id': self.tenant_id,
            'active': self.active,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
