import pytest
import uuid
from datetime import date, datetime, time
from decimal import Decimal

from salonhub import create_app, database
from salonhub.models import Customer, Salon, Service, Staff, User
from salonhub.services.notification_service import RecordingNotifier

# Fixed future business day used by scheduling tests
DAY = date(2030, 1, 15)


def at(hour, minute=0, day=DAY):
    """Naive UTC datetime on the test business day."""
    return datetime.combine(day, time(hour, minute))


@pytest.fixture(scope='function')
def app(tmp_path):
    """Application with both partitions on their own SQLite file."""
    app = create_app('config.TestingConfig', {
        'PLATFORM_DATABASE_URI': f"sqlite:///{tmp_path / 'platform.db'}",
        'TENANT_DATABASE_URI': f"sqlite:///{tmp_path / 'tenant.db'}",
    }, notifier=RecordingNotifier())
    database.create_all()
    yield app
    database.get_session().remove()
    for engine in database.engines.values():
        engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def services(app):
    return app.extensions['salonhub']


@pytest.fixture(scope='function')
def notifier(services):
    return services.notifier


@pytest.fixture(scope='function')
def session(app):
    """Routed database session."""
    session = database.get_session()
    yield session
    session.rollback()


def make_salon(session, name='Glow Studio', **overrides):
    suffix = str(uuid.uuid4())[:8]
    values = dict(
        name=f'{name} {suffix}',
        slug=f'glow-{suffix}',
        status='active',
        subscription_status='trial',
        onboarding_completed=True,
        opens_at=time(9, 0),
        closes_at=time(18, 0),
        tax_rate=Decimal('0.18'),
    )
    values.update(overrides)
    salon = Salon(**values)
    session.add(salon)
    session.commit()
    return salon


def make_staff(session, salon, name='Asha', **overrides):
    values = dict(tenant_id=salon.id, name=name, role='stylist', active=True)
    values.update(overrides)
    staff = Staff(**values)
    session.add(staff)
    session.commit()
    return staff


@pytest.fixture(scope='function')
def salon(session):
    """Operational salon (tenant)."""
    return make_salon(session)


@pytest.fixture(scope='function')
def other_salon(session):
    """Second salon for isolation tests."""
    return make_salon(session, name='Other Spa')


@pytest.fixture(scope='function')
def staff(session, salon):
    return make_staff(session, salon)


@pytest.fixture(scope='function')
def staff2(session, salon):
    return make_staff(session, salon, name='Bilal')


@pytest.fixture(scope='function')
def other_staff(session, other_salon):
    return make_staff(session, other_salon, name='Chen')


@pytest.fixture(scope='function')
def customer(session, salon):
    suffix = str(uuid.uuid4())[:8]
    customer = Customer(
        tenant_id=salon.id,
        name='Priya Sharma',
        email=f'priya-{suffix}@test.com',
        phone=f'98{suffix[:6]}',
        wallet_balance=Decimal('0.00'),
        total_spent=Decimal('0.00'),
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def haircut(session, salon):
    """30 minute service."""
    service = Service(tenant_id=salon.id, name='Haircut', price=Decimal('500.00'), duration_minutes=30, active=True)
    session.add(service)
    session.commit()
    return service


@pytest.fixture(scope='function')
def coloring(session, salon):
    """60 minute service."""
    service = Service(tenant_id=salon.id, name='Coloring', price=Decimal('1200.00'), duration_minutes=60, active=True)
    session.add(service)
    session.commit()
    return service


@pytest.fixture(scope='function')
def owner(session, salon):
    """Salon admin account in the platform partition."""
    suffix = str(uuid.uuid4())[:8]
    user = User(email=f'owner-{suffix}@test.com', name='Owner', role='salon_admin', tenant_id=salon.id, active=True)
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def book(services, session, salon, staff, customer):
    """Book an appointment for the default staff member and customer."""
    def _book(start, duration=30, staff_member=None, **extra):
        data = {
            'staff_id': (staff_member or staff).id,
            'customer_id': customer.id,
            'scheduled_at': start.isoformat(),
            'duration_minutes': duration,
        }
        data.update(extra)
        return services.appointments.book_appointment(session, salon.id, data)
    return _book
