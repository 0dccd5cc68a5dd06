"""Database configuration and initialization for the two storage partitions."""
import logging

from sqlalchemy import BigInteger, Integer, create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

from salonhub.routing import EntityKind, ModelRouter, Partition, RoutingSession, resolve_partition

logger = logging.getLogger(__name__)

# SQLite only auto-increments INTEGER primary keys
IdType = BigInteger().with_variant(Integer(), 'sqlite')

# One declarative base per partition
PlatformBase = declarative_base()
TenantBase = declarative_base()

PARTITION_BASES = {
    Partition.PLATFORM: PlatformBase,
    Partition.TENANT: TenantBase,
}

# Global session, engines and router
engines = {}
router = None
session_factory = None
db_session = None


def model_base(entity_kind: EntityKind):
    """Declarative base of the partition that owns an entity kind."""
    return PARTITION_BASES[resolve_partition(entity_kind)]


def _create_engine(uri, app):
    options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if not uri.startswith('sqlite'):
        options.update(pool_size=10, max_overflow=20)
    return create_engine(uri, **options)


def init_db(app):
    """Initialize both partition connections and the routed session."""
    global engines, router, session_factory, db_session

    # Import models so that every mapped class is registered on its base
    import salonhub.models  # noqa: F401

    engines = {
        Partition.PLATFORM: _create_engine(app.config['PLATFORM_DATABASE_URI'], app),
        Partition.TENANT: _create_engine(app.config['TENANT_DATABASE_URI'], app),
    }

    router = ModelRouter(engines, bases=PARTITION_BASES)
    router.bind_all(PlatformBase, TenantBase)

    unbound = router.unregistered_kinds()
    if unbound:
        logger.warning(f"[DB] Entity kinds without a model: {', '.join(unbound)}")

    session_factory = sessionmaker(
        class_=RoutingSession,
        router=router,
        autoflush=False,
        expire_on_commit=False,
    )
    db_session = scoped_session(session_factory)

    PlatformBase.query = db_session.query_property()
    TenantBase.query = db_session.query_property()

    app.extensions['model_router'] = router

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()

    logger.info("[DB] Platform and tenant partitions initialized")


def create_all():
    """Create the tables of each partition on its own engine."""
    for partition, base in PARTITION_BASES.items():
        base.metadata.create_all(engines[partition])


def drop_all():
    for partition, base in PARTITION_BASES.items():
        base.metadata.drop_all(engines[partition])


def get_session():
    """Get database session."""
    return db_session


def new_session():
    """Open an independent session, outside the request-scoped one."""
    return session_factory()
