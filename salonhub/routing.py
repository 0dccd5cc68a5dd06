"""
Tenant-aware model routing.

Every entity kind lives in exactly one of two storage partitions:
the platform partition (super-admin data shared by all salons) or the
tenant partition (salon-scoped data). This module owns the classification
table and the router that hands out the engine for each kind.
"""
import enum
import logging
from typing import Dict, List, NamedTuple, Optional, Union

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class Partition(enum.Enum):
    """Logical storage partitions."""
    PLATFORM = 'platform'
    TENANT = 'tenant'


class EntityKind(str, enum.Enum):
    """Every entity kind the application persists."""
    # Platform
    USER = 'User'
    SUBSCRIPTION = 'Subscription'
    NOTIFICATION = 'Notification'
    # Tenant
    SALON = 'Salon'
    STAFF = 'Staff'
    CUSTOMER = 'Customer'
    APPOINTMENT = 'Appointment'
    SERVICE = 'Service'
    INVOICE = 'Invoice'
    INVENTORY = 'Inventory'
    REVIEW = 'Review'
    LOYALTY = 'Loyalty'
    WALLET_TRANSACTION = 'WalletTransaction'


PARTITION_MAP: Dict[EntityKind, Partition] = {
    EntityKind.USER: Partition.PLATFORM,
    EntityKind.SUBSCRIPTION: Partition.PLATFORM,
    EntityKind.NOTIFICATION: Partition.PLATFORM,
    EntityKind.SALON: Partition.TENANT,
    EntityKind.STAFF: Partition.TENANT,
    EntityKind.CUSTOMER: Partition.TENANT,
    EntityKind.APPOINTMENT: Partition.TENANT,
    EntityKind.SERVICE: Partition.TENANT,
    EntityKind.INVOICE: Partition.TENANT,
    EntityKind.INVENTORY: Partition.TENANT,
    EntityKind.REVIEW: Partition.TENANT,
    EntityKind.LOYALTY: Partition.TENANT,
    EntityKind.WALLET_TRANSACTION: Partition.TENANT,
}

DEFAULT_PARTITION = Partition.TENANT

# Fail at import time if a kind is added to the enum but not classified
_unclassified = set(EntityKind) - set(PARTITION_MAP)
if _unclassified:
    raise RuntimeError(f"Entity kinds without a partition: {sorted(k.value for k in _unclassified)}")


def _kind_name(entity_kind: Union[EntityKind, str]) -> str:
    if isinstance(entity_kind, EntityKind):
        return entity_kind.value
    return str(entity_kind)


def resolve_partition(entity_kind: Union[EntityKind, str]) -> Partition:
    """
    Return the partition that owns an entity kind.

    Unknown kinds fall back to the tenant partition. The fallback is logged
    so that a model added without a classification entry shows up in logs.
    """
    name = _kind_name(entity_kind)
    try:
        kind = EntityKind(name)
    except ValueError:
        logger.warning(f"[ROUTING] Unclassified entity kind '{name}', defaulting to {DEFAULT_PARTITION.value}")
        return DEFAULT_PARTITION
    return PARTITION_MAP[kind]


class BoundModel(NamedTuple):
    """A model registered against the engine of its partition."""
    kind: str
    model: type
    partition: Partition
    engine: Engine


class ModelRouter:
    """
    Maps entity kinds to partition engines.

    Built once per application with one engine per partition.
    """

    def __init__(self, engines: Dict[Partition, Engine], bases: Optional[Dict[Partition, type]] = None):
        missing = [p.value for p in Partition if p not in engines]
        if missing:
            raise ValueError(f"Missing engine for partition(s): {', '.join(missing)}")
        self.engines = dict(engines)
        self.bases = dict(bases or {})
        self._bound: Dict[str, BoundModel] = {}

    def get_engine(self, entity_kind: Union[EntityKind, str]) -> Engine:
        """Engine owning the given entity kind."""
        return self.engines[resolve_partition(entity_kind)]

    def get_partition_engine(self, partition: Partition) -> Engine:
        return self.engines[partition]

    def bind_model(self, entity_kind: Union[EntityKind, str], model: type) -> BoundModel:
        """
        Register a model under an entity kind and return its handle.

        Binding the same kind again returns the existing handle. A model
        declared on the other partition's base is rejected.
        """
        name = _kind_name(entity_kind)
        existing = self._bound.get(name)
        if existing is not None:
            return existing

        partition = self._check_base(name, model)
        bound = BoundModel(kind=name, model=model, partition=partition, engine=self.engines[partition])
        self._bound[name] = bound
        logger.debug(f"[ROUTING] {name} -> {partition.value}")
        return bound

    def _check_base(self, kind: str, model: type) -> Partition:
        partition = resolve_partition(kind)
        expected_base = self.bases.get(partition)
        if expected_base is not None and not issubclass(model, expected_base):
            raise RuntimeError(
                f"Model {model.__name__} is declared outside the {partition.value} partition "
                f"but entity kind '{kind}' belongs to it"
            )
        return partition

    def bind_all(self, *bases) -> List[BoundModel]:
        """Bind every mapped class declared on the given declarative bases."""
        bound = []
        for base in bases:
            for mapper in sorted(base.registry.mappers, key=lambda m: m.class_.__name__):
                model = mapper.class_
                kind = _kind_name(getattr(model, '__entity_kind__', model.__name__))
                if kind != model.__name__:
                    # Child rows of an aggregate (invoice payments) follow their parent kind
                    self._check_base(kind, model)
                    continue
                bound.append(self.bind_model(kind, model))
        return bound

    def get_bound(self, entity_kind: Union[EntityKind, str]) -> Optional[BoundModel]:
        return self._bound.get(_kind_name(entity_kind))

    def engine_for_model(self, model: type) -> Engine:
        """Engine for a mapped class, using its registration when present."""
        kind = _kind_name(getattr(model, '__entity_kind__', model.__name__))
        bound = self._bound.get(kind)
        if bound is not None:
            return bound.engine
        return self.get_engine(kind)

    def unregistered_kinds(self) -> List[str]:
        """Known entity kinds that have no bound model yet."""
        return [kind.value for kind in EntityKind if kind.value not in self._bound]


class RoutingSession(Session):
    """Session that picks the partition engine for every mapped class it touches."""

    def __init__(self, router: Optional[ModelRouter] = None, **kwargs):
        super().__init__(**kwargs)
        self.router = router

    def get_bind(self, mapper=None, clause=None, **kwargs):
        if self.router is None:
            return super().get_bind(mapper=mapper, clause=clause, **kwargs)
        if mapper is not None:
            return self.router.engine_for_model(getattr(mapper, 'class_', mapper))
        # Textual statements without a mapper run against the tenant partition
        return self.router.get_partition_engine(DEFAULT_PARTITION)
