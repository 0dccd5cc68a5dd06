"""
Unit tests for the tenant-aware model router.
"""

import logging

import pytest
from sqlalchemy import create_engine

from salonhub.database import PARTITION_BASES, PlatformBase, TenantBase
from salonhub.models import Appointment, InvoicePayment, Notification, Salon, Subscription, User
from salonhub.routing import (
    EntityKind, ModelRouter, PARTITION_MAP, Partition, RoutingSession, resolve_partition
)

PLATFORM_KINDS = ['User', 'Subscription', 'Notification']
TENANT_KINDS = [
    'Salon', 'Staff', 'Customer', 'Appointment', 'Service',
    'Invoice', 'Inventory', 'Review', 'Loyalty', 'WalletTransaction',
]


@pytest.fixture
def engines():
    engines = {
        Partition.PLATFORM: create_engine('sqlite://'),
        Partition.TENANT: create_engine('sqlite://'),
    }
    yield engines
    for engine in engines.values():
        engine.dispose()


@pytest.fixture
def router(engines):
    return ModelRouter(engines, bases=PARTITION_BASES)


class TestResolvePartition:
    """Tests for entity kind classification."""

    @pytest.mark.parametrize('kind', PLATFORM_KINDS)
    def test_platform_kinds(self, kind):
        assert resolve_partition(kind) is Partition.PLATFORM

    @pytest.mark.parametrize('kind', TENANT_KINDS)
    def test_tenant_kinds(self, kind):
        assert resolve_partition(kind) is Partition.TENANT

    def test_accepts_enum_members(self):
        assert resolve_partition(EntityKind.USER) is Partition.PLATFORM
        assert resolve_partition(EntityKind.APPOINTMENT) is Partition.TENANT

    def test_unknown_kind_defaults_to_tenant(self, caplog):
        """Unlisted kinds never raise; the fallback is logged."""
        with caplog.at_level(logging.WARNING, logger='salonhub.routing'):
            assert resolve_partition('GiftCard') is Partition.TENANT
        assert 'GiftCard' in caplog.text

    def test_every_kind_is_classified(self):
        assert set(PARTITION_MAP) == set(EntityKind)
        assert sorted(k.value for k, p in PARTITION_MAP.items() if p is Partition.PLATFORM) == sorted(PLATFORM_KINDS)


class TestModelRouter:
    """Tests for ModelRouter binding and engine lookup."""

    def test_requires_engine_per_partition(self, engines):
        with pytest.raises(ValueError):
            ModelRouter({Partition.TENANT: engines[Partition.TENANT]})

    def test_get_engine(self, router, engines):
        assert router.get_engine('User') is engines[Partition.PLATFORM]
        assert router.get_engine(EntityKind.STAFF) is engines[Partition.TENANT]
        assert router.get_engine('Unknown') is engines[Partition.TENANT]

    def test_bind_model_returns_handle(self, router, engines):
        bound = router.bind_model(EntityKind.APPOINTMENT, Appointment)

        assert bound.kind == 'Appointment'
        assert bound.model is Appointment
        assert bound.partition is Partition.TENANT
        assert bound.engine is engines[Partition.TENANT]

    def test_bind_model_is_idempotent(self, router):
        """Binding the same kind twice returns the same handle."""
        first = router.bind_model('User', User)
        second = router.bind_model('User', User)

        assert first is second

    def test_bind_model_rejects_wrong_partition(self, router):
        """A platform model cannot be registered under a tenant kind."""
        with pytest.raises(RuntimeError):
            router.bind_model('Appointment', User)
        with pytest.raises(RuntimeError):
            router.bind_model('Subscription', Salon)

    def test_bind_all_registers_every_kind(self, router):
        router.bind_all(PlatformBase, TenantBase)

        assert router.unregistered_kinds() == []
        assert router.get_bound('Notification').model is Notification

    def test_unregistered_kinds(self, router):
        router.bind_model('Subscription', Subscription)

        missing = router.unregistered_kinds()
        assert 'Subscription' not in missing
        assert 'User' in missing

    def test_aggregate_children_follow_parent(self, router, engines):
        """Invoice payments are stored with their invoice."""
        router.bind_all(PlatformBase, TenantBase)

        assert router.get_bound('Invoice').model.__name__ == 'Invoice'
        assert router.engine_for_model(InvoicePayment) is engines[Partition.TENANT]


class TestRoutingSession:
    """Tests for per-mapper engine selection."""

    def test_get_bind_uses_model_partition(self, router, engines):
        router.bind_all(PlatformBase, TenantBase)
        session = RoutingSession(router=router)
        try:
            assert session.get_bind(mapper=User.__mapper__) is engines[Partition.PLATFORM]
            assert session.get_bind(mapper=Appointment.__mapper__) is engines[Partition.TENANT]
            assert session.get_bind() is engines[Partition.TENANT]
        finally:
            session.close()
