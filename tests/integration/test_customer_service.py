"""Integration tests for customers, wallet and loyalty."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import at
from salonhub.exceptions import BusinessLogicError, NotFoundError, ValidationError
from salonhub.models import Loyalty, Review
from salonhub.services import customer_service


class TestCustomerRecords:

    def test_create_normalizes_contact(self, session, salon):
        customer = customer_service.create_customer(session, salon.id, {
            'name': ' Kavya ', 'email': ' Kavya@Mail.com ', 'phone': '9000000001'
        })

        assert customer.name == 'Kavya'
        assert customer.email == 'kavya@mail.com'
        assert customer.wallet_balance == Decimal('0.00')
        assert customer.loyalty_tier == 'Bronze'

    def test_duplicate_phone_rejected(self, session, salon):
        customer_service.create_customer(session, salon.id, {'name': 'A', 'phone': '9000000001'})

        with pytest.raises(BusinessLogicError):
            customer_service.create_customer(session, salon.id, {'name': 'B', 'phone': '9000000001'})

    def test_name_required(self, session, salon):
        with pytest.raises(ValidationError):
            customer_service.create_customer(session, salon.id, {'email': 'x@test.com'})

    def test_search(self, session, salon):
        customer_service.create_customer(session, salon.id, {'name': 'Kavya Rao'})
        customer_service.create_customer(session, salon.id, {'name': 'Arjun'})

        result = customer_service.list_customers(session, salon.id, search='kavya')

        assert [c.name for c in result['items']] == ['Kavya Rao']

    def test_update(self, session, salon, customer):
        updated = customer_service.update_customer(session, salon.id, customer.id, {'notes': 'Prefers mornings'})

        assert updated.notes == 'Prefers mornings'

    def test_delete_without_history(self, session, salon, customer):
        customer_service.delete_customer(session, salon.id, customer.id)

        with pytest.raises(NotFoundError):
            customer_service.get_customer(session, salon.id, customer.id)

    def test_delete_refused_with_appointments(self, session, salon, customer, book):
        book(at(10, 0))

        with pytest.raises(BusinessLogicError):
            customer_service.delete_customer(session, salon.id, customer.id)


class TestWallet:

    def test_credit_and_debit(self, session, salon, customer):
        credit = customer_service.credit_wallet(session, salon.id, customer.id, '500', 'Top up')
        debit = customer_service.debit_wallet(session, salon.id, customer.id, 120)

        assert credit.balance_after == Decimal('500.00')
        assert debit.balance_after == Decimal('380.00')
        assert customer.wallet_balance == Decimal('380.00')

        history = customer_service.get_wallet_history(session, salon.id, customer.id)
        assert [tx.type for tx in history['items']] == ['debit', 'credit']

    def test_insufficient_balance(self, session, salon, customer):
        customer_service.credit_wallet(session, salon.id, customer.id, 100)

        with pytest.raises(BusinessLogicError):
            customer_service.debit_wallet(session, salon.id, customer.id, 150)

        session.refresh(customer)
        assert customer.wallet_balance == Decimal('100.00')

    @pytest.mark.parametrize('amount', [0, -10, 'abc'])
    def test_invalid_amount(self, session, salon, customer, amount):
        with pytest.raises(ValidationError):
            customer_service.credit_wallet(session, salon.id, customer.id, amount)


class TestLoyalty:

    @pytest.mark.parametrize('spent,tier', [
        (0, 'Bronze'), (499.99, 'Bronze'), (500, 'Silver'), (999, 'Silver'), (1000, 'Gold'),
    ])
    def test_tier_for_spend(self, spent, tier):
        assert customer_service.tier_for_spend(spent) == tier

    @pytest.mark.parametrize('amount,points', [(0, 0), (9.99, 0), (10, 1), (1234, 123), (-50, 0)])
    def test_points_for_amount(self, amount, points):
        assert customer_service.points_for_amount(amount) == points

    def test_visit_promotes_tier(self, session, salon, customer):
        customer_service.record_visit(session, customer, 600)
        session.commit()

        assert customer.loyalty_tier == 'Silver'
        milestones = session.query(Loyalty).filter_by(customer_id=customer.id).all()
        assert [m.milestone for m in milestones] == ['Reached Silver tier']

    def test_redeem_points(self, session, salon, customer):
        customer_service.award_loyalty_points(session, customer, 1500, 'Invoice paid')
        session.commit()

        result = customer_service.redeem_loyalty_points(session, salon.id, customer.id, 100)

        assert result['credited'] == Decimal('100.00')
        assert customer.loyalty_points == 50
        assert customer.wallet_balance == Decimal('100.00')

    def test_redeem_more_than_available(self, session, salon, customer):
        with pytest.raises(BusinessLogicError):
            customer_service.redeem_loyalty_points(session, salon.id, customer.id, 10)

    def test_loyalty_status(self, session, salon, customer):
        customer_service.record_visit(session, customer, 600)
        session.commit()

        status = customer_service.get_loyalty_status(session, salon.id, customer.id)

        assert status['tier'] == 'Silver'
        assert status['next_tier'] == {'tier': 'Gold', 'spend_needed': Decimal('400.00')}

    def test_customer_analytics(self, session, salon, customer):
        customer_service.record_visit(session, customer, 1200)
        session.commit()

        analytics = customer_service.get_customer_analytics(session, salon.id)

        assert analytics['total_customers'] == 1
        assert analytics['tier_distribution'] == {'Gold': 1}


class TestReviews:

    def test_review_stored_for_customer(self, session, salon, customer, haircut):
        session.add(Review(tenant_id=salon.id, customer_id=customer.id, service_id=haircut.id, rating=5))
        session.commit()

        assert session.query(Review).filter_by(customer_id=customer.id).one().rating == 5

    def test_rating_out_of_range(self, session, salon, customer):
        session.add(Review(tenant_id=salon.id, customer_id=customer.id, rating=6))

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()
