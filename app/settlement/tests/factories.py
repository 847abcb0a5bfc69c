"""
Factory Boy factories for settlement test data.

Usage:
    from settlement.tests.factories import PaymentFactory, approved_payment

    payment = PaymentFactory()              # PENDING SERVICE payment of $9.02
    payment = approved_payment(payee=user)  # walked through approve()

FSM status fields are protected, so payments in a later state are built by
walking their transitions (see the helper functions at the bottom) rather
than by passing status=... to the factory.
"""

import uuid
from datetime import timedelta

import factory
from django.utils import timezone

from settlement.models import (
    PayeeAccount,
    Payment,
    PaymentBatch,
    PaymentRetry,
    Referral,
    Subscription,
)
from settlement.state_machines import BatchType, PaymentType, PayoutRailType


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = "auth.User"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class OperatorFactory(UserFactory):
    username = factory.Sequence(lambda n: f"operator{n}")
    is_staff = True


class PayeeAccountFactory(factory.django.DjangoModelFactory):
    """Payee with a linked Stripe account ready for transfers."""

    class Meta:
        model = PayeeAccount

    user = factory.SubFactory(UserFactory)
    stripe_account_id = factory.Sequence(lambda n: f"acct_test_{n}_{uuid.uuid4().hex[:8]}")
    payouts_enabled = True
    manual_handle = factory.Sequence(lambda n: f"$payee{n}")


class PaymentFactory(factory.django.DjangoModelFactory):
    """
    Factory for Payment instances.

    Default creates a PENDING SERVICE payment of $9.02.
    """

    class Meta:
        model = Payment

    payee = factory.SubFactory(UserFactory)
    payment_type = PaymentType.SERVICE
    service_id = factory.LazyFunction(uuid.uuid4)
    amount_cents = 902
    currency = "usd"
    metadata = factory.LazyFunction(dict)


class PaymentBatchFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = PaymentBatch

    name = factory.Sequence(lambda n: f"Payout batch {n}")
    batch_type = BatchType.EARNINGS


class SubscriptionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Subscription

    customer = factory.SubFactory(UserFactory)
    plan_name = "Weekly visits"
    amount_cents = 5500
    visits_per_period = 4
    start_date = factory.LazyFunction(timezone.now)


class ReferralFactory(factory.django.DjangoModelFactory):
    """PENDING referral; call active_referral() for an ACTIVE one."""

    class Meta:
        model = Referral

    referrer = factory.SubFactory(UserFactory)
    referred = factory.SubFactory(UserFactory)
    code = factory.Sequence(lambda n: f"REF{n:05d}")


class PaymentRetryFactory(factory.django.DjangoModelFactory):
    """SCHEDULED retry that is already due."""

    class Meta:
        model = PaymentRetry

    payment = factory.SubFactory(PaymentFactory)
    retry_count = 0
    next_retry_date = factory.LazyFunction(lambda: timezone.now() - timedelta(minutes=1))


# =============================================================================
# State Helpers
# =============================================================================


def get_fresh(model, pk):
    """
    Re-read a record from the database.

    django-fsm's protected FSMField refuses refresh_from_db(), so tests read
    a new instance to see the current state.
    """
    return model.objects.get(pk=pk)


def approved_payment(**kwargs) -> Payment:
    payment = PaymentFactory(**kwargs)
    payment.approve()
    payment.save()
    return payment


def processing_payment(rail: str = PayoutRailType.STRIPE, **kwargs) -> Payment:
    payment = approved_payment(**kwargs)
    payment.start_processing(rail=rail)
    payment.save()
    return payment


def failed_payment(
    code: str = "RAIL_UNAVAILABLE",
    reason: str = "Could not connect to Stripe",
    rail: str = PayoutRailType.STRIPE,
    **kwargs,
) -> Payment:
    payment = processing_payment(rail=rail, **kwargs)
    payment.fail(code=code, reason=reason, definitive=False)
    payment.save()
    return payment


def pending_manual_payment(rail: str = PayoutRailType.CASH_APP, **kwargs) -> Payment:
    payment = processing_payment(rail=rail, **kwargs)
    payment.await_manual_confirmation(details="Cash App payment awaiting operator confirmation")
    payment.save()
    return payment


def paid_payment(transaction_id: str | None = None, **kwargs) -> Payment:
    payment = processing_payment(**kwargs)
    payment.mark_paid(transaction_id=transaction_id or f"tr_{uuid.uuid4().hex[:12]}")
    payment.save()
    return payment


def active_referral(**kwargs) -> Referral:
    referral = ReferralFactory(**kwargs)
    referral.activate()
    referral.save()
    return referral
