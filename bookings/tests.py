"""
Tests for the bookings app.
Tests cover: Queue positions, Booking creation fallback, Cancellation and
promotion, Payment hand-off, Retry on contention, Booking API, Concurrency.
"""
import threading
from decimal import Decimal
from datetime import time
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import connection, transaction, IntegrityError, OperationalError
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from bookings.models import Booking, Payment, QueueEntry, RACEntry, WaitlistEntry, generate_pnr
from bookings.payments import PaymentOutcome, RecordingPaymentGateway
from bookings.queues import RACQueue, WaitlistQueue
from bookings.services import ReservationCoordinator
from trains.models import Train, Route, Compartment, Seat
from utils.exceptions import ConcurrencyConflict, InvalidInput, PersistenceFailure, QueueCapacityExceeded

User = get_user_model()


def engine_settings(**overrides):
    return dict(settings.RESERVATION_ENGINE, **overrides)


def make_scope(berths=4, train_number='12951'):
    train = Train.objects.create(train_number=train_number, train_name='Test Express')
    Compartment.objects.create(train=train, compartment_name='S1', berth_count=berths)
    route = Route.objects.create(
        train=train,
        source_station='Delhi',
        destination_station='Mumbai',
        departure_time=time(16, 55),
        arrival_time=time(8, 35),
        price=Decimal('500.00'),
    )
    Seat.objects.create_layout(route)
    return train, route


def active_positions(model, route):
    return list(
        model.objects.filter(route=route, status=QueueEntry.ACTIVE)
        .order_by('position')
        .values_list('position', flat=True)
    )


class DecliningGateway(RecordingPaymentGateway):

    def charge(self, booking, amount):
        return PaymentOutcome(False, '', 'Card declined')


class ExplodingGateway(RecordingPaymentGateway):

    def __init__(self, exc):
        self.exc = exc
        self.calls = 0

    def charge(self, booking, amount):
        self.calls += 1
        raise self.exc


class FlakyGateway(RecordingPaymentGateway):
    """Raises OperationalError on the first `failures` charges."""

    def __init__(self, failures=1):
        self.failures = failures
        self.calls = 0

    def charge(self, booking, amount):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError('database is locked')
        return super().charge(booking, amount)


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class PNRGenerationTests(TestCase):
    """Test PNR generation utility."""

    def test_pnr_length(self):
        """Test PNR is 10 characters."""
        self.assertEqual(len(generate_pnr()), 10)

    def test_pnr_alphanumeric(self):
        """Test PNR contains only alphanumeric characters."""
        self.assertTrue(generate_pnr().isalnum())


class BookingModelTests(TestCase):
    """Test Booking model constraints."""

    def setUp(self):
        self.user = User.objects.create_user(email='test@example.com', password='test123', name='Test User')
        self.train, self.route = make_scope(berths=2)
        self.seat = self.route.seats.first()

    def _confirmed(self):
        return Booking.objects.create(
            user=self.user, train=self.train, route=self.route, seat=self.seat,
            passenger_name='Asha', passenger_age=40, status=Booking.CONFIRMED,
        )

    def test_pnr_assigned_on_create(self):
        booking = self._confirmed()

        self.assertEqual(len(booking.pnr), 10)
        self.assertIn(booking.pnr, str(booking))

    def test_one_confirmed_booking_per_seat(self):
        """The database refuses a second Confirmed booking on the same seat."""
        self._confirmed()

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self._confirmed()

    def test_cancelled_bookings_do_not_block_seat(self):
        first = self._confirmed()
        first.status = Booking.CANCELLED
        first.save()

        second = self._confirmed()

        self.assertEqual(Booking.objects.filter(seat=self.seat).count(), 2)
        self.assertEqual(second.status, Booking.CONFIRMED)


# =============================================================================
# UNIT TESTS - RAC and waitlist queues
# =============================================================================

class PositionQueueTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='q@example.com', password='x', name='Queue User')
        self.train, self.route = make_scope()
        self.rac = RACQueue()
        self.waitlist = WaitlistQueue()

    def _fill(self, queue, n):
        return [queue.admit(self.user.id, self.train.id, self.route.id) for _ in range(n)]

    def test_admit_appends_dense_positions(self):
        entries = self._fill(self.rac, 3)

        self.assertEqual([e.position for e in entries], [1, 2, 3])
        self.assertEqual(self.rac.count(self.train.id, self.route.id), 3)

    def test_rac_refuses_admission_at_capacity(self):
        self._fill(self.rac, 10)

        with self.assertRaises(QueueCapacityExceeded):
            self.rac.admit(self.user.id, self.train.id, self.route.id)
        self.assertEqual(self.rac.count(self.train.id, self.route.id), 10)
        self.assertFalse(self.rac.has_capacity(self.train.id, self.route.id))

    @override_settings(RESERVATION_ENGINE=engine_settings(RAC_CAPACITY=2))
    def test_rac_capacity_comes_from_settings(self):
        self._fill(self.rac, 2)

        with self.assertRaises(QueueCapacityExceeded):
            self.rac.admit(self.user.id, self.train.id, self.route.id)

    def test_waitlist_is_unbounded(self):
        entries = self._fill(self.waitlist, 25)

        self.assertEqual(entries[-1].position, 25)
        self.assertIsNone(self.waitlist.get_capacity())

    def test_promote_head_closes_gap(self):
        """Promoting the head of 1..5 leaves the others at 1..4 in arrival order."""
        entries = self._fill(self.rac, 5)

        head = self.rac.promote_head(self.train.id, self.route.id)

        self.assertEqual(head.id, entries[0].id)
        self.assertEqual(head.status, QueueEntry.PROMOTED)
        self.assertIsNotNone(head.status_changed_at)
        self.assertEqual(active_positions(RACEntry, self.route), [1, 2, 3, 4])
        self.assertEqual(self.rac.position_of(entries[1].id), 1)
        self.assertEqual(self.rac.position_of(entries[4].id), 4)

    def test_promote_head_on_empty_queue(self):
        self.assertIsNone(self.rac.promote_head(self.train.id, self.route.id))

    def test_withdraw_middle_entry(self):
        entries = self._fill(self.waitlist, 3)

        self.assertTrue(self.waitlist.withdraw(entries[1]))

        self.assertEqual(active_positions(WaitlistEntry, self.route), [1, 2])
        self.assertEqual(self.waitlist.position_of(entries[2].id), 2)
        self.assertIsNone(self.waitlist.position_of(entries[1].id))
        self.assertFalse(self.waitlist.withdraw(entries[1]))

    def test_entries_lists_active_before_closed(self):
        entries = self._fill(self.rac, 3)
        self.rac.promote_head(self.train.id, self.route.id)

        listed = self.rac.entries(self.train.id, self.route.id)

        self.assertEqual([e.id for e in listed], [entries[1].id, entries[2].id, entries[0].id])
        self.assertEqual(len(self.rac.entries(self.train.id, self.route.id, active_only=True)), 2)

    def test_queues_are_scoped_per_route(self):
        _, other_route = make_scope(train_number='22222')
        self._fill(self.rac, 2)

        entry = self.rac.admit(self.user.id, other_route.train_id, other_route.id)

        self.assertEqual(entry.position, 1)

    def test_admit_rejects_mismatched_train_and_route(self):
        other_train, _ = make_scope(train_number='22222')

        with self.assertRaises(InvalidInput):
            self.rac.admit(self.user.id, other_train.id, self.route.id)


# =============================================================================
# UNIT TESTS - Reservation coordinator: creation
# =============================================================================

@override_settings(MONGODB_ENABLED=False)
class CreateBookingTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='p@example.com', password='x', name='Passenger')
        self.train, self.route = make_scope(berths=4)
        self.s1 = self.route.seats.get(seat_number='S1-1')
        self.coordinator = ReservationCoordinator()

    def book(self, seat_id=None, name='Ravi Kumar', age=34):
        return self.coordinator.create_booking(self.user.id, self.train.id, self.route.id, seat_id, name, age)

    def test_free_seat_is_confirmed(self):
        """A free seat is allocated and the booking confirmed."""
        result = self.book(self.s1.id)

        self.assertTrue(result.success)
        self.assertEqual(result.status, Booking.CONFIRMED)
        self.assertEqual(result.message, 'Booking confirmed successfully')
        self.s1.refresh_from_db()
        self.assertFalse(self.s1.is_available)
        booking = Booking.objects.get(id=result.booking_id)
        self.assertEqual(booking.seat_id, self.s1.id)
        self.assertIsNotNone(booking.confirmed_at)

    def test_confirmation_records_payment(self):
        result = self.book(self.s1.id)

        payment = Payment.objects.get(booking_id=result.booking_id)
        self.assertEqual(payment.amount, Decimal('500.00'))
        self.assertEqual(payment.status, Payment.SUCCESS)
        self.assertEqual(result.payment_status, Payment.SUCCESS)

    def test_taken_seat_falls_back_to_rac(self):
        """With the seat taken and three RAC entries, the request gets RAC position 4."""
        self.book(self.s1.id)
        for _ in range(3):
            self.book()

        result = self.book(self.s1.id)

        self.assertEqual(result.status, Booking.RAC)
        self.assertEqual(result.position, 4)
        self.assertEqual(result.message, 'Added to RAC. Position: 4')
        self.assertIsNone(Booking.objects.get(id=result.booking_id).seat_id)

    def test_full_rac_falls_back_to_waitlist(self):
        """With RAC at capacity the request opens the waitlist at position 1."""
        for _ in range(10):
            self.book()

        result = self.book()

        self.assertEqual(result.status, Booking.WAITLISTED)
        self.assertEqual(result.position, 1)
        self.assertEqual(result.message, 'Added to Waitlist. Position: 1')

    def test_rac_never_exceeds_capacity(self):
        for _ in range(15):
            self.book()

        self.assertEqual(RACQueue().count(self.train.id, self.route.id), 10)
        self.assertEqual(active_positions(RACEntry, self.route), list(range(1, 11)))
        self.assertEqual(active_positions(WaitlistEntry, self.route), list(range(1, 6)))

    def test_no_seat_requested_goes_to_rac_even_with_free_seats(self):
        result = self.book()

        self.assertEqual(result.status, Booking.RAC)
        self.assertEqual(Seat.objects.filter(route=self.route, is_available=True).count(), 4)

    def test_unknown_seat_falls_back_to_rac(self):
        result = self.book(seat_id=999999)

        self.assertEqual(result.status, Booking.RAC)

    def test_queued_booking_is_mirrored_by_entry(self):
        result = self.book()

        entry = RACEntry.objects.get(booking_id=result.booking_id)
        self.assertEqual(entry.position, result.position)
        self.assertEqual(entry.user_id, self.user.id)

    def test_seat_from_other_route_rejected(self):
        _, other_route = make_scope(train_number='22222')
        foreign = other_route.seats.first()

        with self.assertRaises(InvalidInput):
            self.book(foreign.id)
        foreign.refresh_from_db()
        self.assertTrue(foreign.is_available)
        self.assertFalse(Booking.objects.exists())

    def test_invalid_passenger_details_rejected_before_any_write(self):
        for name, age in [('', 30), ('   ', 30), ('1234', 30), ('Ravi', 0), ('Ravi', 121),
                          ('Ravi', True), ('Ravi', 'abc'), ('Ravi', 30.5), (None, 30)]:
            with self.subTest(name=name, age=age):
                with self.assertRaises(InvalidInput):
                    self.book(self.s1.id, name=name, age=age)

        self.assertFalse(Booking.objects.exists())
        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)

    def test_age_boundaries_accepted(self):
        self.assertEqual(self.book(name='Infant', age=1).status, Booking.RAC)
        self.assertEqual(self.book(name='Elder', age='120').status, Booking.RAC)

    def test_unknown_user_rejected(self):
        with self.assertRaises(InvalidInput):
            self.coordinator.create_booking(999999, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

    def test_route_of_other_train_rejected(self):
        other_train, _ = make_scope(train_number='22222')

        with self.assertRaises(InvalidInput):
            self.coordinator.create_booking(self.user.id, other_train.id, self.route.id, None, 'Ravi', 30)

    def test_declined_payment_keeps_confirmation(self):
        coordinator = ReservationCoordinator(payment_gateway=DecliningGateway())

        result = coordinator.create_booking(self.user.id, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

        self.assertEqual(result.status, Booking.CONFIRMED)
        self.assertEqual(result.payment_status, Payment.FAILED)
        self.assertIn('payment failed', result.message)
        self.s1.refresh_from_db()
        self.assertFalse(self.s1.is_available)

    def test_gateway_error_rolls_back_allocation(self):
        """Anything failing after the seat flip undoes the whole booking."""
        coordinator = ReservationCoordinator(payment_gateway=ExplodingGateway(RuntimeError('gateway down')))

        with self.assertRaises(RuntimeError):
            coordinator.create_booking(self.user.id, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Payment.objects.exists())

    @mock.patch('utils.transactions.time.sleep')
    def test_contention_is_retried(self, sleep):
        gateway = FlakyGateway(failures=1)
        coordinator = ReservationCoordinator(payment_gateway=gateway)

        result = coordinator.create_booking(self.user.id, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

        self.assertEqual(result.status, Booking.CONFIRMED)
        self.assertEqual(gateway.calls, 2)
        self.assertEqual(Booking.objects.count(), 1)
        sleep.assert_called_once()

    @mock.patch('utils.transactions.time.sleep')
    @override_settings(RESERVATION_ENGINE=engine_settings(MAX_TRANSACTION_RETRIES=2))
    def test_contention_surfaces_after_retries(self, sleep):
        gateway = FlakyGateway(failures=100)
        coordinator = ReservationCoordinator(payment_gateway=gateway)

        with self.assertRaises(ConcurrencyConflict):
            coordinator.create_booking(self.user.id, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

        self.assertEqual(gateway.calls, 3)
        self.assertFalse(Booking.objects.exists())
        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)

    @mock.patch('utils.transactions.time.sleep')
    def test_store_failure_is_not_retried(self, sleep):
        gateway = ExplodingGateway(IntegrityError('constraint failed'))
        coordinator = ReservationCoordinator(payment_gateway=gateway)

        with self.assertLogs('reservations', level='ERROR'):
            with self.assertRaises(PersistenceFailure):
                coordinator.create_booking(self.user.id, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

        self.assertEqual(gateway.calls, 1)
        sleep.assert_not_called()
        self.assertFalse(Booking.objects.exists())

    def test_inactive_route_rejected(self):
        """Deactivated routes and trains take no new bookings."""
        Route.objects.filter(id=self.route.id).update(is_active=False)

        with self.assertRaises(InvalidInput):
            self.book(self.s1.id)

        Route.objects.filter(id=self.route.id).update(is_active=True)
        Train.objects.filter(id=self.train.id).update(is_active=False)
        with self.assertRaises(InvalidInput):
            self.book()

        self.assertFalse(Booking.objects.exists())
        self.assertEqual(RACEntry.objects.count(), 0)
        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)

    def test_booking_on_deactivated_route_can_still_be_cancelled(self):
        result = self.book(self.s1.id)
        Route.objects.filter(id=self.route.id).update(is_active=False)

        self.assertTrue(self.coordinator.cancel_booking(result.booking_id))
        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)

    @mock.patch('bookings.services.log_booking_event')
    def test_audit_event_written_after_commit(self, log_event):
        with self.captureOnCommitCallbacks(execute=True):
            result = self.book(self.s1.id)

        log_event.assert_called_once()
        args, kwargs = log_event.call_args
        self.assertEqual(args, ('booking_confirmed', result.booking_id))
        self.assertEqual(kwargs['pnr'], result.pnr)

    @mock.patch('bookings.services.log_booking_event')
    def test_no_audit_event_when_rolled_back(self, log_event):
        coordinator = ReservationCoordinator(payment_gateway=ExplodingGateway(RuntimeError('down')))

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(RuntimeError):
                coordinator.create_booking(self.user.id, self.train.id, self.route.id, self.s1.id, 'Ravi', 30)

        log_event.assert_not_called()


# =============================================================================
# UNIT TESTS - Reservation coordinator: cancellation and promotion
# =============================================================================

@override_settings(MONGODB_ENABLED=False)
class CancelBookingTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='c@example.com', password='x', name='Canceller')
        self.train, self.route = make_scope(berths=2)
        self.s1 = self.route.seats.get(seat_number='S1-1')
        self.coordinator = ReservationCoordinator()

    def book(self, seat_id=None, name='Meera'):
        return self.coordinator.create_booking(self.user.id, self.train.id, self.route.id, seat_id, name, 29)

    def status_of(self, result):
        return Booking.objects.get(id=result.booking_id).status

    def test_create_then_cancel_frees_seat(self):
        result = self.book(self.s1.id)

        self.assertTrue(self.coordinator.cancel_booking(result.booking_id))

        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)
        booking = Booking.objects.get(id=result.booking_id)
        self.assertEqual(booking.status, Booking.CANCELLED)
        self.assertIsNotNone(booking.cancelled_at)
        self.assertEqual(booking.seat_id, self.s1.id)

    def test_cancel_unknown_booking(self):
        self.assertFalse(self.coordinator.cancel_booking(999999))

    def test_second_cancel_is_noop(self):
        """A repeated cancel fails and never releases the seat again."""
        first = self.book(self.s1.id)
        self.assertTrue(self.coordinator.cancel_booking(first.booking_id))
        second = self.book(self.s1.id)
        self.assertEqual(second.status, Booking.CONFIRMED)

        self.assertFalse(self.coordinator.cancel_booking(first.booking_id))

        self.s1.refresh_from_db()
        self.assertFalse(self.s1.is_available)
        self.assertEqual(self.status_of(second), Booking.CONFIRMED)

    def test_freed_seat_promotes_rac_before_waitlist(self):
        """With both queues populated the promotion comes from RAC."""
        with override_settings(RESERVATION_ENGINE=engine_settings(RAC_CAPACITY=2)):
            confirmed = self.book(self.s1.id)
            rac_1, rac_2 = self.book(), self.book()
            waiting = self.book()
            self.assertEqual(waiting.status, Booking.WAITLISTED)

            self.assertTrue(self.coordinator.cancel_booking(confirmed.booking_id))

        self.assertEqual(self.status_of(rac_1), Booking.PROMOTED)
        self.assertIsNotNone(Booking.objects.get(id=rac_1.booking_id).promoted_at)
        self.assertEqual(self.status_of(rac_2), Booking.RAC)
        self.assertEqual(self.status_of(waiting), Booking.WAITLISTED)
        self.assertEqual(active_positions(RACEntry, self.route), [1])
        self.assertEqual(RACEntry.objects.get(booking_id=rac_2.booking_id).position, 1)
        self.assertEqual(active_positions(WaitlistEntry, self.route), [1])

    def test_freed_seat_promotes_waitlist_when_rac_empty(self):
        """RAC empty, waitlist of two: the head is promoted and the other moves to 1."""
        with override_settings(RESERVATION_ENGINE=engine_settings(RAC_CAPACITY=1)):
            confirmed = self.book(self.s1.id)
            rac = self.book()
            wl_1, wl_2 = self.book(), self.book()
            self.assertTrue(self.coordinator.cancel_booking(rac.booking_id))
            self.assertEqual(RACQueue().count(self.train.id, self.route.id), 0)

            self.assertTrue(self.coordinator.cancel_booking(confirmed.booking_id))

        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)
        self.assertEqual(self.status_of(wl_1), Booking.PROMOTED)
        self.assertEqual(WaitlistEntry.objects.get(booking_id=wl_1.booking_id).status, QueueEntry.PROMOTED)
        self.assertEqual(WaitlistEntry.objects.get(booking_id=wl_2.booking_id).position, 1)
        self.assertEqual(active_positions(WaitlistEntry, self.route), [1])

    def test_promotion_does_not_assign_seat(self):
        confirmed = self.book(self.s1.id)
        queued = self.book()

        self.coordinator.cancel_booking(confirmed.booking_id)

        promoted = Booking.objects.get(id=queued.booking_id)
        self.assertEqual(promoted.status, Booking.PROMOTED)
        self.assertIsNone(promoted.seat_id)

    def test_cancel_with_empty_queues_only_frees_seat(self):
        confirmed = self.book(self.s1.id)

        self.assertTrue(self.coordinator.cancel_booking(confirmed.booking_id))

        self.assertFalse(RACEntry.objects.exists())
        self.assertFalse(WaitlistEntry.objects.exists())

    def test_cancel_rac_booking_withdraws_entry(self):
        """Cancelling a queued booking closes its gap without promoting anyone."""
        first, middle, last = self.book(), self.book(), self.book()

        self.assertTrue(self.coordinator.cancel_booking(middle.booking_id))

        self.assertEqual(RACEntry.objects.get(booking_id=middle.booking_id).status, QueueEntry.CANCELLED)
        self.assertEqual(RACEntry.objects.get(booking_id=last.booking_id).position, 2)
        self.assertEqual(self.status_of(first), Booking.RAC)
        self.assertEqual(active_positions(RACEntry, self.route), [1, 2])

    def test_cancel_promoted_booking(self):
        confirmed = self.book(self.s1.id)
        queued = self.book()
        self.coordinator.cancel_booking(confirmed.booking_id)

        self.assertTrue(self.coordinator.cancel_booking(queued.booking_id))

        self.assertEqual(self.status_of(queued), Booking.CANCELLED)
        self.assertEqual(RACEntry.objects.get(booking_id=queued.booking_id).status, QueueEntry.PROMOTED)

    def test_list_bookings_for_user_newest_first(self):
        first = self.book(self.s1.id)
        second = self.book()
        User.objects.create_user(email='other@example.com', password='x', name='Other')

        bookings = self.coordinator.list_bookings_for_user(self.user.id)

        self.assertEqual([b.id for b in bookings], [second.booking_id, first.booking_id])
        self.assertEqual(bookings[1].payment.status, Payment.SUCCESS)

    def test_queue_snapshots(self):
        self.book()
        self.book()

        self.assertEqual([e.position for e in self.coordinator.get_rac_queue(self.train.id, self.route.id)], [1, 2])
        self.assertEqual(self.coordinator.get_waitlist(self.train.id, self.route.id), [])


# =============================================================================
# INTEGRATION TESTS - Booking API
# =============================================================================

@override_settings(MONGODB_ENABLED=False)
class BookingAPITests(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            email='user@example.com',
            password='UserPass123!',
            name='Regular User'
        )
        self.other = User.objects.create_user(email='other@example.com', password='OtherPass123!', name='Other')
        self.admin = User.objects.create_user(email='admin@example.com', password='AdminPass123!',
                                              name='Admin', is_admin=True)
        self.train, self.route = make_scope(berths=2)
        self.s1 = self.route.seats.get(seat_number='S1-1')

        response = self.client.post('/api/login/', {
            'email': 'user@example.com',
            'password': 'UserPass123!'
        }, format='json')
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['tokens']['access']}")

    def payload(self, **overrides):
        data = {
            'train_id': self.train.id,
            'route_id': self.route.id,
            'seat_id': self.s1.id,
            'passenger_name': 'John Doe',
            'passenger_age': 30,
        }
        data.update(overrides)
        return data

    def test_create_booking_confirmed(self):
        response = self.client.post('/api/bookings/', self.payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['status'], Booking.CONFIRMED)
        self.assertEqual(response.data['payment_status'], Payment.SUCCESS)

    def test_taken_seat_returns_rac_position(self):
        self.client.post('/api/bookings/', self.payload(), format='json')

        response = self.client.post('/api/bookings/', self.payload(passenger_name='Jane Doe'), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Booking.RAC)
        self.assertEqual(response.data['position'], 1)

    def test_booking_without_seat(self):
        response = self.client.post('/api/bookings/', self.payload(seat_id=None), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Booking.RAC)

    def test_invalid_age_rejected(self):
        response = self.client.post('/api/bookings/', self.payload(passenger_age=0), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['code'], 'invalid_input')
        self.assertFalse(Booking.objects.exists())

    def test_missing_fields_rejected(self):
        response = self.client.post('/api/bookings/', {'train_id': self.train.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('route_id', response.data['error'])

    def test_unknown_route_rejected(self):
        response = self.client.post('/api/bookings/', self.payload(route_id=999999), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_my_bookings(self):
        self.client.post('/api/bookings/', self.payload(), format='json')
        self.client.post('/api/bookings/', self.payload(seat_id=None), format='json')

        response = self.client.get('/api/bookings/my/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        newest, oldest = response.data['results']
        self.assertEqual(newest['queue_position'], 1)
        self.assertIsNone(newest['seat'])
        self.assertEqual(oldest['seat']['seat_number'], 'S1-1')
        self.assertEqual(oldest['train_details']['source_station'], 'Delhi')
        self.assertEqual(oldest['payment']['status'], Payment.SUCCESS)

    def test_booking_detail_only_for_owner(self):
        created = self.client.post('/api/bookings/', self.payload(), format='json')
        booking_id = created.data['booking_id']

        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').status_code, status.HTTP_200_OK)

        self.client.force_authenticate(user=self.other)
        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.get(f'/api/bookings/{booking_id}/').status_code, status.HTTP_200_OK)

    def test_cancel_booking(self):
        created = self.client.post('/api/bookings/', self.payload(), format='json')
        booking_id = created.data['booking_id']

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Booking.CANCELLED)
        self.s1.refresh_from_db()
        self.assertTrue(self.s1.is_available)

    def test_cancel_twice_conflicts(self):
        created = self.client.post('/api/bookings/', self.payload(), format='json')
        booking_id = created.data['booking_id']
        self.client.post(f'/api/bookings/{booking_id}/cancel/')

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_cannot_cancel_someone_elses_booking(self):
        created = self.client.post('/api/bookings/', self.payload(), format='json')
        self.client.force_authenticate(user=self.other)

        response = self.client.post(f"/api/bookings/{created.data['booking_id']}/cancel/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(Booking.objects.get().status, Booking.CONFIRMED)

    def test_queue_views_admin_only(self):
        self.client.post('/api/bookings/', self.payload(seat_id=None), format='json')
        rac_url = f'/api/bookings/queues/{self.train.id}/{self.route.id}/rac/'
        waitlist_url = f'/api/bookings/queues/{self.train.id}/{self.route.id}/waitlist/'

        self.assertEqual(self.client.get(rac_url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(rac_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['active_count'], 1)
        self.assertEqual(response.data['results'][0]['user_email'], 'user@example.com')
        self.assertEqual(self.client.get(waitlist_url).data['results'], [])

    def test_queue_view_unknown_route(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(f'/api/bookings/queues/{self.train.id}/999999/rac/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_booking_unauthenticated(self):
        self.client.credentials()

        response = self.client.post('/api/bookings/', self.payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


# =============================================================================
# CONCURRENCY TESTS
# =============================================================================

@override_settings(
    MONGODB_ENABLED=False,
    RESERVATION_ENGINE=engine_settings(MAX_TRANSACTION_RETRIES=20, RETRY_BACKOFF_SECONDS=0.01),
)
class BookingConcurrencyTests(TransactionTestCase):
    """
    Concurrent callers against one scope.
    Uses TransactionTestCase so each thread commits for real.
    """

    def setUp(self):
        self.users = [
            User.objects.create_user(email=f'user{i}@example.com', password='x', name=f'User {i}')
            for i in range(8)
        ]
        self.train, self.route = make_scope(berths=1, train_number='RACE001')
        self.seat = self.route.seats.get()

    def run_threads(self, target, args_list):
        errors = []

        def wrapper(*args):
            try:
                target(*args)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=wrapper, args=args) for args in args_list]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return errors

    def test_concurrent_requests_for_last_seat(self):
        """Exactly one request wins the seat; the rest queue at distinct positions."""
        results = []

        def make_booking(user):
            results.append(ReservationCoordinator().create_booking(
                user.id, self.train.id, self.route.id, self.seat.id, user.name, 30
            ))

        errors = self.run_threads(make_booking, [(user,) for user in self.users])

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 8)
        self.assertEqual(Booking.objects.filter(status=Booking.CONFIRMED).count(), 1)
        self.assertEqual(Booking.objects.filter(status=Booking.RAC).count(), 7)
        self.assertEqual(active_positions(RACEntry, self.route), list(range(1, 8)))
        self.assertEqual(sorted(r.position for r in results if r.position), list(range(1, 8)))
        self.seat.refresh_from_db()
        self.assertFalse(self.seat.is_available)

    def test_concurrent_cancels_promote_once(self):
        """Two cancels of the same booking free the seat and promote exactly once."""
        coordinator = ReservationCoordinator()
        confirmed = coordinator.create_booking(self.users[0].id, self.train.id, self.route.id, self.seat.id, 'A', 30)
        for user in self.users[1:4]:
            coordinator.create_booking(user.id, self.train.id, self.route.id, None, user.name, 30)
        outcomes = []

        def cancel():
            outcomes.append(ReservationCoordinator().cancel_booking(confirmed.booking_id))

        errors = self.run_threads(cancel, [(), ()])

        self.assertEqual(errors, [])
        self.assertEqual(sorted(outcomes), [False, True])
        self.assertEqual(Booking.objects.filter(status=Booking.PROMOTED).count(), 1)
        self.assertEqual(active_positions(RACEntry, self.route), [1, 2])
        self.seat.refresh_from_db()
        self.assertTrue(self.seat.is_available)
