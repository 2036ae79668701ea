"""
Tests for shared utilities: scoped transactions, the exception handler and
the MongoDB audit helpers.
"""
from datetime import time
from decimal import Decimal
from unittest import mock

from django.conf import settings
from django.db import DatabaseError, OperationalError
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from pymongo.errors import OperationFailure, PyMongoError, ServerSelectionTimeoutError
from rest_framework import status
from rest_framework.test import APITestCase

from trains.models import Train, Route
from utils import mongo
from utils.exceptions import (
    ConcurrencyConflict, InvalidInput, PersistenceFailure, custom_exception_handler,
)
from utils.transactions import ScopeLocks, TransactionManager


def engine_settings(**overrides):
    return dict(settings.RESERVATION_ENGINE, **overrides)


# =============================================================================
# UNIT TESTS - Scoped transactions
# =============================================================================

class ScopeLocksTests(SimpleTestCase):

    def test_same_scope_shares_lock(self):
        locks = ScopeLocks()

        self.assertIs(locks.get(1, 2), locks.get('1', '2'))
        self.assertIsNot(locks.get(1, 2), locks.get(1, 3))

    def test_lock_is_reentrant(self):
        lock = ScopeLocks().get(1, 1)

        with lock:
            self.assertTrue(lock.acquire(blocking=False))
            lock.release()


class TransactionManagerTests(TestCase):

    def setUp(self):
        self.train = Train.objects.create(train_number='12951', train_name='Test Express')
        self.route = Route.objects.create(
            train=self.train, source_station='Delhi', destination_station='Mumbai',
            departure_time=time(6, 0), arrival_time=time(18, 0), price=Decimal('100.00'),
        )
        self.tx = TransactionManager()

    def test_scope_yields_locked_route(self):
        with self.tx.scope(self.train.id, self.route.id) as route:
            self.assertEqual(route.id, self.route.id)

    def test_scope_rejects_route_of_other_train(self):
        other = Train.objects.create(train_number='22222', train_name='Other')

        with self.assertRaises(InvalidInput):
            with self.tx.scope(other.id, self.route.id):
                pass

    def test_scope_rolls_back_on_error(self):
        with self.assertRaises(ValueError):
            with self.tx.scope(self.train.id, self.route.id):
                Train.objects.filter(id=self.train.id).update(train_name='Renamed')
                raise ValueError('boom')

        self.train.refresh_from_db()
        self.assertEqual(self.train.train_name, 'Test Express')

    def test_operational_error_becomes_conflict(self):
        with self.assertRaises(ConcurrencyConflict):
            with self.tx.scope(self.train.id, self.route.id):
                raise OperationalError('database is locked')

    def test_other_database_error_becomes_persistence_failure(self):
        with self.assertLogs('reservations', level='ERROR'):
            with self.assertRaises(PersistenceFailure):
                with self.tx.scope(self.train.id, self.route.id):
                    raise DatabaseError('disk I/O error')

    def test_run_passes_route_and_arguments(self):
        result = self.tx.run(self.train.id, self.route.id, lambda route, a, b=0: (route.id, a, b), 1, b=2)

        self.assertEqual(result, (self.route.id, 1, 2))

    @mock.patch('utils.transactions.time.sleep')
    def test_retrying_recovers_from_transient_conflict(self, sleep):
        fn = mock.Mock(side_effect=[OperationalError('locked'), ConcurrencyConflict(), 'done'])

        self.assertEqual(self.tx.retrying(fn), 'done')
        self.assertEqual(fn.call_count, 3)
        self.assertEqual(sleep.call_args_list, [mock.call(0.05), mock.call(0.1)])

    @mock.patch('utils.transactions.time.sleep')
    @override_settings(RESERVATION_ENGINE=engine_settings(MAX_TRANSACTION_RETRIES=1))
    def test_retrying_gives_up_with_conflict(self, sleep):
        fn = mock.Mock(side_effect=OperationalError('locked'))

        with self.assertRaises(ConcurrencyConflict):
            self.tx.retrying(fn)
        self.assertEqual(fn.call_count, 2)

    @mock.patch('utils.transactions.time.sleep')
    def test_retrying_ignores_other_errors(self, sleep):
        fn = mock.Mock(side_effect=InvalidInput('bad'))

        with self.assertRaises(InvalidInput):
            self.tx.retrying(fn)
        fn.assert_called_once()
        sleep.assert_not_called()


# =============================================================================
# UNIT TESTS - Exception handler
# =============================================================================

class ExceptionHandlerTests(SimpleTestCase):

    def test_reservation_error_rendering(self):
        response = custom_exception_handler(InvalidInput("Passenger age must be between 1 and 120."), {})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_input')
        self.assertEqual(response.data['error'], "Passenger age must be between 1 and 120.")
        self.assertFalse(response.data['success'])

    def test_conflict_and_store_failures(self):
        self.assertEqual(custom_exception_handler(ConcurrencyConflict(), {}).status_code, status.HTTP_409_CONFLICT)
        with self.assertLogs('utils.exceptions', level='ERROR'):
            response = custom_exception_handler(PersistenceFailure(), {})
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_unhandled_exception_passes_through(self):
        self.assertIsNone(custom_exception_handler(RuntimeError('boom'), {}))


# =============================================================================
# UNIT TESTS - MongoDB helpers
# =============================================================================

class MongoHelperTests(SimpleTestCase):

    def setUp(self):
        mongo.reset_mongo_state()
        self.addCleanup(mongo.reset_mongo_state)

    @override_settings(MONGODB_ENABLED=False)
    def test_disabled_mongo_is_noop(self):
        with mock.patch('utils.mongo.MongoClient') as client:
            mongo.log_booking_event('booking_confirmed', 1, pnr='ABC')

        client.assert_not_called()

    @override_settings(MONGODB_ENABLED=True)
    def test_unreachable_mongo_is_logged_once(self):
        with mock.patch('utils.mongo.MongoClient') as client:
            client.return_value.admin.command.side_effect = ServerSelectionTimeoutError('down')

            with self.assertLogs('utils.mongo', level='WARNING'):
                mongo.log_booking_event('booking_confirmed', 1, pnr='ABC')
            mongo.log_api_request('/api/bookings/', 'POST', 1, {}, 201, 3.2)

        client.assert_called_once()

    @override_settings(MONGODB_ENABLED=True)
    def test_booking_event_written(self):
        with mock.patch('utils.mongo.MongoClient') as client:
            db = client.return_value.__getitem__.return_value

            mongo.log_booking_event('booking_queued', 7, queue='RAC', position=3)

        document = db.booking_events.insert_one.call_args[0][0]
        self.assertEqual(document['event'], 'booking_queued')
        self.assertEqual(document['booking_id'], 7)
        self.assertEqual(document['details'], {'queue': 'RAC', 'position': 3})

    @override_settings(MONGODB_ENABLED=True, MONGODB_URI='mongodb://localhost:99999/')
    def test_malformed_uri_is_logged_not_raised(self):
        with self.assertLogs('utils.mongo', level='WARNING'):
            mongo.log_booking_event('booking_confirmed', 1, pnr='ABC')

        self.assertIsNone(mongo.get_mongo_db())

    @override_settings(MONGODB_ENABLED=True)
    def test_auth_failure_on_ping_is_logged_not_raised(self):
        with mock.patch('utils.mongo.MongoClient') as client:
            client.return_value.admin.command.side_effect = OperationFailure('auth failed', code=18)

            with self.assertLogs('utils.mongo', level='WARNING'):
                mongo.log_api_request('/api/bookings/', 'POST', 1, {}, 201, 3.2)
            mongo.log_booking_event('booking_queued', 2)

        client.assert_called_once()

    @override_settings(MONGODB_ENABLED=True)
    def test_insert_failure_does_not_raise(self):
        with mock.patch('utils.mongo.MongoClient') as client:
            db = client.return_value.__getitem__.return_value
            db.booking_events.insert_one.side_effect = PyMongoError('write failed')

            with self.assertLogs('utils.mongo', level='WARNING'):
                mongo.log_booking_event('booking_cancelled', 7)


# =============================================================================
# INTEGRATION TESTS - Request logging middleware
# =============================================================================

@override_settings(MONGODB_ENABLED=False)
class APILoggingMiddlewareTests(APITestCase):

    def setUp(self):
        from core.models import User
        from trains.models import Compartment, Seat

        self.user = User.objects.create_user(email='log@example.com', password='x', name='Logger')
        self.train = Train.objects.create(train_number='12951', train_name='Test Express')
        Compartment.objects.create(train=self.train, compartment_name='S1', berth_count=2)
        self.route = Route.objects.create(
            train=self.train, source_station='Delhi', destination_station='Mumbai',
            departure_time=time(6, 0), arrival_time=time(18, 0), price=Decimal('100.00'),
        )
        Seat.objects.create_layout(self.route)
        self.client.force_authenticate(user=self.user)

    @mock.patch('utils.middleware.log_api_request')
    def test_booking_request_logged_with_scope_and_outcome(self, log_request):
        self.client.post('/api/bookings/', {
            'train_id': self.train.id,
            'route_id': self.route.id,
            'passenger_name': 'Ravi',
            'passenger_age': 30,
        }, format='json')

        kwargs = log_request.call_args.kwargs
        self.assertEqual(kwargs['endpoint'], '/api/bookings/')
        self.assertEqual(kwargs['response_status'], status.HTTP_201_CREATED)
        self.assertEqual(kwargs['user_id'], self.user.id)
        self.assertEqual(kwargs['request_params'], {
            'train_id': self.train.id,
            'route_id': self.route.id,
            'booking_status': 'RAC',
        })

    @mock.patch('utils.middleware.log_api_request')
    def test_search_logged_with_results_count(self, log_request):
        self.client.get('/api/trains/search/', {'source': 'Delhi', 'destination': 'Mumbai'})

        kwargs = log_request.call_args.kwargs
        self.assertEqual(kwargs['request_params'], {'source': 'Delhi', 'destination': 'Mumbai'})
        self.assertEqual(kwargs['results_count'], 1)

    @mock.patch('utils.middleware.log_api_request')
    def test_other_endpoints_not_logged(self, log_request):
        self.client.get('/api/profile/')

        log_request.assert_not_called()

    @mock.patch('utils.middleware.log_api_request', side_effect=RuntimeError('mongo exploded'))
    def test_logging_failure_does_not_break_response(self, log_request):
        with self.assertLogs('utils.middleware', level='ERROR'):
            response = self.client.get('/api/bookings/my/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)


# =============================================================================
# INTEGRATION TESTS - Audit failures after commit
# =============================================================================

class AuditAfterCommitTests(TransactionTestCase):
    """on_commit callbacks run for real here, after the booking has committed."""

    def setUp(self):
        from core.models import User
        from trains.models import Compartment, Seat

        mongo.reset_mongo_state()
        self.addCleanup(mongo.reset_mongo_state)
        self.user = User.objects.create_user(email='audit@example.com', password='x', name='Asha')
        self.train = Train.objects.create(train_number='12951', train_name='Test Express')
        Compartment.objects.create(train=self.train, compartment_name='S1', berth_count=2)
        self.route = Route.objects.create(
            train=self.train, source_station='Delhi', destination_station='Mumbai',
            departure_time=time(6, 0), arrival_time=time(18, 0), price=Decimal('100.00'),
        )
        Seat.objects.create_layout(self.route)
        self.seat = self.route.seats.order_by('id').first()

    def book(self):
        from bookings.services import ReservationCoordinator

        return ReservationCoordinator().create_booking(
            self.user.id, self.train.id, self.route.id, self.seat.id, 'Asha', 30
        )

    @override_settings(MONGODB_ENABLED=True, MONGODB_URI='mongodb://localhost:99999/')
    def test_misconfigured_mongo_does_not_fail_committed_booking(self):
        from bookings.models import Booking

        with self.assertLogs('utils.mongo', level='WARNING'):
            result = self.book()

        self.assertEqual(result.status, Booking.CONFIRMED)
        self.assertEqual(
            list(Booking.objects.values_list('status', flat=True)), [Booking.CONFIRMED]
        )

    @override_settings(MONGODB_ENABLED=False)
    @mock.patch('bookings.services.log_booking_event', side_effect=RuntimeError('audit down'))
    def test_failing_audit_callback_does_not_fail_committed_booking(self, log_event):
        from bookings.models import Booking

        result = self.book()

        log_event.assert_called_once()
        self.assertTrue(result.success)
        self.assertEqual(Booking.objects.get(id=result.booking_id).status, Booking.CONFIRMED)
        self.seat.refresh_from_db()
        self.assertFalse(self.seat.is_available)
