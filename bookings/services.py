"""
Reservation coordinator.

Ties the seat inventory, the RAC queue and the waitlist together. Each
create or cancel is one atomic unit over its (train, route) scope, so a
seat flip, the booking status write and any queue admission or promotion
commit together or not at all.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from django.utils import timezone

from core.models import User
from trains.inventory import SeatInventory
from utils.exceptions import InvalidInput, QueueCapacityExceeded, SeatUnavailable
from utils.mongo import log_booking_event
from utils.transactions import TransactionManager, get_engine_setting
from .models import Booking, Payment
from .payments import get_payment_gateway
from .queues import RACQueue, WaitlistQueue

logger = logging.getLogger('reservations')


@dataclass(frozen=True)
class BookingResult:
    success: bool
    status: str
    booking_id: Optional[int]
    message: str
    pnr: Optional[str] = None
    position: Optional[int] = None
    payment_status: Optional[str] = None

    def as_dict(self):
        return asdict(self)


def validate_passenger(passenger_name, passenger_age):
    """Return the cleaned (name, age) or raise InvalidInput."""
    if not isinstance(passenger_name, str) or not passenger_name.strip():
        raise InvalidInput("Passenger name is required.")
    name = passenger_name.strip()
    max_length = get_engine_setting('PASSENGER_NAME_MAX_LENGTH')
    if len(name) > max_length:
        raise InvalidInput(f"Passenger name must be at most {max_length} characters.")
    if not any(ch.isalpha() for ch in name):
        raise InvalidInput("Passenger name must contain letters.")

    if isinstance(passenger_age, bool):
        raise InvalidInput("Passenger age must be a whole number.")
    if isinstance(passenger_age, str) and passenger_age.strip().isdigit():
        passenger_age = int(passenger_age)
    if not isinstance(passenger_age, int):
        raise InvalidInput("Passenger age must be a whole number.")
    min_age = get_engine_setting('PASSENGER_MIN_AGE')
    max_age = get_engine_setting('PASSENGER_MAX_AGE')
    if not min_age <= passenger_age <= max_age:
        raise InvalidInput(f"Passenger age must be between {min_age} and {max_age}.")
    return name, passenger_age


class ReservationCoordinator:

    def __init__(self, tx=None, inventory=None, rac_queue=None, waitlist=None, payment_gateway=None):
        self.tx = tx or TransactionManager()
        self.inventory = inventory or SeatInventory(self.tx)
        self.rac_queue = rac_queue or RACQueue(self.tx)
        self.waitlist = waitlist or WaitlistQueue(self.tx)
        self.payment_gateway = payment_gateway or get_payment_gateway()

    def _bookings(self):
        return Booking.objects.using(self.tx.using)

    # Creation

    def create_booking(self, user_id, train_id, route_id, seat_id, passenger_name, passenger_age):
        """
        Confirm the requested seat if it is free, otherwise fall back to RAC
        and then to the waitlist. Returns a BookingResult.
        """
        name, age = validate_passenger(passenger_name, passenger_age)
        return self.tx.run(train_id, route_id, self._create_in_scope, user_id, seat_id, name, age)

    def _create_in_scope(self, route, user_id, seat_id, name, age):
        if not (route.is_active and route.train.is_active):
            raise InvalidInput(f"Route {route.id} is not open for booking.")
        if not User.objects.using(self.tx.using).filter(id=user_id, is_active=True).exists():
            raise InvalidInput(f"Unknown user {user_id}.")

        if seat_id is not None:
            try:
                return self._confirm(route, user_id, seat_id, name, age)
            except SeatUnavailable as exc:
                logger.info("Seat %s unavailable on route %s: %s", seat_id, route.id, exc.detail)

        try:
            return self._enqueue(self.rac_queue, Booking.RAC, route, user_id, name, age)
        except QueueCapacityExceeded:
            return self._enqueue(self.waitlist, Booking.WAITLISTED, route, user_id, name, age)

    def _confirm(self, route, user_id, seat_id, name, age):
        seat = self.inventory.get_seat(seat_id)
        if seat is None:
            raise SeatUnavailable(f"Seat {seat_id} does not exist.")
        if seat.route_id != route.id:
            raise InvalidInput(f"Seat {seat_id} is not on route {route.id}.")
        if not self.inventory.allocate(seat.id):
            raise SeatUnavailable(f"Seat {seat.seat_number} is already booked.")

        now = timezone.now()
        booking = self._bookings().create(
            user_id=user_id,
            train_id=route.train_id,
            route=route,
            seat=seat,
            passenger_name=name,
            passenger_age=age,
            status=Booking.CONFIRMED,
            booking_time=now,
            confirmed_at=now,
        )
        payment = self._hand_off_payment(booking, route.price)

        logger.info("Booking %s confirmed seat=%s route=%s", booking.pnr, seat.seat_number, route.id)
        self._audit('booking_confirmed', booking, seat_id=seat.id, payment_status=payment.status)

        message = "Booking confirmed successfully"
        if payment.status == Payment.FAILED:
            message = "Booking confirmed; payment failed and must be retried"
        return BookingResult(
            success=True,
            status=Booking.CONFIRMED,
            booking_id=booking.id,
            message=message,
            pnr=booking.pnr,
            payment_status=payment.status,
        )

    def _hand_off_payment(self, booking, amount):
        outcome = self.payment_gateway.charge(booking, amount)
        if not outcome.success:
            logger.warning("Payment for %s failed: %s", booking.pnr, outcome.message)
        return Payment.objects.using(self.tx.using).create(
            booking=booking,
            amount=amount,
            status=Payment.SUCCESS if outcome.success else Payment.FAILED,
            gateway_reference=outcome.reference or '',
        )

    def _enqueue(self, queue, status, route, user_id, name, age):
        # Admit first: a full queue raises before anything is written.
        entry = queue.admit(user_id, route.train_id, route.id)
        booking = self._bookings().create(
            user_id=user_id,
            train_id=route.train_id,
            route=route,
            passenger_name=name,
            passenger_age=age,
            status=status,
        )
        entry.booking = booking
        entry.save(update_fields=['booking'])

        self._audit('booking_queued', booking, queue=queue.label, position=entry.position)
        return BookingResult(
            success=True,
            status=status,
            booking_id=booking.id,
            message=f"Added to {queue.label}. Position: {entry.position}",
            pnr=booking.pnr,
            position=entry.position,
        )

    # Cancellation

    def cancel_booking(self, booking_id):
        """
        Cancel a booking. Returns False for unknown or already cancelled
        bookings. Freeing a seat promotes the head of RAC, or of the
        waitlist when RAC is empty.
        """
        scope = self.tx.retrying(self._bookings().filter(id=booking_id).values('train_id', 'route_id').first)
        if scope is None:
            logger.info("Cancel requested for unknown booking %s", booking_id)
            return False
        return self.tx.run(scope['train_id'], scope['route_id'], self._cancel_in_scope, booking_id)

    def _cancel_in_scope(self, route, booking_id):
        booking = self._bookings().select_for_update().filter(id=booking_id).first()
        if booking is None or booking.status == Booking.CANCELLED:
            return False

        previous = booking.status
        booking.status = Booking.CANCELLED
        booking.cancelled_at = timezone.now()
        booking.save(update_fields=['status', 'cancelled_at'])

        promoted = None
        if previous == Booking.CONFIRMED and booking.seat_id:
            self.inventory.release(booking.seat_id)
            promoted = self._promote_next(route)
        elif previous == Booking.RAC:
            self._withdraw(self.rac_queue, booking)
        elif previous == Booking.WAITLISTED:
            self._withdraw(self.waitlist, booking)

        logger.info("Booking %s cancelled (was %s)", booking.pnr, previous)
        self._audit(
            'booking_cancelled', booking,
            previous_status=previous,
            promoted_entry=promoted.id if promoted else None,
        )
        return True

    def _withdraw(self, queue, booking):
        entry = queue.model.objects.using(self.tx.using).filter(booking=booking).first()
        if entry is not None:
            queue.withdraw(entry)

    def _promote_next(self, route):
        """RAC head first; the waitlist only when RAC is empty."""
        entry = self.rac_queue.promote_head(route.train_id, route.id)
        if entry is None:
            entry = self.waitlist.promote_head(route.train_id, route.id)
        if entry is not None and entry.booking_id:
            self._bookings().filter(
                id=entry.booking_id, status__in=[Booking.RAC, Booking.WAITLISTED]
            ).update(status=Booking.PROMOTED, promoted_at=timezone.now())
            logger.info("Booking %s promoted on route %s", entry.booking_id, route.id)
        return entry

    # Queries

    def get_booking(self, booking_id):
        return self._with_details(self._bookings()).filter(id=booking_id).first()

    def list_bookings_for_user(self, user_id):
        return list(self._with_details(self._bookings()).filter(user_id=user_id).order_by('-booking_time', '-id'))

    def get_rac_queue(self, train_id, route_id):
        return self.rac_queue.entries(train_id, route_id)

    def get_waitlist(self, train_id, route_id):
        return self.waitlist.entries(train_id, route_id)

    @staticmethod
    def _with_details(queryset):
        return queryset.select_related('train', 'route', 'seat__compartment', 'payment')

    def _audit(self, event, booking, **details):
        booking_id, pnr = booking.id, booking.pnr
        self.tx.on_commit(lambda: log_booking_event(event, booking_id, pnr=pnr, **details))
