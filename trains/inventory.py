"""
Seat inventory for a (train, route) scope.

allocate() and release() are single conditional UPDATE statements, so they
are atomic against each other even without an enclosing scope lock; the
coordinator still calls them inside TransactionManager.scope() so that the
seat flip commits together with the booking row.
"""
from django.utils import timezone

from utils.transactions import TransactionManager
from .models import Seat

# Berths offered first to each user category. Categories not listed get every
# available seat.
RECOMMENDED_BERTHS = {
    'SENIOR_CITIZEN': ('LOWER', 'SIDE_LOWER'),
    'LADIES': ('LOWER', 'MIDDLE'),
}


class SeatInventory:

    def __init__(self, tx=None):
        self.tx = tx or TransactionManager()

    def _seats(self):
        return Seat.objects.using(self.tx.using)

    def get_seat(self, seat_id):
        return self._seats().select_related('route', 'compartment').filter(id=seat_id).first()

    def list_available(self, train_id, route_id):
        """Available seats of the scope, ordered by compartment then berth."""
        return list(
            self._seats()
            .for_scope(train_id, route_id)
            .available()
            .select_related('compartment')
            .order_by('compartment__compartment_name', 'id')
        )

    def recommend(self, train_id, category, route_id=None):
        """
        Advisory subset of available seats for a user category. With a
        route_id the result is a subset of list_available(train_id, route_id).
        """
        queryset = self._seats().available().filter(route__train_id=train_id)
        if route_id is not None:
            queryset = queryset.filter(route_id=route_id)
        berths = RECOMMENDED_BERTHS.get(category)
        if berths:
            queryset = queryset.filter(berth_type__in=berths)
        return list(queryset.select_related('compartment').order_by('compartment__compartment_name', 'id'))

    def allocate(self, seat_id):
        """Mark the seat taken. False if it is unknown or already taken."""
        updated = self._seats().filter(id=seat_id, is_available=True).update(
            is_available=False, updated_at=timezone.now()
        )
        return updated == 1

    def release(self, seat_id):
        """Mark the seat free again. False if the seat id is unknown."""
        updated = self._seats().filter(id=seat_id).update(
            is_available=True, updated_at=timezone.now()
        )
        return updated == 1
