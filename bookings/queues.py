"""
RAC and waitlist queues.

Both are FIFO queues per (train, route) stored as rows with a dense 1-based
position. Every mutating call runs inside TransactionManager.scope() for its
scope; when the coordinator already holds that scope the call joins it as a
savepoint.
"""
import logging

from django.db.models import Case, F, IntegerField, Value, When
from django.utils import timezone

from utils.exceptions import QueueCapacityExceeded
from utils.transactions import TransactionManager, get_engine_setting
from .models import QueueEntry, RACEntry, WaitlistEntry

logger = logging.getLogger('reservations')


class PositionQueue:
    model = None
    label = None
    capacity = None

    def __init__(self, tx=None):
        self.tx = tx or TransactionManager()

    def get_capacity(self):
        """Maximum number of ACTIVE entries per scope, None for unbounded."""
        return self.capacity

    def _entries(self):
        return self.model.objects.using(self.tx.using)

    def _active(self, train_id, route_id):
        return self._entries().filter(train_id=train_id, route_id=route_id, status=QueueEntry.ACTIVE)

    def count(self, train_id, route_id):
        return self._active(train_id, route_id).count()

    def has_capacity(self, train_id, route_id):
        limit = self.get_capacity()
        return limit is None or self.count(train_id, route_id) < limit

    def admit(self, user_id, train_id, route_id, booking=None):
        """Append a request at position count + 1."""
        with self.tx.scope(train_id, route_id):
            count = self.count(train_id, route_id)
            limit = self.get_capacity()
            if limit is not None and count >= limit:
                raise QueueCapacityExceeded(f"{self.label} is full ({limit} entries).")
            entry = self._entries().create(
                user_id=user_id,
                train_id=train_id,
                route_id=route_id,
                booking=booking,
                position=count + 1,
            )
        logger.info(
            "%s admit entry=%s train=%s route=%s position=%s",
            self.label, entry.id, train_id, route_id, entry.position
        )
        return entry

    def promote_head(self, train_id, route_id):
        """Promote the lowest-position ACTIVE entry; None if the queue is empty."""
        with self.tx.scope(train_id, route_id):
            head = self._active(train_id, route_id).order_by('position', 'id').first()
            if head is None:
                return None
            self._close(head, QueueEntry.PROMOTED)
        logger.info("%s promote entry=%s train=%s route=%s", self.label, head.id, train_id, route_id)
        return head

    def withdraw(self, entry):
        """Take a still-ACTIVE entry out of the queue, closing the gap it leaves."""
        with self.tx.scope(entry.train_id, entry.route_id):
            entry.refresh_from_db(using=self.tx.using)
            if entry.status != QueueEntry.ACTIVE:
                return False
            self._close(entry, QueueEntry.CANCELLED)
        logger.info("%s withdraw entry=%s route=%s", self.label, entry.id, entry.route_id)
        return True

    def _close(self, entry, status):
        entry.status = status
        entry.status_changed_at = timezone.now()
        entry.save(update_fields=['status', 'status_changed_at'])
        self._active(entry.train_id, entry.route_id).filter(
            position__gt=entry.position
        ).update(position=F('position') - 1)

    def entries(self, train_id, route_id, active_only=False):
        """ACTIVE entries by position, followed by closed ones."""
        queryset = self._entries().filter(train_id=train_id, route_id=route_id).select_related('user')
        if active_only:
            return list(queryset.filter(status=QueueEntry.ACTIVE).order_by('position', 'id'))
        return list(queryset.annotate(
            closed=Case(
                When(status=QueueEntry.ACTIVE, then=Value(0)),
                default=Value(1),
                output_field=IntegerField(),
            )
        ).order_by('closed', 'position', 'id'))

    def position_of(self, entry_id):
        entry = self._entries().filter(id=entry_id, status=QueueEntry.ACTIVE).first()
        return entry.position if entry else None


class RACQueue(PositionQueue):
    model = RACEntry
    label = 'RAC'

    def get_capacity(self):
        return get_engine_setting('RAC_CAPACITY')


class WaitlistQueue(PositionQueue):
    model = WaitlistEntry
    label = 'Waitlist'
