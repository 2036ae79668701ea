"""Booking, payment and queue models."""
import random
import string
from django.db import models
from django.db.models import Q
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone

from core.models import User
from trains.models import Train, Route, Seat


def generate_pnr():
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=10))


class Booking(models.Model):
    """
    A passenger's request for a seat on a route. Bookings are never deleted;
    they move through statuses and stop at CANCELLED.
    """
    CONFIRMED = 'CONFIRMED'
    RAC = 'RAC'
    WAITLISTED = 'WAITLISTED'
    PROMOTED = 'PROMOTED'
    CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (CONFIRMED, 'Confirmed'),
        (RAC, 'RAC'),
        (WAITLISTED, 'Waitlisted'),
        (PROMOTED, 'Promoted'),
        (CANCELLED, 'Cancelled'),
    ]

    pnr = models.CharField(max_length=10, unique=True, default=generate_pnr)
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='bookings')
    train = models.ForeignKey(Train, on_delete=models.PROTECT, related_name='bookings')
    route = models.ForeignKey(Route, on_delete=models.PROTECT, related_name='bookings')
    seat = models.ForeignKey(Seat, on_delete=models.PROTECT, related_name='bookings', null=True, blank=True)
    passenger_name = models.CharField(max_length=255)
    passenger_age = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(120)])
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    booking_time = models.DateTimeField(default=timezone.now)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    promoted_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-booking_time', '-id']
        indexes = [
            models.Index(fields=['user', 'booking_time'], name='bookings_user_id_2f6a9e_idx'),
            models.Index(fields=['route', 'status'], name='bookings_route_i_9b1d3c_idx'),
        ]
        constraints = [
            # At most one live confirmed booking per seat.
            models.UniqueConstraint(
                fields=['seat'],
                condition=Q(status='CONFIRMED'),
                name='uniq_confirmed_booking_per_seat',
            ),
        ]

    def __str__(self):
        return f"PNR: {self.pnr} - {self.passenger_name} ({self.status})"

    def save(self, *args, **kwargs):
        if self._state.adding:
            manager = Booking.objects.using(kwargs.get('using') or self._state.db or 'default')
            while not self.pnr or manager.filter(pnr=self.pnr).exists():
                self.pnr = generate_pnr()
        super().save(*args, **kwargs)

    @property
    def is_cancelled(self):
        return self.status == self.CANCELLED


class Payment(models.Model):
    """Payment handed off to the gateway when a booking is confirmed."""
    PENDING = 'PENDING'
    SUCCESS = 'SUCCESS'
    FAILED = 'FAILED'
    STATUS_CHOICES = [(PENDING, 'Pending'), (SUCCESS, 'Success'), (FAILED, 'Failed')]

    booking = models.OneToOneField(Booking, on_delete=models.PROTECT, related_name='payment')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    gateway_reference = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payments'

    def __str__(self):
        return f"Payment {self.amount} for {self.booking.pnr} ({self.status})"


class QueueEntry(models.Model):
    """
    Shared shape of RAC and waitlist entries. Among ACTIVE entries of one
    route the positions are exactly 1..n in arrival order.
    """
    ACTIVE = 'ACTIVE'
    PROMOTED = 'PROMOTED'
    CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [(ACTIVE, 'Active'), (PROMOTED, 'Promoted'), (CANCELLED, 'Cancelled')]

    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='+')
    train = models.ForeignKey(Train, on_delete=models.PROTECT, related_name='+')
    route = models.ForeignKey(Route, on_delete=models.PROTECT, related_name='+')
    position = models.PositiveIntegerField()
    request_time = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=ACTIVE)
    status_changed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True
        ordering = ['position', 'id']

    def __str__(self):
        return f"{self.__class__.__name__} #{self.position} for route {self.route_id} ({self.status})"


class RACEntry(QueueEntry):
    booking = models.OneToOneField(
        Booking, on_delete=models.PROTECT, related_name='rac_entry', null=True, blank=True
    )

    class Meta(QueueEntry.Meta):
        db_table = 'rac_queue'
        verbose_name = 'RAC entry'
        verbose_name_plural = 'RAC queue'
        indexes = [models.Index(fields=['route', 'status', 'position'], name='rac_queue_route_i_4e8b2a_idx')]


class WaitlistEntry(QueueEntry):
    booking = models.OneToOneField(
        Booking, on_delete=models.PROTECT, related_name='waitlist_entry', null=True, blank=True
    )

    class Meta(QueueEntry.Meta):
        db_table = 'waitlist'
        verbose_name = 'waitlist entry'
        verbose_name_plural = 'waitlist'
        indexes = [models.Index(fields=['route', 'status', 'position'], name='waitlist_route_i_1a7c5d_idx')]
