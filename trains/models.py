"""
Train and route catalog models, plus the per-route seat inventory rows.
"""
from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal


class Train(models.Model):
    """
    Train metadata (immutable information).
    Maps to the 'trains' table.
    """
    train_number = models.CharField(max_length=10, unique=True)
    train_name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'trains'
        indexes = [
            models.Index(fields=['train_number'], name='trains_train_n_5e1c7a_idx'),
            models.Index(fields=['is_active'], name='trains_is_acti_0b9f3d_idx'),
        ]

    def __str__(self):
        return f"{self.train_number} - {self.train_name}"


class Route(models.Model):
    """
    One run of a train between two stations. A (train, route) pair is the
    scope that owns a seat inventory and its RAC and waitlist queues.
    Maps to the 'routes' table.
    """
    train = models.ForeignKey(Train, on_delete=models.CASCADE, related_name='routes')
    source_station = models.CharField(max_length=100)
    destination_station = models.CharField(max_length=100)
    departure_time = models.TimeField()
    arrival_time = models.TimeField()
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'routes'
        indexes = [
            models.Index(fields=['source_station', 'destination_station'], name='routes_source__8d2e4f_idx'),
        ]

    def __str__(self):
        return f"{self.train.train_number}: {self.source_station} -> {self.destination_station}"


class Compartment(models.Model):
    """Coach of a train, e.g. S1 (Sleeper) or B2 (AC 3 Tier)."""
    CLASS_CHOICES = [
        ('SL', 'Sleeper'),
        ('3A', 'AC 3 Tier'),
        ('2A', 'AC 2 Tier'),
        ('1A', 'AC First Class'),
    ]

    train = models.ForeignKey(Train, on_delete=models.CASCADE, related_name='compartments')
    compartment_name = models.CharField(max_length=10)
    class_type = models.CharField(max_length=2, choices=CLASS_CHOICES, default='SL')
    berth_count = models.PositiveSmallIntegerField(default=72, validators=[MinValueValidator(1)])

    class Meta:
        db_table = 'compartments'
        unique_together = [('train', 'compartment_name')]
        ordering = ['compartment_name']

    def __str__(self):
        return f"{self.train.train_number}/{self.compartment_name} ({self.class_type})"


# Berth pattern of one bay in a sleeper-style coach, repeated along the coach.
BERTH_CYCLE = ['LOWER', 'MIDDLE', 'UPPER', 'LOWER', 'MIDDLE', 'UPPER', 'SIDE_LOWER', 'SIDE_UPPER']


def berth_type_for(berth_number):
    return BERTH_CYCLE[(berth_number - 1) % len(BERTH_CYCLE)]


class SeatQuerySet(models.QuerySet):

    def for_scope(self, train_id, route_id):
        return self.filter(route_id=route_id, route__train_id=train_id)

    def available(self):
        return self.filter(is_available=True)


class SeatManager(models.Manager.from_queryset(SeatQuerySet)):

    def create_layout(self, route, compartments=None):
        """
        Create one seat per berth on the route. Defaults to every compartment
        of the route's train.
        """
        if compartments is None:
            compartments = route.train.compartments.all()
        seats = []
        for compartment in compartments:
            for number in range(1, compartment.berth_count + 1):
                seats.append(self.model(
                    route=route,
                    compartment=compartment,
                    seat_number=f"{compartment.compartment_name}-{number}",
                    berth_type=berth_type_for(number),
                ))
        return self.bulk_create(seats)


class Seat(models.Model):
    """
    A single berth on a route. is_available is false exactly while one
    Confirmed booking holds the seat.
    """
    BERTH_CHOICES = [
        ('LOWER', 'Lower'),
        ('MIDDLE', 'Middle'),
        ('UPPER', 'Upper'),
        ('SIDE_LOWER', 'Side Lower'),
        ('SIDE_UPPER', 'Side Upper'),
    ]

    route = models.ForeignKey(Route, on_delete=models.CASCADE, related_name='seats')
    compartment = models.ForeignKey(Compartment, on_delete=models.CASCADE, related_name='seats')
    seat_number = models.CharField(max_length=20)
    berth_type = models.CharField(max_length=10, choices=BERTH_CHOICES)
    is_available = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SeatManager()

    class Meta:
        db_table = 'seats'
        unique_together = [('route', 'seat_number')]
        indexes = [
            models.Index(fields=['route', 'is_available'], name='seats_route_i_7c4a1b_idx'),
        ]

    def __str__(self):
        return f"{self.seat_number} ({self.berth_type})"
