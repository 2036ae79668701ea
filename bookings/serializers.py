"""
Serializers for booking management.
"""
from django.core.exceptions import ObjectDoesNotExist
from rest_framework import serializers

from utils.transactions import get_engine_setting
from .models import Booking


class BookingCreateSerializer(serializers.Serializer):
    """
    Shape check for a booking request. Passenger rules are enforced again by
    the coordinator, which is the single authority on them.
    """
    train_id = serializers.IntegerField(min_value=1)
    route_id = serializers.IntegerField(min_value=1)
    seat_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    passenger_name = serializers.CharField(max_length=get_engine_setting('PASSENGER_NAME_MAX_LENGTH'))
    passenger_age = serializers.IntegerField()


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for viewing bookings."""
    train_details = serializers.SerializerMethodField()
    seat = serializers.SerializerMethodField()
    payment = serializers.SerializerMethodField()
    queue_position = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            'id', 'pnr', 'passenger_name', 'passenger_age', 'status',
            'booking_time', 'confirmed_at', 'promoted_at', 'cancelled_at',
            'train_details', 'seat', 'payment', 'queue_position'
        ]

    def get_train_details(self, obj):
        route = obj.route
        return {
            'train_id': obj.train_id,
            'train_number': obj.train.train_number,
            'train_name': obj.train.train_name,
            'route_id': route.id,
            'source_station': route.source_station,
            'destination_station': route.destination_station,
            'departure_time': str(route.departure_time),
            'arrival_time': str(route.arrival_time),
            'price': str(route.price),
        }

    def get_seat(self, obj):
        if obj.seat is None:
            return None
        return {
            'id': obj.seat.id,
            'seat_number': obj.seat.seat_number,
            'berth_type': obj.seat.berth_type,
            'compartment': obj.seat.compartment.compartment_name,
        }

    def get_payment(self, obj):
        try:
            payment = obj.payment
        except ObjectDoesNotExist:
            return None
        return {
            'amount': str(payment.amount),
            'status': payment.status,
            'gateway_reference': payment.gateway_reference,
        }

    def get_queue_position(self, obj):
        """Current position for bookings still waiting in RAC or the waitlist."""
        relation = {Booking.RAC: 'rac_entry', Booking.WAITLISTED: 'waitlist_entry'}.get(obj.status)
        if relation is None:
            return None
        try:
            entry = getattr(obj, relation)
        except ObjectDoesNotExist:
            return None
        return entry.position if entry.status == entry.ACTIVE else None


class QueueEntrySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    position = serializers.IntegerField()
    status = serializers.CharField()
    user_id = serializers.IntegerField()
    user_email = serializers.EmailField(source='user.email')
    booking_id = serializers.IntegerField(allow_null=True)
    request_time = serializers.DateTimeField()
    status_changed_at = serializers.DateTimeField(allow_null=True)
