"""
Serializers for the train catalog and seat inventory.
"""
from rest_framework import serializers
from django.db import transaction

from .models import Train, Route, Compartment, Seat


class TrainSerializer(serializers.ModelSerializer):
    """Serializer for Train model."""

    class Meta:
        model = Train
        fields = ['id', 'train_number', 'train_name', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']


class CompartmentSerializer(serializers.ModelSerializer):

    class Meta:
        model = Compartment
        fields = ['compartment_name', 'class_type', 'berth_count']


class SeatSerializer(serializers.ModelSerializer):
    compartment = serializers.CharField(source='compartment.compartment_name', read_only=True)
    class_type = serializers.CharField(source='compartment.class_type', read_only=True)

    class Meta:
        model = Seat
        fields = ['id', 'seat_number', 'compartment', 'class_type', 'berth_type', 'is_available']


class RouteListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for train search results."""
    train_id = serializers.IntegerField(source='train.id')
    train_number = serializers.CharField(source='train.train_number')
    train_name = serializers.CharField(source='train.train_name')
    total_seats = serializers.IntegerField(read_only=True)
    available_seats = serializers.IntegerField(read_only=True)

    class Meta:
        model = Route
        fields = [
            'id', 'train_id', 'train_number', 'train_name',
            'source_station', 'destination_station',
            'departure_time', 'arrival_time', 'price',
            'total_seats', 'available_seats'
        ]


class TrainWithRouteSerializer(serializers.Serializer):
    """
    Creates a train (or updates its name), its compartments and one route,
    then lays out a seat per berth on that route.
    """
    train_number = serializers.CharField(max_length=10)
    train_name = serializers.CharField(max_length=255)
    compartments = CompartmentSerializer(many=True)

    source_station = serializers.CharField(max_length=100)
    destination_station = serializers.CharField(max_length=100)
    departure_time = serializers.TimeField()
    arrival_time = serializers.TimeField()
    price = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0.01)

    def validate_train_number(self, value):
        """Validate and normalize train number."""
        if not value.replace('-', '').isalnum():
            raise serializers.ValidationError("Train number must be alphanumeric.")
        return value.upper()

    def validate_compartments(self, value):
        if not value:
            raise serializers.ValidationError("At least one compartment is required.")
        names = [c['compartment_name'].upper() for c in value]
        if len(names) != len(set(names)):
            raise serializers.ValidationError("Compartment names must be unique.")
        return value

    def validate(self, attrs):
        source = attrs.get('source_station', '').strip().title()
        destination = attrs.get('destination_station', '').strip().title()

        if source == destination:
            raise serializers.ValidationError({
                'destination_station': "Source and destination cannot be the same."
            })

        attrs['source_station'] = source
        attrs['destination_station'] = destination
        return attrs

    def create(self, validated_data):
        with transaction.atomic():
            train, created = Train.objects.update_or_create(
                train_number=validated_data['train_number'],
                defaults={'train_name': validated_data['train_name'], 'is_active': True}
            )
            compartments = []
            for compartment in validated_data['compartments']:
                coach, _ = Compartment.objects.update_or_create(
                    train=train,
                    compartment_name=compartment['compartment_name'].upper(),
                    defaults={
                        'class_type': compartment.get('class_type', 'SL'),
                        'berth_count': compartment.get('berth_count', 72),
                    }
                )
                compartments.append(coach)
            route = Route.objects.create(
                train=train,
                source_station=validated_data['source_station'],
                destination_station=validated_data['destination_station'],
                departure_time=validated_data['departure_time'],
                arrival_time=validated_data['arrival_time'],
                price=validated_data['price'],
            )
            seats = Seat.objects.create_layout(route, compartments)

        return {
            'train': train,
            'route': route,
            'seat_count': len(seats),
            'created': created
        }
