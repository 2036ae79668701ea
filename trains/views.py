"""Views for train search, catalog management and seat availability."""
from django.db.models import Count, Q
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample, inline_serializer
from rest_framework import serializers as drf_serializers

from utils.exceptions import NotFound
from .inventory import SeatInventory
from .models import Train, Route
from .serializers import RouteListSerializer, TrainWithRouteSerializer, TrainSerializer, SeatSerializer
from .permissions import IsAdminUser


# Response serializers for Swagger
class TrainSearchResponseSerializer(drf_serializers.Serializer):
    count = drf_serializers.IntegerField()
    limit = drf_serializers.IntegerField()
    offset = drf_serializers.IntegerField()
    results = RouteListSerializer(many=True)


class TrainListResponseSerializer(drf_serializers.Serializer):
    count = drf_serializers.IntegerField()
    results = TrainSerializer(many=True)


class SeatAvailabilityResponseSerializer(drf_serializers.Serializer):
    train_id = drf_serializers.IntegerField()
    route_id = drf_serializers.IntegerField()
    available_count = drf_serializers.IntegerField()
    available = SeatSerializer(many=True)
    recommended = SeatSerializer(many=True)


class TrainSearchView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Search trains between stations",
        description="Search routes between source and destination stations with live seat counts. Logs request to MongoDB.",
        parameters=[
            OpenApiParameter(name='source', type=str, required=True, description='Source station (e.g., Delhi)'),
            OpenApiParameter(name='destination', type=str, required=True, description='Destination station (e.g., Mumbai)'),
            OpenApiParameter(name='limit', type=int, required=False, description='Results per page (default: 10, max: 100)'),
            OpenApiParameter(name='offset', type=int, required=False, description='Pagination offset (default: 0)'),
        ],
        responses={200: TrainSearchResponseSerializer},
        tags=["Trains"]
    )
    def get(self, request):
        source = request.query_params.get('source', '').strip().title()
        destination = request.query_params.get('destination', '').strip().title()
        limit = request.query_params.get('limit', 10)
        offset = request.query_params.get('offset', 0)

        if not source or not destination:
            return Response(
                {'success': False, 'error': 'Both source and destination are required.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            limit = min(max(int(limit), 1), 100)
            offset = max(int(offset), 0)
        except ValueError:
            limit, offset = 10, 0

        queryset = Route.objects.filter(
            source_station__iexact=source, destination_station__iexact=destination,
            is_active=True, train__is_active=True
        ).select_related('train').annotate(
            total_seats=Count('seats'),
            available_seats=Count('seats', filter=Q(seats__is_available=True)),
        ).order_by('departure_time', 'id')

        total_count = queryset.count()
        routes = queryset[offset:offset + limit]

        return Response({
            'count': total_count, 'limit': limit, 'offset': offset,
            'results': RouteListSerializer(routes, many=True).data
        })


class TrainManageView(APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        summary="Create train with route (Admin only)",
        description="Create a train, its compartments and a route, and lay out the route's seats. Requires admin privileges.",
        request=TrainWithRouteSerializer,
        responses={201: inline_serializer(
            name='TrainCreateResponse',
            fields={
                'message': drf_serializers.CharField(),
                'train': inline_serializer(name='TrainInfo', fields={
                    'id': drf_serializers.IntegerField(),
                    'train_number': drf_serializers.CharField(),
                    'train_name': drf_serializers.CharField(),
                }),
                'route': inline_serializer(name='RouteInfo', fields={
                    'id': drf_serializers.IntegerField(),
                    'source_station': drf_serializers.CharField(),
                    'destination_station': drf_serializers.CharField(),
                    'seat_count': drf_serializers.IntegerField(),
                }),
            }
        )},
        examples=[
            OpenApiExample(
                "Create Train",
                value={
                    "train_number": "12951",
                    "train_name": "Mumbai Rajdhani",
                    "compartments": [
                        {"compartment_name": "B1", "class_type": "3A", "berth_count": 72},
                        {"compartment_name": "S1", "class_type": "SL", "berth_count": 72}
                    ],
                    "source_station": "Delhi",
                    "destination_station": "Mumbai",
                    "departure_time": "16:55:00",
                    "arrival_time": "08:35:00",
                    "price": "2500.00"
                },
                request_only=True
            )
        ],
        tags=["Trains (Admin)"]
    )
    def post(self, request):
        serializer = TrainWithRouteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = serializer.save()
        train, route = result['train'], result['route']
        return Response({
            'message': f"Train {'created' if result['created'] else 'updated'} successfully",
            'train': {'id': train.id, 'train_number': train.train_number, 'train_name': train.train_name},
            'route': {'id': route.id, 'source_station': route.source_station,
                      'destination_station': route.destination_station,
                      'departure_time': str(route.departure_time), 'arrival_time': str(route.arrival_time),
                      'price': str(route.price), 'seat_count': result['seat_count']}
        }, status=status.HTTP_201_CREATED if result['created'] else status.HTTP_200_OK)

    @extend_schema(
        summary="List all trains (Admin only)",
        description="Get list of all active trains. Requires admin privileges.",
        responses={200: TrainListResponseSerializer},
        tags=["Trains (Admin)"]
    )
    def get(self, request):
        trains = Train.objects.filter(is_active=True).order_by('train_number')
        return Response({'count': trains.count(), 'results': TrainSerializer(trains, many=True).data})


class SeatAvailabilityView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Available seats on a route",
        description="Lists free seats of a (train, route) and the subset recommended for the caller's category.",
        responses={200: SeatAvailabilityResponseSerializer},
        tags=["Trains"]
    )
    def get(self, request, train_id, route_id):
        if not Route.objects.filter(id=route_id, train_id=train_id).exists():
            raise NotFound("Route not found for this train.")

        inventory = SeatInventory()
        available = inventory.list_available(train_id, route_id)
        recommended = inventory.recommend(train_id, request.user.category, route_id=route_id)

        return Response({
            'train_id': train_id,
            'route_id': route_id,
            'available_count': len(available),
            'available': SeatSerializer(available, many=True).data,
            'recommended': SeatSerializer(recommended, many=True).data,
        })
