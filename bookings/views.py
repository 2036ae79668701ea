"""Views for booking management."""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample, inline_serializer
from rest_framework import serializers as drf_serializers

from trains.models import Route
from trains.permissions import IsAdminUser
from utils.exceptions import NotFound
from .models import Booking
from .serializers import BookingSerializer, BookingCreateSerializer, QueueEntrySerializer
from .services import ReservationCoordinator


# Response serializers for Swagger
class BookingResultSerializer(drf_serializers.Serializer):
    success = drf_serializers.BooleanField()
    status = drf_serializers.CharField()
    booking_id = drf_serializers.IntegerField()
    message = drf_serializers.CharField()
    pnr = drf_serializers.CharField()
    position = drf_serializers.IntegerField(allow_null=True)
    payment_status = drf_serializers.CharField(allow_null=True)


class BookingListResponseSerializer(drf_serializers.Serializer):
    count = drf_serializers.IntegerField()
    results = BookingSerializer(many=True)


class QueueResponseSerializer(drf_serializers.Serializer):
    train_id = drf_serializers.IntegerField()
    route_id = drf_serializers.IntegerField()
    active_count = drf_serializers.IntegerField()
    results = QueueEntrySerializer(many=True)


ErrorResponseSerializer = inline_serializer(
    name='ErrorResponse',
    fields={'success': drf_serializers.BooleanField(), 'error': drf_serializers.CharField()}
)


def _owned_booking(request, booking_id):
    """The booking if the caller owns it or is an admin, else NotFound."""
    booking = ReservationCoordinator().get_booking(booking_id)
    if booking is None or (booking.user_id != request.user.id and not request.user.is_admin):
        raise NotFound("Booking not found.")
    return booking


class BookingCreateView(APIView):
    """Create a new booking."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Book a seat on a route",
        description=(
            "Confirms the requested seat when it is free. Without a seat, or when the seat "
            "is taken, the request joins RAC and, once RAC is full, the waitlist."
        ),
        request=BookingCreateSerializer,
        responses={201: BookingResultSerializer, 400: ErrorResponseSerializer, 409: ErrorResponseSerializer},
        examples=[
            OpenApiExample(
                "Book a specific seat",
                value={
                    "train_id": 1,
                    "route_id": 1,
                    "seat_id": 12,
                    "passenger_name": "John Doe",
                    "passenger_age": 30
                },
                request_only=True
            )
        ],
        tags=["Bookings"]
    )
    def post(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ReservationCoordinator().create_booking(
            user_id=request.user.id,
            train_id=data['train_id'],
            route_id=data['route_id'],
            seat_id=data.get('seat_id'),
            passenger_name=data['passenger_name'],
            passenger_age=data['passenger_age'],
        )
        return Response(result.as_dict(), status=status.HTTP_201_CREATED)


class MyBookingsView(APIView):
    """Get user's booking history."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get my bookings",
        description="Returns all bookings of the authenticated user, newest first",
        responses={200: BookingListResponseSerializer},
        tags=["Bookings"]
    )
    def get(self, request):
        bookings = ReservationCoordinator().list_bookings_for_user(request.user.id)
        return Response({
            'count': len(bookings),
            'results': BookingSerializer(bookings, many=True).data
        })


class BookingDetailView(APIView):
    """Get booking by id."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get booking",
        description="Returns booking details. Users can only view their own bookings; admins can view any.",
        parameters=[
            OpenApiParameter(name='booking_id', type=int, location='path', description='Booking id')
        ],
        responses={200: BookingSerializer, 404: ErrorResponseSerializer},
        tags=["Bookings"]
    )
    def get(self, request, booking_id):
        return Response(BookingSerializer(_owned_booking(request, booking_id)).data)


class BookingCancelView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel booking",
        description=(
            "Cancels a booking. A freed seat promotes the head of RAC, or of the waitlist "
            "when RAC is empty. Cancelling a queued booking removes it from its queue."
        ),
        request=None,
        responses={200: BookingSerializer, 404: ErrorResponseSerializer, 409: ErrorResponseSerializer},
        tags=["Bookings"]
    )
    def post(self, request, booking_id):
        booking = _owned_booking(request, booking_id)
        if booking.is_cancelled:
            return Response(
                {'success': False, 'error': 'Booking is already cancelled.'},
                status=status.HTTP_409_CONFLICT
            )

        coordinator = ReservationCoordinator()
        if not coordinator.cancel_booking(booking.id):
            return Response(
                {'success': False, 'error': 'Booking is already cancelled.'},
                status=status.HTTP_409_CONFLICT
            )
        return Response(BookingSerializer(coordinator.get_booking(booking.id)).data)


class QueueView(APIView):
    """Read-only snapshot of one queue of a (train, route) scope."""
    permission_classes = [IsAuthenticated, IsAdminUser]
    queue = None

    def get(self, request, train_id, route_id):
        if not Route.objects.filter(id=route_id, train_id=train_id).exists():
            raise NotFound("Route not found for this train.")

        coordinator = ReservationCoordinator()
        if self.queue == 'rac':
            entries = coordinator.get_rac_queue(train_id, route_id)
        else:
            entries = coordinator.get_waitlist(train_id, route_id)

        return Response({
            'train_id': train_id,
            'route_id': route_id,
            'active_count': sum(1 for entry in entries if entry.status == entry.ACTIVE),
            'results': QueueEntrySerializer(entries, many=True).data
        })


class RACQueueView(QueueView):
    queue = 'rac'

    @extend_schema(
        summary="RAC queue (Admin only)",
        description="RAC entries of a route: active ones by position, then promoted and cancelled ones.",
        responses={200: QueueResponseSerializer},
        tags=["Queues (Admin)"]
    )
    def get(self, request, train_id, route_id):
        return super().get(request, train_id, route_id)


class WaitlistView(QueueView):
    queue = 'waitlist'

    @extend_schema(
        summary="Waitlist (Admin only)",
        description="Waitlist entries of a route: active ones by position, then promoted and cancelled ones.",
        responses={200: QueueResponseSerializer},
        tags=["Queues (Admin)"]
    )
    def get(self, request, train_id, route_id):
        return super().get(request, train_id, route_id)
