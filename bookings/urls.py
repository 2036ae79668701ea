"""
URL configuration for bookings app.
"""
from django.urls import path
from .views import (
    BookingCreateView, MyBookingsView, BookingDetailView, BookingCancelView,
    RACQueueView, WaitlistView,
)

urlpatterns = [
    path('', BookingCreateView.as_view(), name='booking_create'),
    path('my/', MyBookingsView.as_view(), name='my_bookings'),
    path('<int:booking_id>/', BookingDetailView.as_view(), name='booking_detail'),
    path('<int:booking_id>/cancel/', BookingCancelView.as_view(), name='booking_cancel'),
    path('queues/<int:train_id>/<int:route_id>/rac/', RACQueueView.as_view(), name='rac_queue'),
    path('queues/<int:train_id>/<int:route_id>/waitlist/', WaitlistView.as_view(), name='waitlist'),
]
