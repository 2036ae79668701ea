"""
URL configuration for trains app.
"""
from django.urls import path
from .views import TrainSearchView, TrainManageView, SeatAvailabilityView

urlpatterns = [
    path('search/', TrainSearchView.as_view(), name='train_search'),
    path('<int:train_id>/routes/<int:route_id>/seats/', SeatAvailabilityView.as_view(), name='seat_availability'),
    path('', TrainManageView.as_view(), name='train_manage'),
]
