from django.contrib import admin
from .models import Train, Route, Compartment, Seat


class CompartmentInline(admin.TabularInline):
    model = Compartment
    extra = 0


@admin.register(Train)
class TrainAdmin(admin.ModelAdmin):
    list_display = ['train_number', 'train_name', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['train_number', 'train_name']
    ordering = ['train_number']
    inlines = [CompartmentInline]


@admin.register(Route)
class RouteAdmin(admin.ModelAdmin):
    list_display = ['train', 'source_station', 'destination_station', 'departure_time', 'arrival_time', 'price', 'is_active']
    list_filter = ['is_active', 'source_station', 'destination_station']
    search_fields = ['train__train_number', 'train__train_name', 'source_station', 'destination_station']
    ordering = ['departure_time']


@admin.register(Seat)
class SeatAdmin(admin.ModelAdmin):
    list_display = ['seat_number', 'route', 'berth_type', 'is_available', 'updated_at']
    list_filter = ['is_available', 'berth_type']
    search_fields = ['seat_number', 'route__train__train_number']
    readonly_fields = ['is_available', 'updated_at']
