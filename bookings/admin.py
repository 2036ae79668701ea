from django.contrib import admin
from .models import Booking, Payment, RACEntry, WaitlistEntry


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    can_delete = False
    readonly_fields = ['amount', 'status', 'gateway_reference', 'created_at']


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Read-mostly: status changes go through the reservation coordinator."""
    list_display = ['pnr', 'user', 'passenger_name', 'route', 'seat', 'status', 'booking_time']
    list_filter = ['status', 'booking_time']
    search_fields = ['pnr', 'user__email', 'passenger_name', 'train__train_number']
    readonly_fields = ['pnr', 'status', 'seat', 'booking_time', 'confirmed_at', 'promoted_at', 'cancelled_at']
    inlines = [PaymentInline]
    ordering = ['-booking_time']


class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ['route', 'position', 'status', 'user', 'booking', 'request_time']
    list_filter = ['status']
    search_fields = ['user__email', 'booking__pnr']
    readonly_fields = ['position', 'status', 'status_changed_at', 'request_time']
    ordering = ['route', 'status', 'position']


admin.site.register(RACEntry, QueueEntryAdmin)
admin.site.register(WaitlistEntry, QueueEntryAdmin)
