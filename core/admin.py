from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['email', 'name', 'category', 'is_admin', 'is_active', 'created_at']
    list_filter = ['category', 'is_admin', 'is_active']
    search_fields = ['email', 'name']
    ordering = ['-created_at']
