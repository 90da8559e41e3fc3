from django.contrib import admin

from .models import Job


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ("id", "owner", "original_name", "status", "format", "attempt", "started_at", "updated_at")
    list_filter = ("status", "format")
    search_fields = ("id", "owner", "original_name")
    readonly_fields = ("created_at", "updated_at")
