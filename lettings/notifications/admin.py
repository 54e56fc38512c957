from django.contrib import admin

from notifications.models import DeliveryAttempt, NotificationPreference, NotificationTemplate, OutboundNotification


@admin.register(NotificationTemplate)
class NotificationTemplateAdmin(admin.ModelAdmin):
    list_display = ("key", "channel", "subject", "is_active", "updated_at")
    list_filter = ("channel", "is_active")
    search_fields = ("key", "subject")


class DeliveryAttemptInline(admin.TabularInline):
    model = DeliveryAttempt
    extra = 0
    readonly_fields = ("provider", "success", "response", "created_at")


@admin.register(OutboundNotification)
class OutboundNotificationAdmin(admin.ModelAdmin):
    list_display = ("user", "channel", "template_key", "priority", "status", "created_at")
    list_filter = ("channel", "status", "priority")
    search_fields = ("user__username", "template_key")
    inlines = [DeliveryAttemptInline]


@admin.register(NotificationPreference)
class NotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = ("user", "email_enabled", "reminders_enabled")
    list_filter = ("email_enabled", "reminders_enabled")
    search_fields = ("user__username", "user__email")
