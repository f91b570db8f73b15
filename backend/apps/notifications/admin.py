# apps/notifications/admin.py
from django.contrib import admin
from django.utils.html import format_html
from django.utils.timezone import localtime
from .models import PhoneVerificationCode, Notification


@admin.register(PhoneVerificationCode)
class PhoneVerificationCodeAdmin(admin.ModelAdmin):
    list_display = ('phone', 'purpose', 'code_masked', 'attempts', 'expiry_badge', 'created_at')
    list_filter = ('purpose', 'created_at')
    search_fields = ('phone',)
    list_per_page = 25
    actions = ['reset_attempts']
    readonly_fields = ('created_at', 'expires_at')
    exclude = ('code',)

    @admin.display(description="Code")
    def code_masked(self, obj):
        return "●●●●●●"

    @admin.display(description="Expiry")
    def expiry_badge(self, obj):
        if obj.is_expired():
            return format_html('<span style="color: red; font-weight: bold;">✗ Expired</span>')
        return format_html('<span style="color: green;">✓ Active</span>')

    @admin.action(description='Reset attempts for selected codes')
    def reset_attempts(self, request, queryset):
        updated = queryset.update(attempts=0)
        self.message_user(request, f"Attempts reset for {updated} codes.")


PRIORITY_COLORS = {
    'low': '#6c757d',
    'medium': '#007bff',
    'high': '#dc3545',
}


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('user_phone', 'type', 'priority_badge', 'title', 'is_read', 'sent')
    list_filter = ('type', 'priority', 'is_read', 'created_at')
    search_fields = ('user__phone', 'user__email', 'title', 'message')
    list_select_related = ('user',)
    raw_id_fields = ('user',)
    list_per_page = 25

    fieldsets = (
        ('Recipient', {'fields': ('user',)}),
        ('Notification Details', {'fields': ('type', 'priority', 'title', 'message', 'data', 'action_button')}),
        ('State', {'fields': ('is_read', 'read_at', 'expires_at', 'created_at')}),
    )
    readonly_fields = ('created_at', 'read_at')

    @admin.display(description="User", ordering='user__phone')
    def user_phone(self, obj):
        return obj.user.phone

    @admin.display(description="Priority")
    def priority_badge(self, obj):
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px; font-size: 0.8em;">{}</span>',
            PRIORITY_COLORS.get(obj.priority, '#6c757d'),
            obj.get_priority_display()
        )

    @admin.display(description="Sent", ordering='created_at')
    def sent(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M')
