from django.contrib import admin
from django.contrib.auth import get_user_model
from django.utils.html import format_html
from import_export import resources, fields
from import_export.widgets import ForeignKeyWidget
from import_export.admin import ImportExportModelAdmin

from . import registration as reg
from .models import Driver

User = get_user_model()


class DriverResource(resources.ModelResource):
    user = fields.Field(
        column_name='user_phone',
        attribute='user',
        widget=ForeignKeyWidget(User, 'phone')
    )

    class Meta:
        model = Driver
        fields = (
            'id', 'user', 'registration_step', 'verified', 'earn_type', 'city',
            'is_available', 'total_deliveries', 'created_at',
        )
        export_order = fields


STEP_COLORS = {
    'verified_phone': '#6c757d',
    'basic_info_completed': '#17a2b8',
    'earn_type_completed': '#007bff',
    'documents_uploading': '#ffc107',
    'completed': '#28a745',
}


@admin.register(Driver)
class DriverAdmin(ImportExportModelAdmin):
    resource_class = DriverResource

    list_display = (
        'phone', 'full_name', 'step_badge', 'verified', 'earn_type', 'city',
        'is_available', 'documents_count', 'total_deliveries',
    )
    list_filter = ('registration_step', 'verified', 'is_available', 'earn_type', 'city')
    search_fields = ('user__phone', 'user__email', 'user__first_name', 'user__last_name', 'city')
    list_select_related = ('user',)
    raw_id_fields = ('user',)
    list_per_page = 25
    actions = ['mark_unavailable']

    fieldsets = (
        ('Driver', {'fields': ('user', 'registration_step', 'verified')}),
        ('Work Profile', {'fields': ('earn_type', 'city', 'referral_code', 'is_available')}),
        ('Location', {'fields': ('current_lat', 'current_lng', 'location_updated_at')}),
        ('Documents', {'fields': ('documents',)}),
        ('Stats', {'fields': ('total_deliveries', 'created_at', 'updated_at'), 'classes': ('collapse',)}),
    )
    # Onboarding state moves only through the registration API
    readonly_fields = ('registration_step', 'verified', 'documents', 'total_deliveries', 'created_at', 'updated_at')

    @admin.display(description="Phone", ordering='user__phone')
    def phone(self, obj):
        return obj.user.phone

    @admin.display(description="Name")
    def full_name(self, obj):
        return obj.user.full_name

    @admin.display(description="Step", ordering='registration_step')
    def step_badge(self, obj):
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px; font-size: 0.8em;">{}</span>',
            STEP_COLORS.get(obj.registration_step, '#6c757d'),
            obj.get_registration_step_display()
        )

    @admin.display(description="Docs")
    def documents_count(self, obj):
        uploaded = set((obj.documents or {}).keys())
        required = len(set(reg.REQUIRED_DOCUMENTS) & uploaded)
        return f"{len(uploaded)} ({required}/{len(reg.REQUIRED_DOCUMENTS)} required)"

    @admin.action(description='Mark selected drivers offline')
    def mark_unavailable(self, request, queryset):
        updated = queryset.update(is_available=False)
        self.message_user(request, f"{updated} drivers marked offline.")
