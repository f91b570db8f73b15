from django.contrib import admin
from django.utils.html import format_html
from import_export import resources, fields
from import_export.widgets import ForeignKeyWidget
from import_export.admin import ImportExportModelAdmin

from apps.accounts.models import User
from apps.drivers.models import Driver
from .models import Delivery


class DeliveryResource(resources.ModelResource):
    """
    Upstream systems hand deliveries over as spreadsheets;
    senders and drivers are linked by phone number.
    """
    sender = fields.Field(
        column_name='sender_phone',
        attribute='sender',
        widget=ForeignKeyWidget(User, 'phone')
    )

    driver = fields.Field(
        column_name='driver_phone',
        attribute='driver',
        widget=ForeignKeyWidget(Driver, 'user__phone')
    )

    class Meta:
        model = Delivery
        fields = (
            'id',
            'sender',
            'driver',
            'status',
            'pickup_address',
            'pickup_lat',
            'pickup_lng',
            'dropoff_address',
            'dropoff_lat',
            'dropoff_lng',
            'vehicle_type',
            'scheduled_time',
            'price',
            'escrow_active',
            'escrow_fee',
            'receiver_name',
            'receiver_phone',
            'receiver_note',
            'created_at',
        )
        export_order = fields


STATUS_COLORS = {
    'upcoming': '#6c757d',
    'pending': '#ffc107',
    'accepted': '#007bff',
    'in-transit': '#17a2b8',
    'completed': '#28a745',
    'cancelled': '#dc3545',
}


@admin.register(Delivery)
class DeliveryAdmin(ImportExportModelAdmin):
    resource_class = DeliveryResource

    list_display = (
        'id',
        'sender_info',
        'driver_info',
        'status_badge',
        'price',
        'dropoff_address',
        'created_at_date'
    )
    list_filter = ('status', 'vehicle_type', 'escrow_active', 'created_at')
    search_fields = (
        'id',
        'sender__phone',
        'driver__user__phone',
        'pickup_address',
        'dropoff_address',
        'receiver_phone',
    )
    list_select_related = ('sender', 'driver', 'driver__user')
    raw_id_fields = ('sender', 'driver')
    list_per_page = 25

    fieldsets = (
        ('Parties', {
            'fields': ('sender', 'driver', 'status')
        }),
        ('Route', {
            'fields': (
                'pickup_address', ('pickup_lat', 'pickup_lng'),
                'dropoff_address', ('dropoff_lat', 'dropoff_lng'),
                'vehicle_type', 'scheduled_time',
            )
        }),
        ('Pricing & Escrow', {
            'fields': ('price', 'total_cost', 'escrow_active', 'escrow_status', 'escrow_fee')
        }),
        ('Receiver', {
            'fields': ('receiver_name', 'receiver_phone', 'receiver_note')
        }),
        ('Proof', {
            'fields': ('photos',)
        }),
        ('Timestamps', {
            'fields': ('accepted_at', 'started_at', 'completed_at', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    # Lifecycle fields move only through the driver API
    readonly_fields = ('photos', 'accepted_at', 'started_at', 'completed_at', 'created_at', 'updated_at')

    @admin.display(description="Sender", ordering='sender__phone')
    def sender_info(self, obj):
        return obj.sender.phone

    @admin.display(description="Driver", ordering='driver__user__phone')
    def driver_info(self, obj):
        if obj.driver:
            return obj.driver.user.phone
        return "Unclaimed"

    @admin.display(description="Status")
    def status_badge(self, obj):
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; border-radius: 4px; font-size: 0.8em;">{}</span>',
            STATUS_COLORS.get(obj.status, '#6c757d'),
            obj.get_status_display()
        )

    @admin.display(description="Created", ordering='created_at')
    def created_at_date(self, obj):
        return obj.created_at.strftime('%d/%m/%Y %H:%M')
