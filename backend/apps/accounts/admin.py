from django import forms
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.utils.html import format_html
from import_export import fields, resources
from import_export.admin import ImportExportMixin
from .models import User, UserRole


class PhoneUserCreationForm(forms.ModelForm):
    """Staff create accounts by phone; the owner sets a password later."""

    class Meta:
        model = User
        fields = ('phone', 'first_name', 'last_name', 'email')

    def save(self, commit=True):
        user = super().save(commit=False)
        user.email = user.email or None
        user.set_unusable_password()
        if commit:
            user.save()
        return user


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 0
    fields = ('role',)


class UserResource(resources.ModelResource):
    roles = fields.Field(column_name='roles')

    class Meta:
        model = User
        import_id_fields = ('phone',)
        fields = ('id', 'phone', 'first_name', 'last_name', 'email', 'is_active', 'created_at', 'roles')
        export_order = fields

    def dehydrate_roles(self, user):
        return ",".join(sorted(r.role for r in user.roles.all()))


@admin.register(User)
class ErrandUserAdmin(ImportExportMixin, UserAdmin):
    resource_class = UserResource
    add_form = PhoneUserCreationForm

    list_display = ('phone', 'full_name', 'email', 'roles_display', 'driver_link', 'is_active', 'created_at')
    list_filter = ('is_active', 'is_staff', 'roles__role')
    search_fields = ('phone', 'email', 'first_name', 'last_name')
    ordering = ('-created_at',)
    list_per_page = 50
    actions = ['set_active', 'set_inactive']
    inlines = [UserRoleInline]
    readonly_fields = ('created_at', 'last_login')

    fieldsets = (
        (None, {'fields': ('phone', 'password')}),
        ('Profile', {'fields': ('first_name', 'last_name', 'email')}),
        ('Access', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups'), 'classes': ('collapse',)}),
        ('Activity', {'fields': ('created_at', 'last_login')}),
    )
    add_fieldsets = (
        (None, {'classes': ('wide',), 'fields': ('phone', 'first_name', 'last_name', 'email')}),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('driver_profile').prefetch_related('roles')

    @admin.display(description="Roles")
    def roles_display(self, obj):
        return ", ".join(r.get_role_display() for r in obj.roles.all()) or "-"

    @admin.display(description="Driver")
    def driver_link(self, obj):
        driver = getattr(obj, 'driver_profile', None)
        if driver is None:
            return "-"
        return format_html(
            '<a href="/admin/drivers/driver/{}/change/">{}</a>',
            driver.pk,
            driver.get_registration_step_display(),
        )

    @admin.action(description='Activate selected accounts')
    def set_active(self, request, queryset):
        self.message_user(request, f"{queryset.update(is_active=True)} accounts activated.")

    @admin.action(description='Deactivate selected accounts')
    def set_inactive(self, request, queryset):
        self.message_user(request, f"{queryset.update(is_active=False)} accounts deactivated.")


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ('user', 'role')
    list_filter = ('role',)
    search_fields = ('user__phone',)
    raw_id_fields = ('user',)
    list_select_related = ('user',)
