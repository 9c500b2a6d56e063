from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import CustomUser
from .forms import CustomUserCreationForm, CustomUserChangeForm


@admin.register(CustomUser)
class CustomUserAdmin(BaseUserAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser

    list_display = ("username", "full_name", "role", "is_active", "is_staff")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("username", "full_name", "whatsapp_phone")

    def get_fieldsets(self, request, obj=None):
        base = super().get_fieldsets(request, obj)
        if obj is None:
            return base
        # Drop first/last name; full_name replaces them
        trimmed = []
        for name, opts in base:
            fields = tuple(f for f in opts.get("fields", ()) if f not in ("first_name", "last_name"))
            if fields:
                trimmed.append((name, {**opts, "fields": fields}))
        return tuple(trimmed) + ((None, {"fields": ("full_name", "role", "whatsapp_phone")}),)

    def get_add_fieldsets(self, request):
        return (
            (None, {
                "classes": ("wide",),
                "fields": ("username", "password1", "password2", "full_name", "role", "whatsapp_phone"),
            }),
        )
