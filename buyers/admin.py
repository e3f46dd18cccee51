from django.contrib import admin

from .models import Buyer, BuyerHistory


@admin.register(Buyer)
class BuyerAdmin(admin.ModelAdmin):
    list_display = (
        "full_name",
        "phone",
        "city",
        "property_type",
        "bhk",
        "status",
        "timeline",
        "owner",
        "updated_at",
    )
    search_fields = ("full_name", "phone", "email")
    list_filter = ("city", "property_type", "status", "timeline")
    ordering = ("-updated_at",)
    readonly_fields = ("id", "created_at", "updated_at")


@admin.register(BuyerHistory)
class BuyerHistoryAdmin(admin.ModelAdmin):
    list_display = ("buyer_id", "action", "changed_by", "changed_at")
    list_filter = ("changed_at",)
    fields = ("id", "buyer_id", "changed_by", "changed_at", "diff")
    readonly_fields = ("id", "buyer_id", "changed_by", "changed_at", "diff")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
