from django.contrib import admin

from registry.models import Entry, Moderator, OwnerKey, RegistryState


@admin.register(Entry)
class EntryAdmin(admin.ModelAdmin):
    list_display = ("key", "owner", "version", "frozen", "updated_at")
    list_filter = ("frozen",)
    search_fields = ("key", "owner")
    ordering = ("key",)
    readonly_fields = ("created_at", "updated_at", "version")


@admin.register(OwnerKey)
class OwnerKeyAdmin(admin.ModelAdmin):
    list_display = ("owner", "position", "entry")
    search_fields = ("owner",)
    ordering = ("owner", "position")


@admin.register(Moderator)
class ModeratorAdmin(admin.ModelAdmin):
    list_display = ("identity", "added_at")
    search_fields = ("identity",)


@admin.register(RegistryState)
class RegistryStateAdmin(admin.ModelAdmin):
    list_display = ("admin", "paused", "sequence")
    readonly_fields = ("admin", "sequence")
