from django.contrib import admin

from squads.models import Squad, SquadMember


class SquadMemberInline(admin.TabularInline):
    model = SquadMember
    extra = 0
    raw_id_fields = ("user",)


@admin.register(Squad)
class SquadAdmin(admin.ModelAdmin):
    list_display = ("name", "privacy", "created_by", "created_at")
    list_filter = ("privacy",)
    search_fields = ("name",)
    raw_id_fields = ("created_by",)
    inlines = (SquadMemberInline,)
