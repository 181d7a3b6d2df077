from django.contrib import admin
from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(admin.ModelAdmin):
    list_display = ('id', 'email', 'is_staff', 'projects_created', 'total_contributed', 'total_raised', 'votes_cast', 'created_at')
    list_filter = ('is_staff', 'is_active')
    search_fields = ('email', 'first_name', 'last_name')
    readonly_fields = ('projects_created', 'total_contributed', 'total_raised', 'votes_cast')
