# users/admin.py
from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("id", "username", "name", "email")
    search_fields = ("username", "name", "email")
    ordering = ("id",)
