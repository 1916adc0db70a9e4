from django.contrib import admin
from .models import Post


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ['id', 'title', 'user']
    list_filter = ['user']
    search_fields = ['title', 'body', 'user__username']
    raw_id_fields = ['user']
    list_select_related = ['user']
