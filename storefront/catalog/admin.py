from django.contrib import admin
from .models import Category, Collection, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'parent', 'created_at']
    list_filter = ['parent', 'created_at']
    search_fields = ['name', 'slug']
    ordering = ['name']
    prepopulated_fields = {'slug': ('name',)}


@admin.register(Collection)
class CollectionAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'created_at']
    search_fields = ['name', 'slug']
    ordering = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'price', 'discounted_price', 'stock', 'status', 'created_at']
    list_filter = ['status', 'category', 'collections', 'created_at']
    search_fields = ['name', 'slug', 'description', 'ingredients']
    filter_horizontal = ['collections']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at']
