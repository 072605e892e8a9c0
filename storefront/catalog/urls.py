from django.urls import path
from .views import (
    category_list_create, category_roots, category_subcategories, category_detail, category_by_slug,
    collection_list_create, collection_detail, collection_by_slug, ensure_featured_collection,
    product_list_create, product_detail, product_random,
    storage_init, image_upload,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/roots/', category_roots, name='category-roots'),
    path('categories/slug/<slug:slug>/', category_by_slug, name='category-by-slug'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),
    path('categories/<int:pk>/subcategories/', category_subcategories, name='category-subcategories'),

    # Collection endpoints
    path('collections/', collection_list_create, name='collection-list-create'),
    path('collections/slug/<slug:slug>/', collection_by_slug, name='collection-by-slug'),
    path('collections/<int:pk>/', collection_detail, name='collection-detail'),
    path('setup/featured-collection/', ensure_featured_collection, name='ensure-featured-collection'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/random/', product_random, name='product-random'),
    path('products/<int:pk>/', product_detail, name='product-detail'),

    # Blob storage
    path('storage/init/', storage_init, name='storage-init'),
    path('uploads/', image_upload, name='image-upload'),
]
