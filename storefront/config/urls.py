"""
URL configuration for the storefront project.

API routes live under /api/v1/ and are guarded by DRF permissions; every
other path goes through AccessGuardMiddleware first.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

from storefront.core.views import login_page

admin.site.site_header = "Storefront Admin Panel"
admin.site.site_title = "Storefront Admin Portal"
admin.site.index_title = "Welcome to the Storefront back-office"

urlpatterns = [
    re_path(r'^auth/login/?$', login_page, name='login'),
    path('admin/dashboard/', admin.site.admin_view(admin.site.index), name='admin-dashboard'),
    path('admin/', admin.site.urls),
    path('api/v1/', include('storefront.core.urls')),
    path('api/v1/', include('storefront.catalog.urls')),
    path('api/v1/', include('storefront.newsletter.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
    re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
]
