from django.urls import path
from .views import (
    StorefrontTokenObtainPairView, StorefrontTokenRefreshView,
    register, logout, user_me, check_role, redirect_by_role,
    forgot_password, reset_password, verify_email,
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', StorefrontTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', StorefrontTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/logout/', logout, name='logout'),
    path('auth/me/', user_me, name='user-me'),

    # Session introspection
    path('auth/check-role/', check_role, name='check-role'),
    path('auth/redirect-by-role/', redirect_by_role, name='redirect-by-role'),

    # Account recovery
    path('auth/forgot-password/', forgot_password, name='forgot-password'),
    path('auth/reset-password/', reset_password, name='reset-password'),
    path('auth/verify/', verify_email, name='verify-email'),
]
