import logging

from django.conf import settings
from django.contrib import admin
from django.contrib.auth import REDIRECT_FIELD_NAME, get_user_model
from django.db import DatabaseError, transaction
from django.http import HttpResponseRedirect
from django.utils import timezone
from django.utils.http import url_has_allowed_host_and_scheme
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .emails import send_verification_email, send_password_reset_email
from .models import VerificationToken
from .roles import Capability, has_capability
from .serializers import (
    UserSerializer, RegisterSerializer,
    ForgotPasswordSerializer, ResetPasswordSerializer,
)
from .sessions import resolve_session

User = get_user_model()
logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = 'If your email is registered, you will receive a password reset link'


def _first_error(errors):
    """Flatten serializer errors into one human-readable message"""
    for field, messages in errors.items():
        message = messages[0] if isinstance(messages, list) and messages else messages
        if field == 'non_field_errors':
            return str(message)
        return f"{field}: {message}"
    return 'Invalid input'


def _session_user(request):
    session = resolve_session(request)
    if session is None or not session.is_valid():
        return None, None
    user = User.objects.filter(pk=session.user_id, is_active=True).first()
    return session, user


class StorefrontTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['role'] = user.role
        return token


class StorefrontTokenObtainPairView(TokenObtainPairView):
    """Issue a JWT pair and mirror the access token into an HttpOnly cookie for page requests"""
    serializer_class = StorefrontTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        access = response.data.get('access') if response.status_code == status.HTTP_200_OK else None
        if access:
            lifetime = settings.SIMPLE_JWT['ACCESS_TOKEN_LIFETIME']
            response.set_cookie(
                settings.ACCESS_TOKEN_COOKIE,
                access,
                max_age=int(lifetime.total_seconds()),
                httponly=True,
                secure=not settings.DEBUG,
                samesite='Lax',
            )
        return response


class StorefrontTokenRefreshView(TokenRefreshView):
    pass


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def logout(request):
    response = Response({'success': True})
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE)
    return response


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def register(request):
    """Create a CUSTOMER account and email a verification link"""
    serializer = RegisterSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'success': False, 'error': _first_error(serializer.errors)},
                        status=status.HTTP_400_BAD_REQUEST)
    try:
        with transaction.atomic():
            user = serializer.save()
            token = VerificationToken.issue(
                user.email, VerificationToken.PURPOSE_VERIFY_EMAIL, settings.VERIFICATION_TOKEN_HOURS
            )
    except DatabaseError as e:
        logger.error(f"Registration error: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'An error occurred during registration'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if not send_verification_email(user.email, token.token, user.display_name):
        logger.warning(f"Verification email could not be sent to {user.email}")

    return Response({
        'success': True,
        'data': {'id': user.id, 'name': user.display_name, 'email': user.email, 'role': user.role},
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def check_role(request):
    """Session and role introspection for the current caller"""
    session, user = _session_user(request)
    return Response({
        'isAuthenticated': user is not None,
        'user': UserSerializer(user).data if user else None,
        'isAdmin': bool(user and has_capability(session.role, Capability.ACCESS_ADMIN)),
    })


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def redirect_by_role(request):
    session, user = _session_user(request)
    if user and has_capability(session.role, Capability.ACCESS_ADMIN):
        return HttpResponseRedirect(f"{settings.SITE_URL}{settings.ADMIN_HOME_PATH}")
    return HttpResponseRedirect(f"{settings.SITE_URL}{settings.HOME_PATH}")


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with the capabilities granted by their role"""
    user_data = UserSerializer(request.user).data
    user_data['capabilities'] = sorted(c.value for c in request.user.capabilities)
    return Response({'success': True, 'data': user_data})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def forgot_password(request):
    serializer = ForgotPasswordSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'success': False, 'error': 'Email is required'}, status=status.HTTP_400_BAD_REQUEST)

    email = serializer.validated_data['email']
    try:
        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            # same answer either way so the endpoint can't be used to enumerate accounts
            return Response({'success': True, 'message': RESET_REQUESTED_MESSAGE})
        token = VerificationToken.issue(
            user.email, VerificationToken.PURPOSE_RESET_PASSWORD, settings.PASSWORD_RESET_TOKEN_HOURS
        )
    except DatabaseError as e:
        logger.error(f"Forgot password error: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'An error occurred. Please try again later.'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    send_password_reset_email(user.email, token.token, user.display_name)
    return Response({'success': True, 'message': RESET_REQUESTED_MESSAGE})


def _consume_token(raw_token, purpose, expired_message):
    """
    Look up a one-time token.

    Returns:
        tuple: (user, None) on success or (None, Response) describing the failure
    """
    token = VerificationToken.objects.filter(token=raw_token, purpose=purpose).first()
    if token is None:
        return None, Response({'success': False, 'error': 'Invalid or expired token'},
                              status=status.HTTP_400_BAD_REQUEST)
    if token.is_expired:
        token.delete()
        return None, Response({'success': False, 'error': expired_message},
                              status=status.HTTP_400_BAD_REQUEST)
    user = User.objects.filter(email__iexact=token.identifier).first()
    if user is None:
        return None, Response({'success': False, 'error': 'User not found'},
                              status=status.HTTP_404_NOT_FOUND)
    token.delete()
    return user, None


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def reset_password(request):
    serializer = ResetPasswordSerializer(data=request.data)
    if not serializer.is_valid():
        if 'password' in serializer.errors and request.data.get('password'):
            return Response({'success': False, 'error': _first_error(serializer.errors)},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response({'success': False, 'error': 'Token and password are required'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        with transaction.atomic():
            user, error_response = _consume_token(
                serializer.validated_data['token'],
                VerificationToken.PURPOSE_RESET_PASSWORD,
                'Password reset token has expired',
            )
            if error_response is not None:
                return error_response
            user.set_password(serializer.validated_data['password'])
            if user.email_verified_at is None:
                user.email_verified_at = timezone.now()
            user.save()
    except DatabaseError as e:
        logger.error(f"Password reset error: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'An error occurred during password reset'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({'success': True, 'message': 'Password has been reset successfully'})


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def verify_email(request):
    raw_token = request.query_params.get('token', '').strip()
    if not raw_token:
        return Response({'success': False, 'error': 'Missing verification token'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        with transaction.atomic():
            user, error_response = _consume_token(
                raw_token, VerificationToken.PURPOSE_VERIFY_EMAIL, 'Verification token has expired'
            )
            if error_response is not None:
                return error_response
            user.email_verified_at = timezone.now()
            user.save(update_fields=['email_verified_at', 'is_staff', 'updated_at'])
    except DatabaseError as e:
        logger.error(f"Email verification error: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'An error occurred during email verification'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HttpResponseRedirect(f"{settings.LOGIN_PATH}?verified=true")


def login_page(request):
    """
    Back-office sign-in page the access guard redirects to.

    Renders the Django admin login form; `callbackUrl` is handed over as the
    form's `next` so the user lands back on the page they asked for.
    """
    callback_url = request.GET.get('callbackUrl')
    if callback_url and REDIRECT_FIELD_NAME not in request.GET:
        if url_has_allowed_host_and_scheme(callback_url, allowed_hosts={request.get_host()}):
            request.GET = request.GET.copy()
            request.GET[REDIRECT_FIELD_NAME] = callback_url
    return admin.site.login(request)
