"""
Test suite for the core module
Tests: role capabilities, access guard decisions and middleware, session resolution,
registration, email verification, password reset and management commands
"""
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.conf import settings
from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, RequestFactory, override_settings
from django.utils import timezone
from rest_framework import status

from storefront.core.blob_storage import BlobStorageError, blob_name_from_url, make_blob_name
from storefront.core.guard import evaluate_access, is_public_path, login_redirect
from storefront.core.models import User, VerificationToken
from storefront.core.roles import Role, Capability, capabilities_for, has_capability, parse_role
from storefront.core.sessions import Session, resolve_session
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.core.views import RESET_REQUESTED_MESSAGE, StorefrontTokenObtainPairSerializer


def make_session(role, minutes=30):
    return Session(user_id='1', role=role, expires_at=timezone.now() + timedelta(minutes=minutes))


class RoleCapabilityTests(TestCase):
    """Test the role to capability mapping"""

    def test_admin_holds_every_capability(self):
        self.assertEqual(capabilities_for(Role.ADMIN), frozenset(Capability))

    def test_customer_cannot_access_admin(self):
        self.assertTrue(has_capability(Role.CUSTOMER, Capability.BROWSE_STOREFRONT))
        self.assertFalse(has_capability(Role.CUSTOMER, Capability.ACCESS_ADMIN))
        self.assertFalse(has_capability(Role.CUSTOMER, Capability.MANAGE_CATALOG))

    def test_role_claim_strings_are_parsed(self):
        self.assertEqual(parse_role('ADMIN'), Role.ADMIN)
        self.assertEqual(parse_role('CUSTOMER'), Role.CUSTOMER)

    def test_unknown_or_missing_role_has_no_capabilities(self):
        self.assertIsNone(parse_role('SUPERUSER'))
        self.assertEqual(capabilities_for('SUPERUSER'), frozenset())
        self.assertEqual(capabilities_for(None), frozenset())
        self.assertFalse(has_capability('admin', Capability.ACCESS_ADMIN))

    def test_admin_role_grants_django_staff(self):
        admin = TestDataFactory.create_admin()
        customer = TestDataFactory.create_user()
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_admin)
        self.assertFalse(customer.is_staff)
        self.assertFalse(customer.is_admin)


class PublicPathTests(TestCase):
    """Test classification of public paths"""

    def test_exact_public_paths(self):
        for path in ['/auth/login', '/auth/signup', '/auth/error', '/', '/auth/login/']:
            self.assertTrue(is_public_path(path), path)

    def test_public_prefixes(self):
        for path in ['/api/auth/session', '/static/css/site.css', '/media/x', '/images/logo']:
            self.assertTrue(is_public_path(path), path)

    def test_paths_with_a_dot_are_public(self):
        self.assertTrue(is_public_path('/favicon.ico'))
        self.assertTrue(is_public_path('/admin/robots.txt'))

    def test_protected_paths(self):
        for path in ['/profile', '/admin', '/admin/products', '/cart', '/auth/loginx']:
            self.assertFalse(is_public_path(path), path)


class EvaluateAccessTests(TestCase):
    """Test the access guard decision table"""

    def test_public_path_without_session_is_allowed(self):
        decision = evaluate_access('/', None)
        self.assertTrue(decision.allowed)

    def test_login_page_with_session_redirects_home(self):
        decision = evaluate_access('/auth/login', make_session(Role.CUSTOMER))
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.redirect_to, '/')

    def test_signup_page_with_session_redirects_home(self):
        decision = evaluate_access('/auth/signup', make_session(Role.ADMIN))
        self.assertEqual(decision.redirect_to, '/')

    def test_error_page_with_session_is_allowed(self):
        self.assertTrue(evaluate_access('/auth/error', make_session(Role.CUSTOMER)).allowed)

    def test_protected_path_without_session_redirects_to_login(self):
        decision = evaluate_access('/profile', None)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.redirect_to, '/auth/login?callbackUrl=%2Fprofile')

    def test_callback_url_keeps_query_string(self):
        decision = evaluate_access('/profile/orders', None, callback_url='/profile/orders?page=2')
        self.assertEqual(decision.redirect_to, login_redirect('/profile/orders?page=2'))
        self.assertIn('callbackUrl=%2Fprofile%2Forders%3Fpage%3D2', decision.redirect_to)

    def test_expired_session_counts_as_no_session(self):
        decision = evaluate_access('/profile', make_session(Role.ADMIN, minutes=-5))
        self.assertFalse(decision.allowed)
        self.assertTrue(decision.redirect_to.startswith('/auth/login?callbackUrl='))

    def test_customer_on_admin_path_redirects_home(self):
        decision = evaluate_access('/admin/anything', make_session(Role.CUSTOMER))
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.redirect_to, '/')

    def test_admin_on_admin_path_is_allowed(self):
        self.assertTrue(evaluate_access('/admin/anything', make_session(Role.ADMIN)).allowed)

    def test_session_without_role_cannot_reach_admin(self):
        decision = evaluate_access('/admin', make_session(None))
        self.assertEqual(decision.redirect_to, '/')

    def test_customer_on_protected_non_admin_path_is_allowed(self):
        self.assertTrue(evaluate_access('/profile', make_session(Role.CUSTOMER)).allowed)

    def test_now_override_controls_expiry(self):
        session = make_session(Role.CUSTOMER, minutes=10)
        later = timezone.now() + timedelta(minutes=20)
        self.assertFalse(evaluate_access('/profile', session, now=later).allowed)


class AccessGuardMiddlewareTests(TestCase):
    """Test the guard as it runs in the request cycle"""

    def setUp(self):
        self.customer = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()

    def _use_token_cookie(self, user):
        token = StorefrontTokenObtainPairSerializer.get_token(user).access_token
        self.client.cookies[settings.ACCESS_TOKEN_COOKIE] = str(token)

    def test_anonymous_admin_request_redirects_to_login(self):
        response = self.client.get('/admin/anything')
        self.assertEqual(response.status_code, status.HTTP_302_FOUND)
        self.assertEqual(response['Location'], '/auth/login?callbackUrl=%2Fadmin%2Fanything')

    def test_customer_admin_request_redirects_home(self):
        self._use_token_cookie(self.customer)
        response = self.client.get('/admin/anything')
        self.assertEqual(response.status_code, status.HTTP_302_FOUND)
        self.assertEqual(response['Location'], '/')

    def test_signed_in_user_on_login_page_redirects_home(self):
        self._use_token_cookie(self.customer)
        response = self.client.get('/auth/login')
        self.assertEqual(response.status_code, status.HTTP_302_FOUND)
        self.assertEqual(response['Location'], '/')

    def test_anonymous_login_page_renders(self):
        response = self.client.get('/auth/login?callbackUrl=%2Fadmin%2F')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_garbage_cookie_is_anonymous(self):
        self.client.cookies[settings.ACCESS_TOKEN_COOKIE] = 'not-a-jwt'
        response = self.client.get('/profile')
        self.assertEqual(response['Location'], '/auth/login?callbackUrl=%2Fprofile')

    def test_garbage_cookie_falls_back_to_django_session(self):
        self.client.force_login(self.admin)
        self.client.cookies[settings.ACCESS_TOKEN_COOKIE] = 'not-a-jwt'
        response = self.client.get('/admin/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cookie_of_deactivated_user_still_browses_catalog(self):
        self._use_token_cookie(self.customer)
        self.customer.is_active = False
        self.customer.save(update_fields=['is_active'])
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])

    def test_cookie_of_deleted_user_still_browses_catalog(self):
        self._use_token_cookie(self.customer)
        self.customer.delete()
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_admin_with_django_session_reaches_admin_site(self):
        self.client.force_login(self.admin)
        response = self.client.get('/admin/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_api_routes_are_left_to_drf(self):
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class SessionResolutionTests(TestCase):
    """Test building a Session from a request"""

    def setUp(self):
        self.factory = RequestFactory()
        self.admin = TestDataFactory.create_admin()

    def test_bearer_header_carries_role(self):
        token = StorefrontTokenObtainPairSerializer.get_token(self.admin).access_token
        request = self.factory.get('/admin', HTTP_AUTHORIZATION=f'Bearer {token}')
        session = resolve_session(request)
        self.assertEqual(session.role, Role.ADMIN)
        self.assertEqual(session.user_id, str(self.admin.pk))
        self.assertTrue(session.is_valid())

    def test_invalid_token_gives_no_session(self):
        request = self.factory.get('/admin', HTTP_AUTHORIZATION='Bearer nonsense')
        self.assertIsNone(resolve_session(request))

    def test_no_credentials_gives_no_session(self):
        self.assertIsNone(resolve_session(self.factory.get('/profile')))


class AuthAPITests(TestCase):
    """Test registration, login and role introspection endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_creates_customer_and_sends_verification(self):
        response = self.client.post('/api/v1/auth/register/', {
            'first_name': 'Jane',
            'last_name': 'Doe',
            'email': 'Jane.Doe@Example.com',
            'password': 'Lavender-soap-42',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['email'], 'jane.doe@example.com')
        self.assertEqual(response.data['data']['role'], Role.CUSTOMER)

        user = User.objects.get(email='jane.doe@example.com')
        self.assertIsNone(user.email_verified_at)
        self.assertEqual(len(mail.outbox), 1)
        token = VerificationToken.objects.get(identifier=user.email)
        self.assertIn(token.token, mail.outbox[0].body)

    def test_register_rejects_duplicate_email(self):
        TestDataFactory.create_user(email='taken@example.com')
        response = self.client.post('/api/v1/auth/register/', {
            'first_name': 'Sam', 'email': 'TAKEN@example.com', 'password': 'Lavender-soap-42',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('already exists', response.data['error'])

    def test_register_rejects_weak_password(self):
        response = self.client.post('/api/v1/auth/register/', {
            'first_name': 'Sam', 'email': 'sam@example.com', 'password': '123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(User.objects.filter(email='sam@example.com').exists())

    def test_login_sets_http_only_cookie_with_role_claim(self):
        user = TestDataFactory.create_admin(email='boss@example.com', password='Lavender-soap-42')
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'boss@example.com', 'password': 'Lavender-soap-42',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['id'], user.id)
        cookie = response.cookies[settings.ACCESS_TOKEN_COOKIE]
        self.assertTrue(cookie['httponly'])
        self.assertEqual(cookie.value, response.data['access'])

    def test_login_with_wrong_password_fails(self):
        TestDataFactory.create_user(email='c@example.com', password='Lavender-soap-42')
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'c@example.com', 'password': 'wrong-password',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_check_role_for_admin(self):
        admin = TestDataFactory.create_admin()
        self.client.authenticate_user(admin)
        response = self.client.get('/api/v1/auth/check-role/')
        self.assertTrue(response.data['isAuthenticated'])
        self.assertTrue(response.data['isAdmin'])
        self.assertEqual(response.data['user']['email'], admin.email)

    def test_check_role_for_anonymous(self):
        response = self.client.get('/api/v1/auth/check-role/')
        self.assertEqual(response.data, {'isAuthenticated': False, 'user': None, 'isAdmin': False})

    def test_redirect_by_role(self):
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.get('/api/v1/auth/redirect-by-role/')
        self.assertEqual(response['Location'], f"{settings.SITE_URL}{settings.ADMIN_HOME_PATH}")

        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/auth/redirect-by-role/')
        self.assertEqual(response['Location'], f"{settings.SITE_URL}{settings.HOME_PATH}")

    def test_me_lists_capabilities(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['capabilities'], ['browse_storefront', 'manage_account'])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_clears_cookie(self):
        response = self.client.post('/api/v1/auth/logout/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.cookies[settings.ACCESS_TOKEN_COOKIE].value, '')


class EmailVerificationTests(TestCase):
    """Test the email verification link"""

    def setUp(self):
        self.user = TestDataFactory.create_user(email='verify@example.com')

    def test_valid_token_verifies_and_redirects(self):
        token = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_VERIFY_EMAIL, 24)
        response = self.client.get(f'/api/v1/auth/verify/?token={token.token}')
        self.assertEqual(response.status_code, status.HTTP_302_FOUND)
        self.assertEqual(response['Location'], '/auth/login?verified=true')
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.email_verified_at)
        self.assertFalse(VerificationToken.objects.filter(pk=token.pk).exists())

    def test_missing_token(self):
        response = self.client.get('/api/v1/auth/verify/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'Missing verification token')

    def test_unknown_token(self):
        response = self.client.get('/api/v1/auth/verify/?token=deadbeef')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'Invalid or expired token')

    def test_expired_token_is_deleted(self):
        token = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_VERIFY_EMAIL, 24)
        VerificationToken.objects.filter(pk=token.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        response = self.client.get(f'/api/v1/auth/verify/?token={token.token}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'Verification token has expired')
        self.assertFalse(VerificationToken.objects.filter(pk=token.pk).exists())

    def test_reissuing_replaces_previous_token(self):
        first = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_VERIFY_EMAIL, 24)
        second = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_VERIFY_EMAIL, 24)
        self.assertNotEqual(first.token, second.token)
        self.assertEqual(VerificationToken.objects.filter(identifier=self.user.email).count(), 1)


class PasswordResetTests(TestCase):
    """Test forgot-password and reset-password"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(email='reset@example.com', password='Old-password-99')

    def test_forgot_password_sends_reset_link(self):
        response = self.client.post('/api/v1/auth/forgot-password/', {'email': 'reset@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], RESET_REQUESTED_MESSAGE)
        self.assertEqual(len(mail.outbox), 1)
        token = VerificationToken.objects.get(purpose=VerificationToken.PURPOSE_RESET_PASSWORD)
        self.assertIn(f'/auth/reset-password?token={token.token}', mail.outbox[0].body)

    def test_forgot_password_does_not_reveal_unknown_email(self):
        response = self.client.post('/api/v1/auth/forgot-password/', {'email': 'nobody@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], RESET_REQUESTED_MESSAGE)
        self.assertEqual(len(mail.outbox), 0)

    def test_forgot_password_requires_email(self):
        response = self.client.post('/api/v1/auth/forgot-password/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Email is required')

    def test_reset_password_changes_password_and_verifies_email(self):
        token = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_RESET_PASSWORD, 1)
        response = self.client.post('/api/v1/auth/reset-password/', {
            'token': token.token, 'password': 'New-password-77',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Password has been reset successfully')
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('New-password-77'))
        self.assertIsNotNone(self.user.email_verified_at)

    def test_reset_password_requires_both_fields(self):
        response = self.client.post('/api/v1/auth/reset-password/', {'token': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Token and password are required')

    def test_verify_token_cannot_reset_password(self):
        token = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_VERIFY_EMAIL, 24)
        response = self.client.post('/api/v1/auth/reset-password/', {
            'token': token.token, 'password': 'New-password-77',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('Old-password-99'))

    def test_expired_reset_token(self):
        token = VerificationToken.issue(self.user.email, VerificationToken.PURPOSE_RESET_PASSWORD, 1)
        VerificationToken.objects.filter(pk=token.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        response = self.client.post('/api/v1/auth/reset-password/', {
            'token': token.token, 'password': 'New-password-77',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Password reset token has expired')


class EmailDeliveryTests(TestCase):
    """Test that delivery failures don't break the calling flow"""

    @patch('storefront.core.emails.EmailMultiAlternatives.send', side_effect=OSError('connection refused'))
    def test_register_succeeds_when_email_fails(self, mock_send):
        response = AuthenticatedAPIClient().post('/api/v1/auth/register/', {
            'first_name': 'Ali', 'email': 'ali@example.com', 'password': 'Lavender-soap-42',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        mock_send.assert_called_once()


class BlobNamingTests(TestCase):
    """Test blob name helpers"""

    def test_make_blob_name_replaces_whitespace(self):
        name = make_blob_name('lavender soap  bar.png')
        self.assertRegex(name, r'^\d+-lavender-soap-bar\.png$')

    def test_blob_name_from_url(self):
        url = 'https://acct.blob.core.windows.net/product-images/1700000000000-soap%20bar.png'
        self.assertEqual(blob_name_from_url(url), '1700000000000-soap bar.png')
        self.assertIsNone(blob_name_from_url(''))


@override_settings(AZURE_STORAGE_CONNECTION_STRING='')
class CoreCommandTests(TestCase):
    """Test core management commands"""

    def test_create_admin_creates_new_user(self):
        out = StringIO()
        call_command('create_admin', 'owner@example.com', '--password', 'Lavender-soap-42', stdout=out)
        user = User.objects.get(email='owner@example.com')
        self.assertEqual(user.role, Role.ADMIN)
        self.assertTrue(user.is_staff)
        self.assertIn('Created admin user', out.getvalue())

    def test_create_admin_promotes_existing_user(self):
        user = TestDataFactory.create_user(email='promote@example.com')
        call_command('create_admin', 'promote@example.com', stdout=StringIO())
        user.refresh_from_db()
        self.assertEqual(user.role, Role.ADMIN)

    def test_create_admin_requires_password_for_new_user(self):
        with self.assertRaises(CommandError):
            call_command('create_admin', 'new@example.com', stdout=StringIO())

    def test_init_storage_without_configuration_fails(self):
        with self.assertRaises(CommandError):
            call_command('init_storage', stdout=StringIO())

    @patch('storefront.core.management.commands.init_storage.ensure_container', return_value=False)
    def test_init_storage_is_idempotent(self, mock_ensure):
        out = StringIO()
        call_command('init_storage', stdout=out)
        call_command('init_storage', stdout=out)
        self.assertEqual(mock_ensure.call_count, 2)
        self.assertIn('already exists', out.getvalue())

    @patch('storefront.core.management.commands.init_storage.ensure_container',
           side_effect=BlobStorageError('unreachable'))
    def test_init_storage_reports_failure(self, mock_ensure):
        with self.assertRaises(CommandError):
            call_command('init_storage', stdout=StringIO())
