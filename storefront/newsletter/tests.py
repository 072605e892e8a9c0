"""
Test suite for the newsletter module
Tests: subscribe, re-subscribe, unsubscribe and the admin subscriber list
"""
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase
from rest_framework import status

from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.newsletter.models import NewsletterSubscription


class SubscribeTests(TestCase):
    """Test the public subscribe endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_new_subscription(self):
        response = self.client.post('/api/v1/newsletter/', {'email': 'Reader@Example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['message'], 'Thank you for subscribing to our newsletter!')
        self.assertTrue(NewsletterSubscription.objects.get(email='reader@example.com').active)

    def test_already_active(self):
        TestDataFactory.create_subscription(email='reader@example.com')
        response = self.client.post('/api/v1/newsletter/', {'email': 'reader@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'This email is already subscribed to our newsletter')

    def test_inactive_is_reactivated(self):
        TestDataFactory.create_subscription(email='reader@example.com', active=False)
        response = self.client.post('/api/v1/newsletter/', {'email': 'reader@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Thank you for re-subscribing to our newsletter!')
        self.assertTrue(NewsletterSubscription.objects.get(email='reader@example.com').active)
        self.assertEqual(NewsletterSubscription.objects.count(), 1)

    def test_email_is_required(self):
        response = self.client.post('/api/v1/newsletter/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Email is required')

    def test_non_object_body_is_rejected(self):
        response = self.client.post('/api/v1/newsletter/', ['reader@example.com'], format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Email is required')
        self.assertFalse(NewsletterSubscription.objects.exists())

    def test_invalid_email(self):
        response = self.client.post('/api/v1/newsletter/', {'email': 'not-an-email'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(NewsletterSubscription.objects.exists())

    @patch('storefront.newsletter.views.NewsletterSubscription.objects.create', side_effect=DatabaseError('down'))
    def test_database_failure_is_generic(self, mock_create):
        response = self.client.post('/api/v1/newsletter/', {'email': 'reader@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'Failed to subscribe to newsletter. Please try again.')


class UnsubscribeTests(TestCase):
    """Test deactivating a subscription"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_unsubscribe(self):
        TestDataFactory.create_subscription(email='reader@example.com')
        response = self.client.post('/api/v1/newsletter/unsubscribe/', {'email': 'reader@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(NewsletterSubscription.objects.get(email='reader@example.com').active)

    def test_unsubscribe_unknown_email(self):
        response = self.client.post('/api/v1/newsletter/unsubscribe/', {'email': 'nobody@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    @patch('storefront.newsletter.views.NewsletterSubscription.objects.filter', side_effect=DatabaseError('down'))
    def test_database_failure_is_generic(self, mock_filter):
        response = self.client.post('/api/v1/newsletter/unsubscribe/', {'email': 'reader@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'Failed to unsubscribe from newsletter. Please try again.')


class SubscriberListTests(TestCase):
    """Test the admin subscriber list"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        TestDataFactory.create_subscription(email='one@example.com')
        TestDataFactory.create_subscription(email='two@example.com', active=False)

    def test_admin_can_list(self):
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.get('/api/v1/newsletter/subscribers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/newsletter/subscribers/', {'active': 'true'})
        self.assertEqual([s['email'] for s in response.data['data']], ['one@example.com'])

    def test_customer_cannot_list(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/newsletter/subscribers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_cannot_list(self):
        response = self.client.get('/api/v1/newsletter/subscribers/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
