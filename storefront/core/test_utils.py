"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from storefront.catalog.models import Category, Collection, Product
from storefront.newsletter.models import NewsletterSubscription
from storefront.core.roles import Role
from storefront.core.views import StorefrontTokenObtainPairSerializer
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(email=None, password='Str0ng-pass-123', role=Role.CUSTOMER, first_name='Test', last_name='User'):
        """Create a test user (CUSTOMER by default)"""
        if not email:
            email = f'user_{TestDataFactory.random_string(6).lower()}@test.com'
        return User.objects.create_user(
            username=email,
            email=email,
            password=password,
            role=role,
            first_name=first_name,
            last_name=last_name,
        )

    @staticmethod
    def create_admin(email=None, password='Str0ng-pass-123'):
        """Create a test ADMIN user"""
        return TestDataFactory.create_user(email=email, password=password, role=Role.ADMIN, first_name='Admin')

    @staticmethod
    def create_category(name=None, parent=None, description=''):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, parent=parent, description=description)

    @staticmethod
    def create_collection(name=None, slug=None, products=None):
        """Create a test collection"""
        if not name:
            name = f'Collection_{TestDataFactory.random_string(6)}'
        collection = Collection.objects.create(name=name, slug=slug or '')
        if products:
            collection.products.set(products)
        return collection

    @staticmethod
    def create_product(name=None, category=None, price=None, stock=10, status=Product.STATUS_ACTIVE, **extra):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if price is None:
            price = Decimal('12.50')
        return Product.objects.create(
            name=name,
            category=category,
            price=price,
            stock=stock,
            status=status,
            **extra
        )

    @staticmethod
    def create_subscription(email=None, active=True):
        """Create a test newsletter subscription"""
        if not email:
            email = f'reader_{TestDataFactory.random_string(6).lower()}@test.com'
        return NewsletterSubscription.objects.create(email=email, active=active)


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user; the token carries the role claim"""
        refresh = StorefrontTokenObtainPairSerializer.get_token(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
