"""
Test suite for the catalog module
Tests: category tree resolution, category/collection/product APIs, image upload
handling and catalog management commands
"""
import json
import os
import tempfile
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase
from rest_framework import status

from storefront.catalog.models import Category, Collection, Product
from storefront.catalog.tree import (
    resolve_category_tree, root_categories, normalize_parent_ref,
    ancestor_ids, would_create_cycle, find_cycles,
)
from storefront.core.blob_storage import BlobStorageError
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient

IMAGE_URL = 'https://acct.blob.core.windows.net/product-images/1700000000000-soap.png'


def image_file(name='soap.png'):
    return SimpleUploadedFile(name, b'\x89PNG\r\n\x1a\nfake', content_type='image/png')


class CategoryTreeTests(TestCase):
    """Test resolving parent/subcategory links over flat records"""

    def test_body_care_and_soap(self):
        records = [
            {'id': 1, 'name': 'Body Care', 'parent_id': None},
            {'id': 2, 'name': 'Soap', 'parent_id': 1},
        ]
        resolved = resolve_category_tree(records)
        self.assertEqual([c['id'] for c in root_categories(records)], [1])
        self.assertEqual([c['id'] for c in resolved[0]['subcategories']], [2])
        self.assertIsNone(resolved[0]['parent'])
        self.assertEqual(resolved[1]['parent']['id'], 1)
        self.assertEqual(resolved[1]['subcategories'], [])

    def test_empty_string_parent_is_a_root(self):
        records = [
            {'id': 'a', 'name': 'Soaps', 'parent_id': ''},
            {'id': 'b', 'name': 'Shampoos', 'parent_id': None},
            {'id': 'c', 'name': 'Bars', 'parent_id': '  '},
            {'id': 'd', 'name': 'Liquid', 'parent_id': 'a'},
        ]
        self.assertEqual([c['id'] for c in root_categories(records)], ['a', 'b', 'c'])
        resolved = {c['id']: c for c in resolve_category_tree(records)}
        self.assertIsNone(resolved['a']['parent'])
        self.assertIsNone(resolved['a']['parent_id'])
        self.assertEqual([c['id'] for c in resolved['a']['subcategories']], ['d'])

    def test_missing_parent_key_is_a_root(self):
        self.assertEqual(len(root_categories([{'id': 1, 'name': 'Orphan'}])), 1)

    def test_children_keep_stored_order(self):
        records = [
            {'id': 1, 'name': 'Hair', 'parent_id': None},
            {'id': 3, 'name': 'Shampoo', 'parent_id': 1},
            {'id': 2, 'name': 'Conditioner', 'parent_id': 1},
        ]
        resolved = resolve_category_tree(records)
        self.assertEqual([c['id'] for c in resolved[0]['subcategories']], [3, 2])

    def test_parent_copy_has_no_nested_links(self):
        records = [
            {'id': 1, 'name': 'Body Care', 'parent_id': None},
            {'id': 2, 'name': 'Soap', 'parent_id': 1},
        ]
        parent = resolve_category_tree(records)[1]['parent']
        self.assertNotIn('subcategories', parent)
        self.assertNotIn('parent', parent)

    def test_input_records_are_not_mutated(self):
        records = [{'id': 1, 'name': 'Body Care', 'parent_id': ''}]
        resolve_category_tree(records)
        self.assertEqual(records[0], {'id': 1, 'name': 'Body Care', 'parent_id': ''})

    def test_dangling_parent_is_logged(self):
        with self.assertLogs('storefront.catalog.tree', level='WARNING') as logs:
            resolved = resolve_category_tree([{'id': 2, 'name': 'Soap', 'parent_id': 99}])
        self.assertIsNone(resolved[0]['parent'])
        self.assertIn('missing parent 99', logs.output[0])

    def test_self_reference_is_ignored(self):
        with self.assertLogs('storefront.catalog.tree', level='WARNING'):
            resolved = resolve_category_tree([{'id': 5, 'name': 'Loop', 'parent_id': 5}])
        self.assertIsNone(resolved[0]['parent'])
        self.assertEqual(resolved[0]['subcategories'], [])

    def test_third_tier_is_linked_one_level_and_logged(self):
        records = [
            {'id': 1, 'name': 'Body Care', 'parent_id': None},
            {'id': 2, 'name': 'Soap', 'parent_id': 1},
            {'id': 3, 'name': 'Bar Soap', 'parent_id': 2},
        ]
        with self.assertLogs('storefront.catalog.tree', level='WARNING') as logs:
            resolved = resolve_category_tree(records)
        self.assertEqual(resolved[2]['parent']['id'], 2)
        self.assertEqual([c['id'] for c in resolved[1]['subcategories']], [3])
        self.assertIn('more than two tiers', logs.output[0])

    def test_cyclic_data_terminates(self):
        records = [
            {'id': 1, 'name': 'A', 'parent_id': 2},
            {'id': 2, 'name': 'B', 'parent_id': 1},
        ]
        with self.assertLogs('storefront.catalog.tree', level='WARNING'):
            resolved = resolve_category_tree(records)
        self.assertEqual(len(resolved), 2)
        self.assertEqual(root_categories(records), [])

    def test_normalize_parent_ref(self):
        self.assertIsNone(normalize_parent_ref(None))
        self.assertIsNone(normalize_parent_ref(''))
        self.assertIsNone(normalize_parent_ref(' '))
        self.assertEqual(normalize_parent_ref(0), 0)
        self.assertEqual(normalize_parent_ref('abc'), 'abc')


class CategoryCycleTests(TestCase):
    """Test cycle detection used on writes and in diagnostics"""

    def test_ancestor_ids(self):
        self.assertEqual(ancestor_ids(3, {1: None, 2: 1, 3: 2}), [3, 2, 1])

    def test_ancestor_ids_stops_on_cycle(self):
        self.assertEqual(ancestor_ids(1, {1: 2, 2: 1}), [1, 2])

    def test_would_create_cycle(self):
        parent_of = {1: None, 2: 1, 3: 2}
        self.assertTrue(would_create_cycle(1, 3, parent_of))
        self.assertTrue(would_create_cycle(1, 1, parent_of))
        self.assertFalse(would_create_cycle(3, 1, parent_of))
        self.assertFalse(would_create_cycle(2, None, parent_of))
        self.assertFalse(would_create_cycle(2, '', parent_of))

    def test_find_cycles(self):
        cycles = find_cycles({1: 2, 2: 1, 3: 1, 4: None, 5: 5})
        self.assertEqual(sorted(sorted(c) for c in cycles), [[1, 2], [5]])

    def test_find_cycles_on_clean_tree(self):
        self.assertEqual(find_cycles({1: None, 2: 1, 3: ''}), [])


class CategoryAPITests(TestCase):
    """Test category endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.customer = TestDataFactory.create_user()
        self.body_care = TestDataFactory.create_category(name='Body Care')
        self.soap = TestDataFactory.create_category(name='Soap', parent=self.body_care)
        self.hair = TestDataFactory.create_category(name='Hair')

    def test_list_is_public_and_resolved(self):
        TestDataFactory.create_product(category=self.soap)
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        by_name = {c['name']: c for c in response.data['data']}
        self.assertEqual([c['name'] for c in response.data['data']], ['Body Care', 'Hair', 'Soap'])
        self.assertEqual([c['id'] for c in by_name['Body Care']['subcategories']], [self.soap.id])
        self.assertEqual(by_name['Soap']['parent']['id'], self.body_care.id)
        self.assertEqual(by_name['Soap']['product_count'], 1)

    def test_roots(self):
        response = self.client.get('/api/v1/categories/roots/')
        self.assertEqual([c['name'] for c in response.data['data']], ['Body Care', 'Hair'])

    @patch('storefront.catalog.views.category_snapshot', side_effect=DatabaseError('connection lost'))
    def test_read_failure_returns_generic_error(self, mock_snapshot):
        for url, message in (('/api/v1/categories/', 'Failed to get categories'),
                             ('/api/v1/categories/roots/', 'Failed to get parent categories')):
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
            self.assertIs(response.data['success'], False)
            self.assertEqual(response.data['error'], message)
            self.assertNotIn('data', response.data)

    def test_subcategories(self):
        response = self.client.get(f'/api/v1/categories/{self.body_care.id}/subcategories/')
        self.assertEqual([c['id'] for c in response.data['data']], [self.soap.id])

    def test_detail_and_not_found(self):
        response = self.client.get(f'/api/v1/categories/{self.soap.id}/')
        self.assertEqual(response.data['data']['parent']['name'], 'Body Care')
        response = self.client.get('/api/v1/categories/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    def test_by_slug_includes_products_of_subcategories(self):
        product = TestDataFactory.create_product(name='Lavender Bar', category=self.soap)
        response = self.client.get(f'/api/v1/categories/slug/{self.body_care.slug}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data['data']['products']], [product.id])

    def test_create_requires_admin(self):
        response = self.client.post('/api/v1/categories/', {'name': 'Gifts'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.client.authenticate_user(self.customer)
        response = self.client.post('/api/v1/categories/', {'name': 'Gifts'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_generates_slug(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/categories/', {'name': 'Gift Sets', 'parent': self.hair.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['slug'], 'gift-sets')
        self.assertEqual(response.data['data']['parent'], self.hair.id)

    def test_duplicate_names_get_distinct_slugs(self):
        duplicate = TestDataFactory.create_category(name='Soap')
        self.assertEqual(duplicate.slug, 'soap-2')

    @patch('storefront.catalog.views.upload_image', return_value=IMAGE_URL)
    def test_create_with_image(self, mock_upload):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/categories/', {'name': 'Candles', 'image': image_file()},
                                    format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['image'], IMAGE_URL)
        mock_upload.assert_called_once()

    @patch('storefront.catalog.views.upload_image', side_effect=BlobStorageError('Failed to upload image'))
    def test_create_with_failing_upload(self, mock_upload):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/categories/', {'name': 'Candles', 'image': image_file()},
                                    format='multipart')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data['error'], 'Failed to upload image')
        self.assertFalse(Category.objects.filter(name='Candles').exists())

    def test_update_rejects_self_parent(self):
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/categories/{self.hair.id}/', {'parent': self.hair.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('own parent', response.data['error'])

    def test_update_rejects_cycle(self):
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/categories/{self.body_care.id}/', {'parent': self.soap.id},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('circular', response.data['error'])

    def test_update_with_empty_parent_makes_root(self):
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/categories/{self.soap.id}/', {'parent': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.soap.refresh_from_db()
        self.assertIsNone(self.soap.parent)

    def test_delete_refused_with_subcategories(self):
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/categories/{self.body_care.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('subcategories', response.data['error'])

    def test_delete_refused_with_products(self):
        TestDataFactory.create_product(category=self.hair)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/categories/{self.hair.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('products', response.data['error'])

    @patch('storefront.catalog.views.delete_image')
    def test_delete_removes_image(self, mock_delete):
        Category.objects.filter(pk=self.hair.pk).update(image=IMAGE_URL)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/categories/{self.hair.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Category.objects.filter(pk=self.hair.pk).exists())
        mock_delete.assert_called_once_with(IMAGE_URL)

    @patch('storefront.catalog.views.delete_image', side_effect=BlobStorageError('Failed to delete image'))
    def test_delete_survives_blob_failure(self, mock_delete):
        Category.objects.filter(pk=self.hair.pk).update(image=IMAGE_URL)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/categories/{self.hair.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Category.objects.filter(pk=self.hair.pk).exists())


class ProductAPITests(TestCase):
    """Test product endpoints and filtering"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.body_care = TestDataFactory.create_category(name='Body Care')
        self.soap = TestDataFactory.create_category(name='Soap', parent=self.body_care)
        self.lavender = TestDataFactory.create_product(
            name='Lavender Soap', category=self.soap, price=Decimal('8.00'), description='Calming lavender bar',
        )
        self.lotion = TestDataFactory.create_product(
            name='Shea Lotion', category=self.body_care, price=Decimal('15.00'), stock=0,
        )
        self.draft = TestDataFactory.create_product(name='Draft Soap', status=Product.STATUS_DRAFT)

    def ids(self, response):
        return {p['id'] for p in response.data['data']}

    def test_list_is_public(self):
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.ids(response), {self.lavender.id, self.lotion.id, self.draft.id})

    def test_search_matches_every_word(self):
        response = self.client.get('/api/v1/products/', {'search': 'lavender calming'})
        self.assertEqual(self.ids(response), {self.lavender.id})
        response = self.client.get('/api/v1/products/', {'search': 'lavender lotion'})
        self.assertEqual(self.ids(response), set())

    def test_parent_category_includes_subcategory_products(self):
        response = self.client.get('/api/v1/products/', {'category': self.body_care.id})
        self.assertEqual(self.ids(response), {self.lavender.id, self.lotion.id})
        response = self.client.get('/api/v1/products/', {'category_slug': 'soap'})
        self.assertEqual(self.ids(response), {self.lavender.id})

    def test_stock_status_and_price_filters(self):
        response = self.client.get('/api/v1/products/', {'in_stock': 'true'})
        self.assertNotIn(self.lotion.id, self.ids(response))
        response = self.client.get('/api/v1/products/', {'in_stock': 'false'})
        self.assertEqual(self.ids(response), {self.lotion.id})
        response = self.client.get('/api/v1/products/', {'status': 'DRAFT'})
        self.assertEqual(self.ids(response), {self.draft.id})
        response = self.client.get('/api/v1/products/', {'min_price': '13'})
        self.assertEqual(self.ids(response), {self.lotion.id})

    def test_collection_filter_by_slug(self):
        collection = TestDataFactory.create_collection(name='Best Sellers', products=[self.lavender])
        response = self.client.get('/api/v1/products/', {'collection': collection.slug})
        self.assertEqual(self.ids(response), {self.lavender.id})
        response = self.client.get('/api/v1/products/', {'collection': str(collection.id)})
        self.assertEqual(self.ids(response), {self.lavender.id})

    def test_create_product(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', {
            'name': 'Rose Oil',
            'price': '20.00',
            'discounted_price': '18.00',
            'stock': 4,
            'status': Product.STATUS_ACTIVE,
            'images': [IMAGE_URL],
            'benefits': ['Hydrating', 'Fragrant'],
            'category': self.body_care.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['slug'], 'rose-oil')
        self.assertEqual(response.data['data']['images'], [IMAGE_URL])
        self.assertEqual(response.data['data']['category_detail']['name'], 'Body Care')

    def test_create_rejects_discount_above_price(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', {
            'name': 'Rose Oil', 'price': '20.00', 'discounted_price': '25.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discounted_price', response.data['error'])

    @patch('storefront.catalog.views.upload_image', return_value=IMAGE_URL)
    def test_create_with_uploaded_images(self, mock_upload):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', {
            'name': 'Clay Mask', 'price': '9.00', 'image_files': [image_file('a.png'), image_file('b.png')],
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['images'], [IMAGE_URL, IMAGE_URL])
        self.assertEqual(mock_upload.call_count, 2)

    def test_customer_cannot_update(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.patch(f'/api/v1/products/{self.lavender.id}/', {'stock': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @patch('storefront.catalog.views.delete_image')
    def test_update_drops_removed_images(self, mock_delete):
        old_url = IMAGE_URL.replace('soap', 'old')
        Product.objects.filter(pk=self.lavender.pk).update(images=[IMAGE_URL, old_url])
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/products/{self.lavender.id}/', {'images': [IMAGE_URL]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['images'], [IMAGE_URL])
        mock_delete.assert_called_once_with(old_url)

    @patch('storefront.catalog.views.delete_image')
    def test_delete_product_removes_images(self, mock_delete):
        Product.objects.filter(pk=self.lavender.pk).update(images=[IMAGE_URL])
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/products/{self.lavender.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        mock_delete.assert_called_once_with(IMAGE_URL)

    @patch('storefront.catalog.views.delete_image')
    @patch('storefront.catalog.views.upload_image', return_value=IMAGE_URL)
    @patch('storefront.catalog.views.ProductSerializer.save', side_effect=DatabaseError('disk full'))
    def test_create_failure_discards_uploaded_images(self, mock_save, mock_upload, mock_delete):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', {
            'name': 'Clay Mask', 'price': '9.00', 'image_files': [image_file('a.png'), image_file('b.png')],
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'Failed to create product')
        self.assertEqual(mock_delete.call_count, 2)
        self.assertFalse(Product.objects.filter(name='Clay Mask').exists())

    @patch('storefront.catalog.views.delete_image')
    @patch('storefront.catalog.views.upload_image', return_value=IMAGE_URL)
    @patch('storefront.catalog.views.ProductSerializer.save', side_effect=DatabaseError('disk full'))
    def test_update_failure_keeps_existing_images(self, mock_save, mock_upload, mock_delete):
        old_url = IMAGE_URL.replace('soap', 'old')
        Product.objects.filter(pk=self.lavender.pk).update(images=[old_url])
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/products/{self.lavender.id}/', {
            'image_files': [image_file()],
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'Failed to update product')
        mock_delete.assert_called_once_with(IMAGE_URL)
        self.lavender.refresh_from_db()
        self.assertEqual(self.lavender.images, [old_url])

    @patch('storefront.catalog.views.delete_image')
    @patch('storefront.catalog.views.Product.delete', side_effect=DatabaseError('locked'))
    def test_delete_failure_returns_generic_error(self, mock_product_delete, mock_delete):
        Product.objects.filter(pk=self.lavender.pk).update(images=[IMAGE_URL])
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/products/{self.lavender.id}/')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'Failed to delete product')
        mock_delete.assert_not_called()

    def test_random_product_is_active_and_in_stock(self):
        for _ in range(5):
            response = self.client.get('/api/v1/products/random/')
            self.assertTrue(response.data['success'])
            self.assertEqual(response.data['data']['id'], self.lavender.id)
            self.assertEqual(set(response.data['data']), {'id', 'name', 'price', 'images'})

    def test_random_product_when_none_available(self):
        Product.objects.update(status=Product.STATUS_ARCHIVED)
        response = self.client.get('/api/v1/products/random/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'No active products found')


class CollectionAPITests(TestCase):
    """Test collection endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.product = TestDataFactory.create_product(name='Oat Soap')

    def test_create_with_products(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/collections/', {
            'name': 'Summer Collection', 'product_ids': [self.product.id],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['slug'], 'summer-collection')
        self.assertEqual([p['id'] for p in response.data['data']['products']], [self.product.id])

    def test_list_and_slug_lookup(self):
        collection = TestDataFactory.create_collection(name='Best Sellers', products=[self.product])
        response = self.client.get('/api/v1/collections/')
        self.assertEqual(response.data['data'][0]['product_count'], 1)
        response = self.client.get(f'/api/v1/collections/slug/{collection.slug}/')
        self.assertEqual(response.data['data']['name'], 'Best Sellers')
        response = self.client.get('/api/v1/collections/slug/missing/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_replaces_products(self):
        other = TestDataFactory.create_product(name='Mint Soap')
        collection = TestDataFactory.create_collection(products=[self.product])
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/collections/{collection.id}/', {'product_ids': [other.id]},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(list(collection.products.values_list('id', flat=True)), [other.id])

    def test_ensure_featured_collection_is_idempotent(self):
        self.client.authenticate_user(self.admin)
        first = self.client.post('/api/v1/setup/featured-collection/')
        second = self.client.post('/api/v1/setup/featured-collection/')
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(Collection.objects.filter(slug=Collection.FEATURED_SLUG).count(), 1)

    @patch('storefront.catalog.views.delete_image')
    @patch('storefront.catalog.views.Collection.delete', side_effect=DatabaseError('locked'))
    def test_delete_failure_returns_generic_error(self, mock_collection_delete, mock_delete):
        collection = TestDataFactory.create_collection(products=[self.product])
        Collection.objects.filter(pk=collection.pk).update(image=IMAGE_URL)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/collections/{collection.id}/')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'Failed to delete collection')
        mock_delete.assert_not_called()

    @patch('storefront.catalog.views.CollectionSerializer.save', side_effect=DatabaseError('disk full'))
    def test_update_failure_returns_generic_error(self, mock_save):
        collection = TestDataFactory.create_collection(products=[self.product])
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/collections/{collection.id}/', {'name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'Failed to update collection')


class StorageAPITests(TestCase):
    """Test blob storage endpoints with the Azure client mocked out"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()

    @patch('storefront.catalog.views.ensure_container', return_value=True)
    def test_storage_init(self, mock_ensure):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/storage/init/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Blob storage container created')

    @patch('storefront.catalog.views.ensure_container', side_effect=BlobStorageError('secret details'))
    def test_storage_init_failure_is_generic(self, mock_ensure):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/storage/init/')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'Failed to initialize blob storage container')

    def test_storage_init_requires_admin(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/storage/init/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @patch('storefront.catalog.views.upload_image', return_value=IMAGE_URL)
    def test_upload_image(self, mock_upload):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/uploads/', {'file': image_file()}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['url'], IMAGE_URL)

    def test_upload_rejects_non_images(self):
        self.client.authenticate_user(self.admin)
        text_file = SimpleUploadedFile('notes.txt', b'hello', content_type='text/plain')
        response = self.client.post('/api/v1/uploads/', {'file': text_file}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_upload_requires_file(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/uploads/', {}, format='multipart')
        self.assertEqual(response.data['error'], 'No file provided')


class CatalogCommandTests(TestCase):
    """Test catalog management commands"""

    def _write_export(self, records):
        handle, path = tempfile.mkstemp(suffix='.json')
        with os.fdopen(handle, 'w', encoding='utf-8') as fh:
            json.dump(records, fh)
        self.addCleanup(os.remove, path)
        return path

    def test_import_categories_normalizes_empty_parents(self):
        path = self._write_export([
            {'id': 'c2', 'name': 'Soap', 'parentId': 'c1'},
            {'id': 'c1', 'name': 'Body Care', 'parent_id': ''},
            {'id': 'c3', 'name': 'Hair', 'parent_id': None},
        ])
        call_command('import_categories', path, stdout=StringIO())
        soap = Category.objects.get(name='Soap')
        self.assertEqual(soap.parent.name, 'Body Care')
        self.assertIsNone(Category.objects.get(name='Body Care').parent)
        self.assertIsNone(Category.objects.get(name='Hair').parent)

    def test_import_categories_dry_run(self):
        path = self._write_export([{'id': 1, 'name': 'Soaps', 'parent_id': ''}])
        out = StringIO()
        call_command('import_categories', path, '--dry-run', stdout=out)
        self.assertFalse(Category.objects.exists())
        self.assertIn('Would import 1 categories (1 top-level)', out.getvalue())

    def test_import_categories_rejects_bad_file(self):
        path = self._write_export({'not': 'a list'})
        with self.assertRaises(CommandError):
            call_command('import_categories', path, stdout=StringIO())

    def test_import_categories_skips_circular_links(self):
        path = self._write_export([
            {'id': 'a', 'name': 'Bath', 'parent_id': 'b'},
            {'id': 'b', 'name': 'Shower', 'parent_id': 'a'},
        ])
        out = StringIO()
        call_command('import_categories', path, stdout=out)
        parent_of = dict(Category.objects.values_list('id', 'parent_id'))
        self.assertEqual(find_cycles(parent_of), [])
        self.assertEqual(Category.objects.get(name='Bath').parent.name, 'Shower')
        self.assertIsNone(Category.objects.get(name='Shower').parent)
        self.assertIn('circular reference', out.getvalue())

    def test_check_categories_reports_problems(self):
        root = TestDataFactory.create_category(name='Body Care')
        child = TestDataFactory.create_category(name='Soap', parent=root)
        TestDataFactory.create_category(name='Bar Soap', parent=child)
        out = StringIO()
        call_command('check_categories', stdout=out)
        self.assertIn('more than two tiers', out.getvalue())

    def test_check_categories_reports_cycles(self):
        first = TestDataFactory.create_category(name='A')
        second = TestDataFactory.create_category(name='B', parent=first)
        Category.objects.filter(pk=first.pk).update(parent=second)
        out = StringIO()
        call_command('check_categories', stdout=out)
        self.assertIn('Cycle detected', out.getvalue())

    def test_check_categories_clean(self):
        TestDataFactory.create_category(name='Soaps')
        out = StringIO()
        call_command('check_categories', stdout=out)
        self.assertIn('Hierarchy is consistent', out.getvalue())

    def test_seed_catalog_is_idempotent(self):
        call_command('seed_catalog', stdout=StringIO())
        count = Category.objects.count()
        call_command('seed_catalog', stdout=StringIO())
        self.assertEqual(Category.objects.count(), count)
        self.assertEqual(Category.objects.get(name='Conditioners').parent.name, 'Shampoos')
        self.assertTrue(Collection.objects.filter(slug=Collection.FEATURED_SLUG).exists())
