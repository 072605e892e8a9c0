import logging
import random

from django.db import DatabaseError, transaction
from django.db.models import Count
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from storefront.core.blob_storage import BlobStorageError, ensure_container, upload_image, delete_image
from storefront.core.permissions import CatalogReadOrManage, CanManageCatalog, CanManageStorage
from .filters import ProductFilter
from .models import Category, Collection, Product
from .serializers import (
    CategorySerializer, CollectionSerializer, CollectionDetailSerializer,
    ProductSerializer, ProductListSerializer, RandomProductSerializer,
)
from .tree import resolve_category_tree, root_categories

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ('id', 'name', 'slug', 'parent_id', 'description', 'image',
                   'product_count', 'created_at', 'updated_at')


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST):
    return Response({'success': False, 'error': message}, status=status_code)


def validation_error_response(errors):
    for field, messages in errors.items():
        message = messages[0] if isinstance(messages, list) and messages else messages
        if field == 'non_field_errors':
            return error_response(str(message))
        return error_response(f"{field}: {message}")
    return error_response('Invalid input')


def category_snapshot():
    """Every category with its product count, ordered by name"""
    return list(
        Category.objects.annotate(product_count=Count('products'))
        .order_by('name')
        .values(*CATEGORY_FIELDS)
    )


def resolved_category(predicate):
    """Resolve the full tree and return the first entry matching `predicate`"""
    for entry in resolve_category_tree(category_snapshot()):
        if predicate(entry):
            return entry
    return None


def _upload_or_none(uploaded_file):
    """
    Returns:
        tuple: (url, None) or (None, error Response)
    """
    if not uploaded_file:
        return None, None
    try:
        return upload_image(uploaded_file), None
    except BlobStorageError:
        return None, error_response('Failed to upload image', status.HTTP_502_BAD_GATEWAY)


def _discard_image(image_url):
    if not image_url:
        return
    try:
        delete_image(image_url)
    except BlobStorageError:
        logger.error(f"Could not delete image {image_url}; leaving orphaned blob")


# Category views
@api_view(['GET', 'POST'])
@permission_classes([CatalogReadOrManage])
def category_list_create(request):
    """List categories with resolved parent/subcategories, or create one"""
    if request.method == 'GET':
        try:
            data = resolve_category_tree(category_snapshot())
        except DatabaseError as e:
            logger.error(f"Error getting categories: {str(e)}", exc_info=True)
            return error_response('Failed to get categories', status.HTTP_500_INTERNAL_SERVER_ERROR)
        logger.debug(f"Found {len(data)} categories")
        return Response({'success': True, 'data': data})

    serializer = CategorySerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    image_url, failure = _upload_or_none(request.FILES.get('image'))
    if failure is not None:
        return failure
    try:
        category = serializer.save(image=image_url or '')
    except DatabaseError as e:
        logger.error(f"Error creating category: {str(e)}", exc_info=True)
        _discard_image(image_url)
        return error_response('Failed to create category', status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': CategorySerializer(category).data}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def category_roots(request):
    """Top-level categories only"""
    try:
        data = root_categories(category_snapshot())
    except DatabaseError as e:
        logger.error(f"Error getting parent categories: {str(e)}", exc_info=True)
        return error_response('Failed to get parent categories', status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': data})


@api_view(['GET'])
@permission_classes([AllowAny])
def category_subcategories(request, pk):
    try:
        entry = resolved_category(lambda c: c['id'] == pk)
    except DatabaseError as e:
        logger.error(f"Error getting subcategories for parent {pk}: {str(e)}", exc_info=True)
        return error_response('Failed to get subcategories', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if entry is None:
        return error_response('Category not found', status.HTTP_404_NOT_FOUND)
    return Response({'success': True, 'data': entry['subcategories']})


@api_view(['GET'])
@permission_classes([AllowAny])
def category_by_slug(request, slug):
    """Category with parent, subcategories and its products"""
    try:
        entry = resolved_category(lambda c: c['slug'] == slug)
        if entry is None:
            return error_response('Category not found', status.HTTP_404_NOT_FOUND)
        products = ProductFilter({'category': entry['id']}, queryset=Product.objects.select_related('category')).qs
        entry['products'] = ProductListSerializer(products, many=True).data
    except DatabaseError as e:
        logger.error(f"Error getting category with slug {slug}: {str(e)}", exc_info=True)
        return error_response('Failed to get category', status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': entry})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([CatalogReadOrManage])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    if request.method == 'GET':
        try:
            entry = resolved_category(lambda c: c['id'] == pk)
        except DatabaseError as e:
            logger.error(f"Error getting category with ID {pk}: {str(e)}", exc_info=True)
            return error_response('Failed to get category', status.HTTP_500_INTERNAL_SERVER_ERROR)
        if entry is None:
            return error_response('Category not found', status.HTTP_404_NOT_FOUND)
        return Response({'success': True, 'data': entry})

    category = Category.objects.filter(pk=pk).first()
    if category is None:
        return error_response('Category not found', status.HTTP_404_NOT_FOUND)

    if request.method == 'DELETE':
        if category.children.exists():
            return error_response(
                'Cannot delete category with subcategories. Please delete or reassign the subcategories first.'
            )
        if category.products.exists():
            return error_response('Cannot delete category with products. Please reassign the products first.')
        image_url = category.image
        try:
            category.delete()
        except DatabaseError as e:
            logger.error(f"Error deleting category with ID {pk}: {str(e)}", exc_info=True)
            return error_response('Failed to delete category', status.HTTP_500_INTERNAL_SERVER_ERROR)
        _discard_image(image_url)
        return Response({'success': True})

    serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    new_image, failure = _upload_or_none(request.FILES.get('image'))
    if failure is not None:
        return failure
    old_image = category.image
    try:
        category = serializer.save(**({'image': new_image} if new_image else {}))
    except DatabaseError as e:
        logger.error(f"Error updating category with ID {pk}: {str(e)}", exc_info=True)
        _discard_image(new_image)
        return error_response('Failed to update category', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if new_image and old_image and old_image != new_image:
        _discard_image(old_image)
    return Response({'success': True, 'data': CategorySerializer(category).data})


# Collection views
@api_view(['GET', 'POST'])
@permission_classes([CatalogReadOrManage])
def collection_list_create(request):
    if request.method == 'GET':
        try:
            collections = Collection.objects.annotate(product_count=Count('products')).order_by('name')
            data = CollectionSerializer(collections, many=True).data
        except DatabaseError as e:
            logger.error(f"Error getting collections: {str(e)}", exc_info=True)
            return error_response('Failed to get collections', status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({'success': True, 'data': data})

    serializer = CollectionSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    image_url, failure = _upload_or_none(request.FILES.get('image'))
    if failure is not None:
        return failure
    try:
        with transaction.atomic():
            collection = serializer.save(image=image_url or '')
    except DatabaseError as e:
        logger.error(f"Error creating collection: {str(e)}", exc_info=True)
        _discard_image(image_url)
        return error_response('Failed to create collection', status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': CollectionDetailSerializer(collection).data},
                    status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def collection_by_slug(request, slug):
    try:
        collection = Collection.objects.prefetch_related('products__category').filter(slug=slug).first()
        if collection is None:
            return error_response('Collection not found', status.HTTP_404_NOT_FOUND)
        data = CollectionDetailSerializer(collection).data
    except DatabaseError as e:
        logger.error(f"Error getting collection with slug {slug}: {str(e)}", exc_info=True)
        return error_response('Failed to get collection', status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': data})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([CatalogReadOrManage])
def collection_detail(request, pk):
    try:
        collection = Collection.objects.prefetch_related('products__category').filter(pk=pk).first()
        if collection is not None and request.method == 'GET':
            return Response({'success': True, 'data': CollectionDetailSerializer(collection).data})
    except DatabaseError as e:
        logger.error(f"Error getting collection with ID {pk}: {str(e)}", exc_info=True)
        return error_response('Failed to get collection', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if collection is None:
        return error_response('Collection not found', status.HTTP_404_NOT_FOUND)

    if request.method == 'DELETE':
        image_url = collection.image
        try:
            collection.delete()
        except DatabaseError as e:
            logger.error(f"Error deleting collection with ID {pk}: {str(e)}", exc_info=True)
            return error_response('Failed to delete collection', status.HTTP_500_INTERNAL_SERVER_ERROR)
        _discard_image(image_url)
        return Response({'success': True})

    serializer = CollectionSerializer(collection, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    new_image, failure = _upload_or_none(request.FILES.get('image'))
    if failure is not None:
        return failure
    old_image = collection.image
    try:
        with transaction.atomic():
            collection = serializer.save(**({'image': new_image} if new_image else {}))
    except DatabaseError as e:
        logger.error(f"Error updating collection with ID {pk}: {str(e)}", exc_info=True)
        _discard_image(new_image)
        return error_response('Failed to update collection', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if new_image and old_image and old_image != new_image:
        _discard_image(old_image)
    return Response({'success': True, 'data': CollectionDetailSerializer(collection).data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageCatalog])
def ensure_featured_collection(request):
    """Create the 'featured' collection used by the home page if it's missing"""
    try:
        _, created = Collection.objects.get_or_create(
            slug=Collection.FEATURED_SLUG,
            defaults={'name': 'Featured', 'description': 'Products featured on the home page'},
        )
    except DatabaseError as e:
        logger.error(f"Error creating Featured collection: {str(e)}", exc_info=True)
        return error_response('Failed to create Featured collection', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if created:
        logger.info("Created Featured collection")
        return Response({'success': True, 'message': 'Featured collection created'}, status=status.HTTP_201_CREATED)
    return Response({'success': True, 'message': 'Featured collection already exists'})


# Product views
@api_view(['GET', 'POST'])
@permission_classes([CatalogReadOrManage])
def product_list_create(request):
    """List products (with django-filter query params) or create one"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').order_by('-created_at')
        product_filter = ProductFilter(request.query_params, queryset=queryset)
        if not product_filter.is_valid():
            return validation_error_response(product_filter.errors)
        try:
            data = ProductListSerializer(product_filter.qs, many=True).data
        except DatabaseError as e:
            logger.error(f"Error getting products: {str(e)}", exc_info=True)
            return error_response('Failed to get products', status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({'success': True, 'data': data})

    serializer = ProductSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    uploaded = []
    for image in request.FILES.getlist('image_files'):
        url, failure = _upload_or_none(image)
        if failure is not None:
            for url_to_remove in uploaded:
                _discard_image(url_to_remove)
            return failure
        uploaded.append(url)

    images = list(serializer.validated_data.get('images', [])) + uploaded
    try:
        with transaction.atomic():
            product = serializer.save(images=images)
    except DatabaseError as e:
        logger.error(f"Error creating product: {str(e)}", exc_info=True)
        for image_url in uploaded:
            _discard_image(image_url)
        return error_response('Failed to create product', status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': ProductSerializer(product).data}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def product_random(request):
    """A random ACTIVE product that is in stock"""
    try:
        queryset = Product.objects.filter(status=Product.STATUS_ACTIVE, stock__gt=0).order_by('id')
        count = queryset.count()
        if count == 0:
            return Response({'success': False, 'error': 'No active products found'})
        product = queryset[random.randrange(count):][:1].first()
    except DatabaseError as e:
        logger.error(f"Error fetching random product: {str(e)}", exc_info=True)
        return error_response('Failed to fetch random product', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if product is None:
        return Response({'success': False, 'error': 'No product found'})
    return Response({'success': True, 'data': RandomProductSerializer(product).data})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([CatalogReadOrManage])
def product_detail(request, pk):
    try:
        product = Product.objects.select_related('category').prefetch_related('collections').filter(pk=pk).first()
        if product is not None and request.method == 'GET':
            return Response({'success': True, 'data': ProductSerializer(product).data})
    except DatabaseError as e:
        logger.error(f"Error getting product with ID {pk}: {str(e)}", exc_info=True)
        return error_response('Failed to get product', status.HTTP_500_INTERNAL_SERVER_ERROR)
    if product is None:
        return error_response('Product not found', status.HTTP_404_NOT_FOUND)

    if request.method == 'DELETE':
        images = list(product.images or [])
        try:
            product.delete()
        except DatabaseError as e:
            logger.error(f"Error deleting product with ID {pk}: {str(e)}", exc_info=True)
            return error_response('Failed to delete product', status.HTTP_500_INTERNAL_SERVER_ERROR)
        for image_url in images:
            _discard_image(image_url)
        return Response({'success': True})

    serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    uploaded = []
    for image in request.FILES.getlist('image_files'):
        url, failure = _upload_or_none(image)
        if failure is not None:
            for url_to_remove in uploaded:
                _discard_image(url_to_remove)
            return failure
        uploaded.append(url)

    previous_images = list(product.images or [])
    kept_images = list(serializer.validated_data.get('images', previous_images))
    try:
        with transaction.atomic():
            product = serializer.save(images=kept_images + uploaded)
    except DatabaseError as e:
        logger.error(f"Error updating product with ID {pk}: {str(e)}", exc_info=True)
        for image_url in uploaded:
            _discard_image(image_url)
        return error_response('Failed to update product', status.HTTP_500_INTERNAL_SERVER_ERROR)
    for image_url in previous_images:
        if image_url not in product.images:
            _discard_image(image_url)
    return Response({'success': True, 'data': ProductSerializer(product).data})


# Blob storage
@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageStorage])
def storage_init(request):
    """Ensure the image container exists; safe to call any number of times"""
    try:
        created = ensure_container()
    except BlobStorageError as e:
        logger.error(f"Failed to initialize blob storage container: {str(e)}", exc_info=True)
        return error_response('Failed to initialize blob storage container', status.HTTP_500_INTERNAL_SERVER_ERROR)
    message = 'Blob storage container created' if created else 'Blob storage container already initialized'
    return Response({'success': True, 'message': message})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageCatalog])
def image_upload(request):
    uploaded_file = request.FILES.get('file')
    if not uploaded_file:
        return error_response('No file provided')
    if not (uploaded_file.content_type or '').startswith('image/'):
        return error_response('Only image uploads are allowed')
    url, failure = _upload_or_none(uploaded_file)
    if failure is not None:
        return failure
    return Response({'success': True, 'data': {'url': url}}, status=status.HTTP_201_CREATED)
