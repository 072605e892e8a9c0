from rest_framework import serializers
from .models import Category, Collection, Product
from .tree import would_create_cycle


class CommaSeparatedListField(serializers.ListField):
    """List field that also accepts a single comma-separated string (form posts)"""

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = [part.strip() for part in data.split(',') if part.strip()]
        return super().to_internal_value(data)


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'parent', 'description', 'image', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['image', 'created_at', 'updated_at']
        extra_kwargs = {
            'slug': {'required': False},
            'parent': {'required': False, 'allow_null': True},
        }

    def validate(self, attrs):
        if self.instance is None or 'parent' not in attrs:
            return attrs
        parent = attrs['parent']
        if parent is None:
            return attrs
        if parent.pk == self.instance.pk:
            raise serializers.ValidationError({'parent': 'A category cannot be its own parent'})
        parent_of = dict(Category.objects.values_list('id', 'parent_id'))
        if would_create_cycle(self.instance.pk, parent.pk, parent_of):
            raise serializers.ValidationError(
                {'parent': 'This would create a circular reference in the category hierarchy'}
            )
        return attrs


class CategorySummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'parent']


class CollectionSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Collection
        fields = ['id', 'name', 'slug']


class ProductSerializer(serializers.ModelSerializer):
    category_detail = CategorySummarySerializer(source='category', read_only=True)
    collection_details = CollectionSummarySerializer(source='collections', many=True, read_only=True)
    images = CommaSeparatedListField(child=serializers.URLField(max_length=500), required=False)
    benefits = CommaSeparatedListField(child=serializers.CharField(max_length=200), required=False)
    is_purchasable = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'description', 'price', 'discounted_price', 'stock', 'status',
                  'images', 'weight', 'ingredients', 'benefits', 'how_to_use',
                  'category', 'category_detail', 'collections', 'collection_details', 'is_purchasable',
                  'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {
            'slug': {'required': False},
            'category': {'required': False, 'allow_null': True},
            'collections': {'required': False},
        }

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price cannot be negative')
        return value

    def validate(self, attrs):
        price = attrs.get('price', getattr(self.instance, 'price', None))
        discounted = attrs.get('discounted_price', getattr(self.instance, 'discounted_price', None))
        if discounted is not None and price is not None and discounted > price:
            raise serializers.ValidationError({'discounted_price': 'Discounted price cannot exceed price'})
        return attrs


class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight product representation for listings"""
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'price', 'discounted_price', 'stock', 'status', 'images',
                  'category', 'category_name']


class RandomProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ['id', 'name', 'price', 'images']


class CollectionSerializer(serializers.ModelSerializer):
    product_ids = serializers.PrimaryKeyRelatedField(
        source='products', queryset=Product.objects.all(), many=True, required=False, write_only=True
    )
    product_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Collection
        fields = ['id', 'name', 'slug', 'description', 'image', 'product_ids', 'product_count',
                  'created_at', 'updated_at']
        read_only_fields = ['image', 'created_at', 'updated_at']
        extra_kwargs = {
            'slug': {'required': False},
        }

    def create(self, validated_data):
        products = validated_data.pop('products', None)
        collection = Collection.objects.create(**validated_data)
        if products:
            collection.products.set(products)
        return collection

    def update(self, instance, validated_data):
        products = validated_data.pop('products', None)
        instance = super().update(instance, validated_data)
        if products is not None:
            instance.products.set(products)
        return instance


class CollectionDetailSerializer(serializers.ModelSerializer):
    products = ProductListSerializer(many=True, read_only=True)

    class Meta:
        model = Collection
        fields = ['id', 'name', 'slug', 'description', 'image', 'products', 'created_at', 'updated_at']
