import django_filters
from django.db.models import Q
from .models import Product


TRUTHY = ('true', '1', 'yes')


class ProductFilter(django_filters.FilterSet):
    """Storefront/admin product filtering using django-filter"""

    # Search across name, description, ingredients and category name
    search = django_filters.CharFilter(method='filter_search', label='Search')

    # Direct field filters
    category = django_filters.NumberFilter(method='filter_category', label='Category ID')
    category_slug = django_filters.CharFilter(method='filter_category_slug', label='Category slug')
    collection = django_filters.CharFilter(method='filter_collection', label='Collection ID or slug')
    status = django_filters.ChoiceFilter(field_name='status', choices=Product.STATUS_CHOICES)
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    in_stock = django_filters.CharFilter(method='filter_in_stock', label='In Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'category_slug', 'collection', 'status',
                  'min_price', 'max_price', 'in_stock']

    def filter_search(self, queryset, name, value):
        """Every word must appear somewhere in the searchable fields"""
        words = [w for w in (value or '').split() if w]
        if not words:
            return queryset
        for word in words:
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(description__icontains=word) |
                Q(ingredients__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset.distinct()

    def filter_category(self, queryset, name, value):
        """A parent category also matches products filed under its subcategories"""
        if value is None:
            return queryset
        return queryset.filter(Q(category_id=value) | Q(category__parent_id=value))

    def filter_category_slug(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(Q(category__slug=value) | Q(category__parent__slug=value))

    def filter_collection(self, queryset, name, value):
        if not value:
            return queryset
        if value.isdigit():
            return queryset.filter(collections__id=int(value)).distinct()
        return queryset.filter(collections__slug=value).distinct()

    def filter_in_stock(self, queryset, name, value):
        if value is None or value == '':
            return queryset
        if value.lower() in TRUTHY:
            return queryset.filter(stock__gt=0)
        return queryset.filter(stock=0)
