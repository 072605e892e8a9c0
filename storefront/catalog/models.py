from django.db import models
from django.utils.text import slugify
from decimal import Decimal


def unique_slug(model, value, instance_pk=None, max_attempts=1000):
    """Slugify `value` and append -2, -3, ... until no other row uses it"""
    base_slug = slugify(value)[:180] or 'item'
    slug = base_slug
    counter = 1
    while model.objects.filter(slug=slug).exclude(pk=instance_pk).exists():
        counter += 1
        if counter > max_attempts:
            raise ValueError(f"Could not find a free slug for {value!r}")
        slug = f"{base_slug}-{counter}"
    return slug


class Category(models.Model):
    """Product categories; parents have no parent, children point at a parent"""
    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=200, unique=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    description = models.TextField(blank=True)
    image = models.URLField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Category, self.name, self.pk)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Collection(models.Model):
    """Curated product groupings (e.g. Featured)"""
    FEATURED_SLUG = 'featured'

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    image = models.URLField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Collection, self.name, self.pk)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'collections'
        ordering = ['name']


class Product(models.Model):
    """Storefront product"""
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_DRAFT = 'DRAFT'
    STATUS_ARCHIVED = 'ARCHIVED'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_DRAFT, 'Draft'),
        (STATUS_ARCHIVED, 'Archived'),
    ]

    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    discounted_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    stock = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    images = models.JSONField(default=list, blank=True)  # blob URLs
    weight = models.CharField(max_length=100, blank=True)
    ingredients = models.TextField(blank=True)
    benefits = models.JSONField(default=list, blank=True)
    how_to_use = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    collections = models.ManyToManyField(Collection, blank=True, related_name='products')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Product, self.name, self.pk)
        super().save(*args, **kwargs)

    @property
    def is_purchasable(self):
        return self.status == self.STATUS_ACTIVE and self.stock > 0

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']
