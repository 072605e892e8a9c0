"""
Management command to seed the default category tree and collections
"""
from django.core.management.base import BaseCommand
from storefront.catalog.models import Category, Collection


DEFAULT_CATEGORIES = {
    'Soaps': [],
    'Shampoos': ['Conditioners'],
    'Body Care': ['Body Wash'],
    'Accessories': [],
}

DEFAULT_COLLECTIONS = [
    (Collection.FEATURED_SLUG, 'Featured'),
    ('summer-collection', 'Summer Collection'),
    ('winter-collection', 'Winter Collection'),
    ('best-sellers', 'Best Sellers'),
]


class Command(BaseCommand):
    help = "Creates the default categories and collections if they don't exist"

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete all existing categories before seeding',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write(self.style.WARNING("Clearing all existing categories..."))
            Category.objects.all().delete()

        created_count = 0
        for parent_name, children in DEFAULT_CATEGORIES.items():
            parent, created = Category.objects.get_or_create(name=parent_name, parent=None)
            created_count += int(created)
            for child_name in children:
                _, created = Category.objects.get_or_create(name=child_name, defaults={'parent': parent})
                created_count += int(created)

        for slug, name in DEFAULT_COLLECTIONS:
            _, created = Collection.objects.get_or_create(slug=slug, defaults={'name': name})
            if created:
                self.stdout.write(self.style.SUCCESS(f"Created collection: {name}"))

        self.stdout.write(self.style.SUCCESS(f"Seeded catalog: {created_count} new categories"))
