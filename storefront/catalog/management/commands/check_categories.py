"""
Management command to report on the category hierarchy
"""
from django.core.management.base import BaseCommand
from storefront.catalog.models import Category
from storefront.catalog.tree import resolve_category_tree, find_cycles


class Command(BaseCommand):
    help = "Prints the category hierarchy and reports dangling parents, deep nesting and cycles"

    def handle(self, *args, **options):
        records = list(Category.objects.order_by('name').values('id', 'name', 'slug', 'parent_id'))
        by_id = {record['id']: record for record in records}
        resolved = resolve_category_tree(records)

        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(self.style.SUCCESS("CATEGORY HIERARCHY"))
        self.stdout.write(self.style.SUCCESS("=" * 80))

        for entry in resolved:
            if entry['parent_id'] is not None:
                continue
            self.stdout.write(f"{entry['name']} ({entry['slug']})")
            for child in entry['subcategories']:
                self.stdout.write(f"  - {child['name']} ({child['slug']})")

        problems = 0
        for entry in resolved:
            parent_id = entry['parent_id']
            if parent_id is None:
                continue
            if parent_id == entry['id']:
                problems += 1
                self.stdout.write(self.style.ERROR(f"Category '{entry['name']}' is its own parent"))
            elif parent_id not in by_id:
                problems += 1
                self.stdout.write(self.style.ERROR(f"Category '{entry['name']}' references missing parent {parent_id}"))
            elif by_id[parent_id]['parent_id'] is not None:
                problems += 1
                self.stdout.write(self.style.WARNING(
                    f"Category '{entry['name']}' is nested more than two tiers deep "
                    f"(under '{by_id[parent_id]['name']}')"
                ))

        for cycle in find_cycles({record['id']: record['parent_id'] for record in records}):
            problems += 1
            names = ' -> '.join(by_id[category_id]['name'] for category_id in cycle)
            self.stdout.write(self.style.ERROR(f"Cycle detected: {names}"))

        self.stdout.write("")
        self.stdout.write(f"Total categories: {len(records)}")
        if problems:
            self.stdout.write(self.style.WARNING(f"Found {problems} problem(s)"))
        else:
            self.stdout.write(self.style.SUCCESS("Hierarchy is consistent"))
