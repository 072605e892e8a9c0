"""
Management command to import categories from a JSON export.

The file is a list of objects with at least ``id`` and ``name``; ``parent_id``
(or ``parentId``) may be null, missing or an empty string for top-level
categories. Ids in the file are only used to link parents and are not kept.
"""
import json

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from storefront.catalog.models import Category, unique_slug
from storefront.catalog.tree import normalize_parent_ref, find_cycles, would_create_cycle


class Command(BaseCommand):
    help = "Imports categories from a JSON export, treating empty parent references as top-level"

    def add_arguments(self, parser):
        parser.add_argument('file', help='Path to the JSON export')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Parse and report without writing to the database',
        )

    def handle(self, *args, **options):
        try:
            with open(options['file'], encoding='utf-8') as fh:
                records = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise CommandError(f"Could not read {options['file']}: {e}")

        if not isinstance(records, list):
            raise CommandError("Expected a JSON list of category objects")

        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be made'))

        parent_refs = {}
        for record in records:
            if not isinstance(record, dict) or 'id' not in record or not record.get('name'):
                raise CommandError(f"Invalid category record: {record!r}")
            raw = record.get('parent_id', record.get('parentId'))
            parent_refs[str(record['id'])] = normalize_parent_ref(raw if raw is None else str(raw))

        missing = {ref for ref in parent_refs.values() if ref is not None and ref not in parent_refs}
        for ref in sorted(missing):
            self.stdout.write(self.style.WARNING(f"Parent {ref} is not in the export; affected categories become top-level"))

        for cycle in find_cycles(parent_refs):
            self.stdout.write(self.style.ERROR(
                f"Circular parent references: {' -> '.join(cycle)}; the link that closes the loop is skipped"
            ))

        if dry_run:
            roots = sum(1 for ref in parent_refs.values() if ref is None or ref in missing)
            self.stdout.write(f"Would import {len(records)} categories ({roots} top-level)")
            return

        created = {}
        skipped_count = 0
        rejected_count = 0
        with transaction.atomic():
            # Pass one: create every row without parents
            for record in records:
                slug = record.get('slug') or ''
                existing = Category.objects.filter(slug=slug).first() if slug else None
                if existing is not None:
                    created[str(record['id'])] = existing
                    skipped_count += 1
                    continue
                category = Category(
                    name=record['name'].strip(),
                    slug=slug or unique_slug(Category, record['name']),
                    description=record.get('description') or '',
                    image=record.get('image') or '',
                )
                category.save()
                created[str(record['id'])] = category

            # Pass two: link parents now that every row exists
            parent_of = dict(Category.objects.values_list('id', 'parent_id'))
            for source_id, parent_ref in parent_refs.items():
                if parent_ref is None or parent_ref not in created or parent_ref == source_id:
                    continue
                category = created[source_id]
                parent = created[parent_ref]
                if would_create_cycle(category.pk, parent.pk, parent_of):
                    self.stdout.write(self.style.ERROR(
                        f"Skipped parent {parent_ref} for {source_id}: it would create a circular reference"
                    ))
                    rejected_count += 1
                    continue
                category.parent = parent
                category.save(update_fields=['parent', 'updated_at'])
                parent_of[category.pk] = parent.pk

        self.stdout.write(self.style.SUCCESS(
            f"Imported {len(records) - skipped_count} categories ({skipped_count} already present, "
            f"{rejected_count} circular parent links skipped)"
        ))
