"""
Management command to make sure the blob storage container exists
"""
from django.core.management.base import BaseCommand, CommandError
from storefront.core.blob_storage import BlobStorageError, ensure_container, get_container_name


class Command(BaseCommand):
    help = "Creates the Azure Blob Storage image container if it doesn't exist"

    def handle(self, *args, **options):
        name = get_container_name()
        try:
            created = ensure_container()
        except BlobStorageError as e:
            raise CommandError(str(e))
        if created:
            self.stdout.write(self.style.SUCCESS(f"Container '{name}' created"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Container '{name}' already exists"))
