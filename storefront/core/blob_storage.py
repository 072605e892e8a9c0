"""
Azure Blob Storage access for catalog images.

Container setup is idempotent: it checks for the container and creates it
only when missing, and a concurrent create that wins the race is treated as
success. Nothing is remembered in-process between calls.
"""
import logging
import re
import time
from typing import Optional
from urllib.parse import urlparse, unquote

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings
from django.conf import settings

logger = logging.getLogger(__name__)


class BlobStorageError(Exception):
    """Raised when the blob store is unreachable, misconfigured or rejects a call"""


def get_container_name() -> str:
    return getattr(settings, 'AZURE_STORAGE_CONTAINER', 'product-images')


def get_service_client() -> BlobServiceClient:
    connection_string = getattr(settings, 'AZURE_STORAGE_CONNECTION_STRING', '')
    if not connection_string:
        raise BlobStorageError('Azure Storage connection string not configured')
    try:
        return BlobServiceClient.from_connection_string(connection_string)
    except (ValueError, AzureError) as e:
        raise BlobStorageError(f'Invalid Azure Storage connection string: {e}') from e


def get_container_client():
    return get_service_client().get_container_client(get_container_name())


def ensure_container() -> bool:
    """
    Make sure the image container exists with public blob read access.

    Returns:
        True if this call created the container, False if it already existed
    """
    container = get_container_client()
    name = get_container_name()
    try:
        if container.exists():
            logger.info(f"Container '{name}' already exists")
            return False
        logger.info(f"Creating container '{name}'...")
        container.create_container(public_access='blob')
    except ResourceExistsError:
        logger.info(f"Container '{name}' was created concurrently")
        return False
    except AzureError as e:
        raise BlobStorageError(f"Failed to initialize container '{name}': {e}") from e
    logger.info(f"Container '{name}' created successfully")
    return True


def make_blob_name(filename: str) -> str:
    """Timestamp-prefixed name with whitespace replaced, e.g. 1700000000000-lavender-soap.png"""
    safe_name = re.sub(r'\s+', '-', (filename or 'upload').strip())
    return f"{int(time.time() * 1000)}-{safe_name}"


def upload_image(uploaded_file) -> str:
    """Upload a Django UploadedFile and return its public URL"""
    blob_name = make_blob_name(getattr(uploaded_file, 'name', ''))
    content_type = getattr(uploaded_file, 'content_type', None) or 'application/octet-stream'
    try:
        blob = get_container_client().get_blob_client(blob_name)
        blob.upload_blob(
            uploaded_file.read(),
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
        )
    except AzureError as e:
        logger.error(f"Error uploading image to Azure Blob Storage: {str(e)}", exc_info=True)
        raise BlobStorageError('Failed to upload image') from e
    logger.info(f"Uploaded image blob {blob_name}")
    return blob.url


def blob_name_from_url(image_url: str) -> Optional[str]:
    path = urlparse(image_url or '').path
    segments = [segment for segment in path.split('/') if segment]
    if not segments:
        return None
    return unquote(segments[-1])


def delete_image(image_url: str) -> None:
    blob_name = blob_name_from_url(image_url)
    if not blob_name:
        return
    try:
        get_container_client().get_blob_client(blob_name).delete_blob()
    except ResourceNotFoundError:
        logger.warning(f"Image blob {blob_name} was already gone")
    except AzureError as e:
        logger.error(f"Error deleting image from Azure Blob Storage: {str(e)}", exc_info=True)
        raise BlobStorageError('Failed to delete image') from e
