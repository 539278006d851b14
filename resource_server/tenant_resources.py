"""
Tenant resource listing from S3 with tenant-scoped credentials.
Objects live under "<tenantId>/" in BUCKET_NAME.
"""
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from resource_server.config import DEFAULT_REGION, Settings
from resource_server.errors import ConfigurationError, UpstreamError
from resource_server.tenant_credentials import TemporaryCredential, boto_config

logger = logging.getLogger(__name__)

MAX_KEYS = 100

_CONTENT_TYPES = {
    ".json": "application/json",
    ".md": "text/markdown",
    ".txt": "text/plain",
}


def content_type_for(filename: str) -> str:
    for suffix, content_type in _CONTENT_TYPES.items():
        if filename.endswith(suffix):
            return content_type
    return "text/plain"


def s3_client_for(credential: TemporaryCredential, settings: Settings):
    return boto3.client(
        "s3",
        aws_access_key_id=credential.access_key,
        aws_secret_access_key=credential.secret_key,
        aws_session_token=credential.session_token,
        region_name=settings.region or DEFAULT_REGION,
        config=boto_config(settings),
    )


def list_tenant_resources(s3_client, bucket: str, tenant_id: str) -> list[dict]:
    """Objects under the tenant prefix, excluding the prefix marker itself."""
    if not bucket:
        raise ConfigurationError("Tenant resources unavailable: BUCKET_NAME is not configured")
    prefix = f"{tenant_id}/"
    try:
        response = s3_client.list_objects_v2(Bucket=bucket, Prefix=prefix, MaxKeys=MAX_KEYS)
    except (BotoCoreError, ClientError) as e:
        logger.error("Listing resources for tenant %s failed: %s", tenant_id, e)
        raise UpstreamError("Failed to list tenant resources")

    resources = []
    for obj in response.get("Contents") or []:
        key = obj.get("Key")
        if not key or key == prefix:
            continue
        filename = key[len(prefix):]
        resources.append({"key": key, "filename": filename, "contentType": content_type_for(filename)})
    if not resources:
        logger.info("No resources found for tenant: %s", tenant_id)
    return resources
