"""
Azure Blob Storage upload for generated narration audio.
When AZURE_STORAGE_ACCOUNT and AZURE_STORAGE_ACCOUNT_KEY are set, audio is uploaded for real.
Otherwise callers fall back to a stub URL (local dev).
"""


def build_blob_url(account: str, container: str, blob_name: str) -> str:
    return f"https://{account}.blob.core.windows.net/{container}/{blob_name}"


def stub_blob_url(container: str, blob_name: str) -> str:
    return f"https://local-mvp/tales/{container}/{blob_name}"


def upload_blob(
    account_name: str,
    account_key: str,
    container: str,
    blob_name: str,
    data: bytes,
    content_type: str = "application/octet-stream",
) -> str:
    """Upload (overwrite) a blob and return its URL. The narrations container is expected to allow public read."""
    # Lazy import so the app starts without azure-storage-blob if not used
    from azure.storage.blob import BlobServiceClient, ContentSettings

    service = BlobServiceClient(
        account_url=f"https://{account_name}.blob.core.windows.net",
        credential=account_key,
    )
    blob = service.get_blob_client(container=container, blob=blob_name)
    blob.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
    return build_blob_url(account_name, container, blob_name)
