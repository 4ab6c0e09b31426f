"""
Dropbox KYC upload links.
Creates a per-seller folder and a file request pointing at it. When Dropbox
refuses the file request, a public shared link to the folder is returned instead.
"""
import os
import re
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from models import FileRequestResult
from services.errors import ProviderAPIError

logger = logging.getLogger(__name__)

DROPBOX_API_BASE = "https://api.dropboxapi.com/2"
DEFAULT_KYC_PARENT_FOLDER = "/3PLVision/KYC-Uploads"
HTTP_TIMEOUT_SECONDS = float(os.getenv("DROPBOX_HTTP_TIMEOUT_SECONDS", "10"))

_SELLER_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_\s]")
_CODE_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_]")


def kyc_title_and_destination(
    seller_name: Optional[str],
    ste_code: Optional[str],
    parent_folder: Optional[str] = None,
) -> Tuple[str, str]:
    """Sanitized file request title and destination folder path."""
    safe_seller = _SELLER_UNSAFE.sub("", seller_name or "Seller").strip() or "Seller"
    safe_code = _CODE_UNSAFE.sub("", str(ste_code or "")) or "XXXX"
    parent = (parent_folder or os.getenv("DROPBOX_KYC_PARENT_FOLDER") or DEFAULT_KYC_PARENT_FOLDER).rstrip("/")

    title = f"KYC - {safe_seller} - STE-{safe_code}"
    destination = f"{parent}/{safe_seller}-STE-{safe_code}"
    return title, destination


class DropboxFileRequests:
    """Dropbox API v2 calls used for KYC collection."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        parent_folder: Optional[str] = None,
    ):
        self.base_url = DROPBOX_API_BASE
        self.transport = transport
        self.timeout = timeout
        self.parent_folder = parent_folder

    async def create_kyc_upload_link(
        self,
        access_token: str,
        seller_name: Optional[str],
        ste_code: Optional[str],
    ) -> FileRequestResult:
        """
        Produce an upload link for a seller's KYC documents.

        Returns:
            FileRequestResult of type "file_request", or "shared_link" when the
            file request was refused and the folder link was used instead.

        Raises:
            ProviderAPIError: the file request failed and so did the fallback.
                The file request error is the one raised.
        """
        title, destination = kyc_title_and_destination(seller_name, ste_code, self.parent_folder)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            await self._ensure_folder(client, access_token, destination)

            try:
                data = await self._call(client, access_token, "file_requests/create", {
                    "title": title,
                    "destination": destination,
                    "open": True,
                })
                logger.info(f"Dropbox file request created: {data.get('id')} -> {destination}")
                return FileRequestResult(
                    type="file_request",
                    id=data["id"],
                    url=data["url"],
                    title=data.get("title", title),
                    destination=data.get("destination", destination),
                )
            except ProviderAPIError as request_error:
                logger.warning(
                    f"File request creation failed ({request_error.error_summary}); "
                    f"falling back to shared link for {destination}"
                )
                try:
                    url, link_id = await self._shared_link(client, access_token, destination)
                except (ProviderAPIError, httpx.HTTPError) as link_error:
                    logger.error(f"Shared link fallback failed for {destination}: {link_error}")
                    raise request_error from link_error

                return FileRequestResult(
                    type="shared_link",
                    id=link_id,
                    url=url,
                    title=f"{title} (Shared Link)",
                    destination=destination,
                )

    async def _ensure_folder(self, client: httpx.AsyncClient, access_token: str, path: str) -> None:
        """Create the destination folder. Existing folders and failures are not fatal."""
        try:
            await self._call(client, access_token, "files/create_folder_v2", {
                "path": path,
                "autorename": False,
            })
            logger.info(f"Dropbox folder created: {path}")
        except ProviderAPIError as e:
            if e.status_code == 409:
                logger.info(f"Dropbox folder already exists: {path}")
            else:
                logger.warning(f"Dropbox folder creation failed (non-critical): {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Dropbox folder creation request failed (non-critical): {e}")

    async def _shared_link(self, client: httpx.AsyncClient, access_token: str, path: str) -> Tuple[str, str]:
        try:
            data = await self._call(client, access_token, "sharing/create_shared_link_with_settings", {
                "path": path,
                "settings": {
                    "requested_visibility": "public",
                    "audience": "public",
                    "access": "viewer",
                },
            })
        except ProviderAPIError as e:
            existing = self._existing_link(e)
            if not existing:
                raise
            logger.info(f"Reusing existing Dropbox shared link for {path}")
            data = existing

        url = data["url"]
        return url, data.get("id") or url

    @staticmethod
    def _existing_link(error: ProviderAPIError) -> Optional[Dict[str, Any]]:
        if "shared_link_already_exists" not in error.error_summary:
            return None
        detail = error.payload.get("error")
        conflict = detail.get("shared_link_already_exists") if isinstance(detail, dict) else None
        metadata = conflict.get("metadata") if isinstance(conflict, dict) else None
        if isinstance(metadata, dict) and metadata.get("url"):
            return metadata
        return None

    async def _call(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        endpoint: str,
        body: Dict[str, Any],
    ) -> Dict[str, Any]:
        response = await client.post(
            f"{self.base_url}/{endpoint}",
            json=body,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )
        if response.is_success:
            return response.json()

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        summary = payload.get("error_summary") if isinstance(payload, dict) else None
        if not isinstance(payload, dict):
            payload = {}
        raise ProviderAPIError(endpoint, response.status_code, summary or response.text or None, payload)


dropbox_file_requests = DropboxFileRequests()


def get_dropbox_file_requests() -> DropboxFileRequests:
    return dropbox_file_requests
