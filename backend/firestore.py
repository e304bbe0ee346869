"""
Firestore REST client and typed value codec
"""

import asyncio
import aiohttp
import pytz
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple

from core.logging_config import get_logger
from .credentials import CredentialStore
from .exceptions import (
    AuthenticationError, BackendConnectionError, BackendError, NotFoundError, NotSignedInError
)
from .firebase_auth import FirebaseAuthClient


def encode_value(value: Any) -> Dict[str, Any]:
    """Convert a Python value into a Firestore typed value"""
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def decode_value(typed: Dict[str, Any]) -> Any:
    """Convert a Firestore typed value back into a Python value"""
    if "nullValue" in typed:
        return None
    if "booleanValue" in typed:
        return bool(typed["booleanValue"])
    if "integerValue" in typed:
        return int(typed["integerValue"])
    if "doubleValue" in typed:
        return float(typed["doubleValue"])
    if "stringValue" in typed:
        return typed["stringValue"]
    if "timestampValue" in typed:
        return parse_timestamp(typed["timestampValue"])
    if "arrayValue" in typed:
        return [decode_value(v) for v in typed["arrayValue"].get("values", [])]
    if "mapValue" in typed:
        return decode_fields(typed["mapValue"].get("fields", {}))
    if "referenceValue" in typed:
        return typed["referenceValue"]
    raise ValueError(f"Unsupported Firestore value: {sorted(typed)}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(value) for key, value in data.items()}


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def format_timestamp(value: datetime) -> str:
    """RFC 3339 UTC timestamp; naive datetimes are taken as UTC"""
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(text: str) -> datetime:
    """Parse a Firestore timestamp (up to nanosecond precision) into an aware UTC datetime"""
    text = text.rstrip("Z")
    if "+" in text[10:]:
        text = text[:10] + text[10:].split("+", 1)[0]

    if "." in text:
        base, fraction = text.split(".", 1)
        fraction = (fraction + "000000")[:6]
        parsed = datetime.strptime(f"{base}.{fraction}", "%Y-%m-%dT%H:%M:%S.%f")
    else:
        parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S")

    return pytz.UTC.localize(parsed)


class FirestoreClient:
    """Authorized document reads and writes for the signed-in user"""

    def __init__(self,
                 project_id: str,
                 credential_store: CredentialStore,
                 auth_client: FirebaseAuthClient,
                 endpoint: str = "https://firestore.googleapis.com/v1",
                 timeout: float = 10.0):
        self.logger = get_logger(__name__)
        self.project_id = project_id
        self.credential_store = credential_store
        self.auth_client = auth_client
        self.base_url = f"{endpoint.rstrip('/')}/projects/{project_id}/databases/(default)/documents"
        self.timeout = timeout

    async def get_document(self, path: str) -> Dict[str, Any]:
        """
        Fetch a document's fields

        Raises:
            NotFoundError: Document does not exist
        """
        data = await self._request("GET", path)
        return decode_fields(data.get("fields", {}))

    async def list_documents(self, collection_path: str, page_size: int = 300) -> List[Tuple[str, Dict[str, Any]]]:
        """
        List every document in a collection

        Returns:
            List of (document id, decoded fields)
        """
        documents: List[Tuple[str, Dict[str, Any]]] = []
        page_token: Optional[str] = None

        while True:
            params: Dict[str, Any] = {"pageSize": page_size}
            if page_token:
                params["pageToken"] = page_token

            try:
                data = await self._request("GET", collection_path, params=params)
            except NotFoundError:
                # Empty collections do not exist as resources
                return documents

            for document in data.get("documents", []):
                document_id = document["name"].rsplit("/", 1)[-1]
                documents.append((document_id, decode_fields(document.get("fields", {}))))

            page_token = data.get("nextPageToken")
            if not page_token:
                return documents

    async def set_document(self, path: str, fields: Dict[str, Any]) -> None:
        """Create or overwrite a document"""
        await self._request("PATCH", path, json={"fields": encode_fields(fields)})

    async def update_fields(self, path: str, fields: Dict[str, Any]) -> None:
        """Merge the given fields into an existing document"""
        params = [("updateMask.fieldPaths", name) for name in fields]
        params.append(("currentDocument.exists", "true"))
        await self._request("PATCH", path, json={"fields": encode_fields(fields)}, params=params)

    async def delete_document(self, path: str) -> None:
        await self._request("DELETE", path)

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None,
                       params: Any = None) -> Dict[str, Any]:
        credentials = self.credential_store.get()
        if credentials is None:
            raise NotSignedInError()

        url = f"{self.base_url}/{path.strip('/')}"
        status, data = await self._send(method, url, credentials.id_token, json, params)

        if status == 401:
            # Id tokens live one hour; refresh once and retry
            self.logger.debug("Firestore rejected id token, refreshing")
            credentials = await self.auth_client.refresh_id_token(credentials)
            self.credential_store.save(credentials)
            status, data = await self._send(method, url, credentials.id_token, json, params)

        if status == 404:
            raise NotFoundError(path)
        if status in (401, 403):
            message = data.get("error", {}).get("message", "permission denied") if isinstance(data, dict) else ""
            raise AuthenticationError("PERMISSION_DENIED", f"Firestore {method} {path}: {message}")
        if status >= 400:
            raise BackendError(f"Firestore {method} {path} failed with HTTP {status}", details={"status": status})

        return data

    async def _send(self, method: str, url: str, id_token: str,
                    json: Optional[Dict[str, Any]], params: Any) -> Tuple[int, Dict[str, Any]]:
        """Perform one HTTP call; returns (status, decoded body)"""
        try:
            timeout_config = aiohttp.ClientTimeout(total=self.timeout)

            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers={"Authorization": f"Bearer {id_token}"}
                ) as response:
                    data = await response.json(content_type=None)
                    return response.status, data or {}

        except aiohttp.ClientConnectorError as e:
            raise BackendConnectionError(f"Cannot reach Firestore: {e}")

        except asyncio.TimeoutError:
            raise BackendConnectionError(f"Firestore timed out after {self.timeout}s")

        except aiohttp.ClientError as e:
            raise BackendConnectionError(f"Firestore request failed: {e}")
