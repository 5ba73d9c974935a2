from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx
from nacl.encoding import HexEncoder
from nacl.signing import SigningKey


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text if text else response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail")
        if detail is None:
            return str(body)
        return str(detail)
    return str(body)


def _raise_for_status(response: httpx.Response) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        request = exc.request
        method = request.method if request else "REQUEST"
        url = request.url.path if request else str(response.url)
        detail = _extract_error_detail(response)
        raise RuntimeError(f"{method} {url} -> {response.status_code}: {detail}") from exc


def _sign_hex(private_key_hex: str | bytes, challenge_hex: str) -> str:
    if isinstance(private_key_hex, str):
        private_key_hex = private_key_hex.encode()
    signing_key = SigningKey(private_key_hex, encoder=HexEncoder)
    return signing_key.sign(bytes.fromhex(challenge_hex)).signature.hex()


@dataclass
class MedregAuth:
    bearer_token: Optional[str] = None  # JWT from /auth/verify

    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {}
        if self.bearer_token:
            h["Authorization"] = f"Bearer {self.bearer_token}"
        return h


class MedregClient:
    """
    Minimal client for the registry server (`medreg/api_server.py`).
    """

    def __init__(
        self,
        base_url: str,
        auth: Optional[MedregAuth] = None,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth or MedregAuth()
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout_s)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def health_check(self) -> dict[str, Any]:
        r = self._client.get("/health")
        _raise_for_status(r)
        return r.json()

    # --- Identity ---
    def register(self, name: str, public_key_hex: str | bytes) -> dict[str, Any]:
        if isinstance(public_key_hex, bytes):
            public_key_hex = public_key_hex.decode()
        r = self._client.post("/auth/register", json={"name": name, "public_key_hex": public_key_hex})
        _raise_for_status(r)
        return r.json()

    def login(self, address: str, private_key_hex: str | bytes) -> dict[str, Any]:
        """Challenge -> sign -> verify. Stores the issued JWT on self.auth."""
        r = self._client.post("/auth/challenge", json={"address": address})
        _raise_for_status(r)
        signature_hex = _sign_hex(private_key_hex, r.json()["challenge_hex"])
        r = self._client.post("/auth/verify", json={"address": address, "signature_hex": signature_hex})
        _raise_for_status(r)
        data = r.json()
        self.auth.bearer_token = data["token"]
        return data

    # --- Registry ---
    def deploy(self) -> dict[str, Any]:
        r = self._client.post("/registry/deploy", headers=self.auth.headers())
        _raise_for_status(r)
        return r.json()

    def get_owner(self) -> str:
        r = self._client.get("/registry/owner")
        _raise_for_status(r)
        return r.json()["owner"]

    def add_report(self, patient_id: int, report_data: str) -> dict[str, Any]:
        r = self._client.post(
            f"/reports/{patient_id}",
            headers=self.auth.headers(),
            json={"report_data": report_data},
        )
        _raise_for_status(r)
        return r.json()

    def get_report(self, patient_id: int) -> str:
        r = self._client.get(f"/reports/{patient_id}")
        _raise_for_status(r)
        return r.json()["report_data"]

    def notifications(self, *, patient_id: Optional[int] = None, limit: int = 50) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit}
        if patient_id is not None:
            params["patient_id"] = patient_id
        r = self._client.get("/notifications", params=params)
        _raise_for_status(r)
        return r.json()

    def verify_notifications(self) -> dict[str, Any]:
        r = self._client.get("/notifications/verify")
        _raise_for_status(r)
        return r.json()


class MedregAsyncClient:
    """Async twin of MedregClient for asyncio callers."""

    def __init__(
        self,
        base_url: str,
        auth: Optional[MedregAuth] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth or MedregAuth()
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def health_check(self) -> dict[str, Any]:
        r = await self._client.get("/health")
        _raise_for_status(r)
        return r.json()

    async def register(self, name: str, public_key_hex: str | bytes) -> dict[str, Any]:
        if isinstance(public_key_hex, bytes):
            public_key_hex = public_key_hex.decode()
        r = await self._client.post("/auth/register", json={"name": name, "public_key_hex": public_key_hex})
        _raise_for_status(r)
        return r.json()

    async def login(self, address: str, private_key_hex: str | bytes) -> dict[str, Any]:
        r = await self._client.post("/auth/challenge", json={"address": address})
        _raise_for_status(r)
        signature_hex = _sign_hex(private_key_hex, r.json()["challenge_hex"])
        r = await self._client.post("/auth/verify", json={"address": address, "signature_hex": signature_hex})
        _raise_for_status(r)
        data = r.json()
        self.auth.bearer_token = data["token"]
        return data

    async def deploy(self) -> dict[str, Any]:
        r = await self._client.post("/registry/deploy", headers=self.auth.headers())
        _raise_for_status(r)
        return r.json()

    async def get_owner(self) -> str:
        r = await self._client.get("/registry/owner")
        _raise_for_status(r)
        return r.json()["owner"]

    async def add_report(self, patient_id: int, report_data: str) -> dict[str, Any]:
        r = await self._client.post(
            f"/reports/{patient_id}",
            headers=self.auth.headers(),
            json={"report_data": report_data},
        )
        _raise_for_status(r)
        return r.json()

    async def get_report(self, patient_id: int) -> str:
        r = await self._client.get(f"/reports/{patient_id}")
        _raise_for_status(r)
        return r.json()["report_data"]

    async def notifications(self, *, patient_id: Optional[int] = None, limit: int = 50) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit}
        if patient_id is not None:
            params["patient_id"] = patient_id
        r = await self._client.get("/notifications", params=params)
        _raise_for_status(r)
        return r.json()

    async def verify_notifications(self) -> dict[str, Any]:
        r = await self._client.get("/notifications/verify")
        _raise_for_status(r)
        return r.json()
