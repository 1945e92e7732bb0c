"""Best-effort mirror of payments and handoffs into a Google Sheets spreadsheet.

Every public method logs and swallows its own failures: the spreadsheet is an
operator convenience, never a dependency of the customer-facing reply.
"""

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx
import jwt

from sales_agent.logging_config import get_logger
from sales_agent.services.errors import UpstreamError

logger = get_logger("sheets_service")

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60

PAYMENTS_SHEET = "Payments"
HANDOFF_SHEET = "Human Handoff"
ID_COLUMN_INDEX = 2  # column C holds the record id on both sheets

_SWALLOWED = (httpx.HTTPError, UpstreamError, jwt.PyJWTError, OSError, ValueError, KeyError)


def _timestamp_cells() -> list[str]:
    now = datetime.now(timezone.utc)
    return [now.strftime("%Y-%m-%d"), now.strftime("%H:%M:%S")]


class SheetsMirror:
    def __init__(
        self,
        spreadsheet_id: Optional[str],
        service_account_file: Optional[str],
        timeout: float = 15.0,
    ):
        self.spreadsheet_id = spreadsheet_id
        self._credentials: Optional[dict] = None
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._client = httpx.AsyncClient(timeout=timeout)

        if not spreadsheet_id:
            logger.warning("Google Sheets mirror disabled: GOOGLE_SHEETS_ID not set")
        elif not service_account_file or not Path(service_account_file).is_file():
            logger.warning(
                "Google Sheets mirror disabled: service account file not found",
                extra={"context": {"path": service_account_file}},
            )
        else:
            self._credentials = json.loads(Path(service_account_file).read_text(encoding="utf-8"))

    @property
    def enabled(self) -> bool:
        return bool(self.spreadsheet_id and self._credentials)

    async def log_payment(
        self,
        payment_id: str,
        phone_number: str,
        status: str = "Pending",
        screenshot: str = "",
        service_name: str = "",
        amount: str = "",
        method: str = "",
        notes: str = "",
    ) -> bool:
        row = _timestamp_cells() + [
            payment_id,
            phone_number,
            amount,
            method,
            service_name,
            screenshot,
            status,
            "",
            notes,
        ]
        return await self._safely("log_payment", payment_id, lambda: self._append(PAYMENTS_SHEET, "A:K", row))

    async def update_payment_status(self, payment_id: str, status: str, actor: str = "", notes: str = "") -> bool:
        return await self._safely(
            "update_payment_status",
            payment_id,
            lambda: self._update_by_id(PAYMENTS_SHEET, "A:K", payment_id, "I", "K", [status, actor, notes]),
        )

    async def log_handoff(
        self,
        handoff_id: str,
        phone_number: str,
        customer_name: str = "",
        reason: str = "",
        priority: str = "normal",
        status: str = "Pending",
    ) -> bool:
        row = _timestamp_cells() + [handoff_id, phone_number, customer_name, reason, priority, status, "", "", ""]
        return await self._safely("log_handoff", handoff_id, lambda: self._append(HANDOFF_SHEET, "A:K", row))

    async def update_handoff_status(
        self, handoff_id: str, status: str, assigned_to: str = "", resolution: str = ""
    ) -> bool:
        return await self._safely(
            "update_handoff_status",
            handoff_id,
            lambda: self._update_by_id(HANDOFF_SHEET, "A:K", handoff_id, "H", "J", [status, assigned_to, resolution]),
        )

    async def _safely(self, operation: str, record_id: str, make_call) -> bool:
        if not self.enabled:
            logger.info("[Sheets disabled] skipped", extra={"context": {"operation": operation, "id": record_id}})
            return False
        try:
            await make_call()
        except _SWALLOWED as exc:
            logger.error(
                "Sheets write failed",
                extra={"context": {"operation": operation, "id": record_id, "error": str(exc)}},
            )
            return False
        return True

    async def _append(self, sheet: str, columns: str, row: list) -> None:
        url = f"{SHEETS_API_URL}/{self.spreadsheet_id}/values/{quote(f'{sheet}!{columns}')}:append"
        response = await self._client.post(
            url,
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            headers=await self._auth_headers(),
            json={"values": [row]},
        )
        response.raise_for_status()

    async def _update_by_id(
        self, sheet: str, columns: str, record_id: str, first_col: str, last_col: str, values: list
    ) -> None:
        headers = await self._auth_headers()
        response = await self._client.get(
            f"{SHEETS_API_URL}/{self.spreadsheet_id}/values/{quote(f'{sheet}!{columns}')}",
            headers=headers,
        )
        response.raise_for_status()

        rows = response.json().get("values") or []
        row_number = None
        for index, row in enumerate(rows):
            if len(row) > ID_COLUMN_INDEX and row[ID_COLUMN_INDEX] == record_id:
                row_number = index + 1
                break
        if row_number is None:
            raise ValueError(f"{record_id} not found in sheet {sheet}")

        target = f"{sheet}!{first_col}{row_number}:{last_col}{row_number}"
        response = await self._client.put(
            f"{SHEETS_API_URL}/{self.spreadsheet_id}/values/{quote(target)}",
            params={"valueInputOption": "USER_ENTERED"},
            headers=headers,
            json={"values": [values]},
        )
        response.raise_for_status()

    async def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {await self._access_token()}"}

    async def _access_token(self) -> str:
        now = time.time()
        if self._token and now < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token

        credentials = self._credentials or {}
        token_uri = credentials.get("token_uri", DEFAULT_TOKEN_URI)
        issued_at = int(now)
        assertion = jwt.encode(
            {
                "iss": credentials["client_email"],
                "scope": SHEETS_SCOPE,
                "aud": token_uri,
                "iat": issued_at,
                "exp": issued_at + TOKEN_LIFETIME_SECONDS,
            },
            credentials["private_key"],
            algorithm="RS256",
        )

        response = await self._client.post(token_uri, data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion})
        if response.status_code != 200:
            raise UpstreamError("google_oauth", f"HTTP {response.status_code}")

        payload = response.json()
        self._token = payload["access_token"]
        self._token_expires_at = now + int(payload.get("expires_in", TOKEN_LIFETIME_SECONDS))
        return self._token

    async def aclose(self) -> None:
        await self._client.aclose()
