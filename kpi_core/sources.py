from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from kpi_core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
SHEETS_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
NOTION_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"


@dataclass(frozen=True)
class ValueRange:
    range: str
    values: List[List[Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"range": self.range, "values": self.values}


def service_account_info(raw_json: Optional[str]) -> Dict[str, Any]:
    if not raw_json:
        raise ConfigurationError("Missing SERVICE_ACCOUNT_KEY")
    try:
        info = json.loads(raw_json)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"SERVICE_ACCOUNT_KEY is not valid JSON: {exc}") from exc
    key = str(info.get("private_key", ""))
    # Keys pasted into env files often carry escaped newlines.
    if "\\n" in key:
        info["private_key"] = key.replace("\\n", "\n")
    return info


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or err)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.text[:300]


class SheetsClient:
    """Thin wrapper over the Sheets v4 `values` endpoints."""

    def __init__(self, session: requests.Session, *, timeout: float = 30.0):
        self.session = session
        self.timeout = timeout

    @classmethod
    def from_service_account(cls, raw_json: Optional[str], *, timeout: float = 30.0) -> "SheetsClient":
        info = service_account_info(raw_json)
        try:
            credentials = service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
        except (ValueError, KeyError) as exc:
            raise ConfigurationError(f"invalid service account key: {exc}") from exc
        return cls(AuthorizedSession(credentials), timeout=timeout)

    def _get(self, url: str, params: Any) -> Dict[str, Any]:
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.RequestException, GoogleAuthError) as exc:
            raise UpstreamError(f"Google Sheets error: {exc}") from exc
        if resp.status_code >= 300:
            raise UpstreamError(f"Google Sheets error [{resp.status_code}]: {_error_message(resp)}")
        return resp.json()

    def get_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        *,
        value_render_option: Optional[str] = None,
        date_time_render_option: Optional[str] = None,
    ) -> ValueRange:
        params: Dict[str, str] = {}
        if value_render_option:
            params["valueRenderOption"] = value_render_option
        if date_time_render_option:
            params["dateTimeRenderOption"] = date_time_render_option
        data = self._get(f"{SHEETS_BASE_URL}/{spreadsheet_id}/values/{quote(a1_range, safe='!:')}", params)
        return ValueRange(range=str(data.get("range") or a1_range), values=list(data.get("values") or []))

    def batch_get(self, spreadsheet_id: str, ranges: Sequence[str]) -> List[ValueRange]:
        data = self._get(f"{SHEETS_BASE_URL}/{spreadsheet_id}/values:batchGet", [("ranges", r) for r in ranges])
        out = []
        for vr in data.get("valueRanges") or []:
            out.append(ValueRange(range=str(vr.get("range") or ""), values=list(vr.get("values") or [])))
        return out


# ---------------- Notion (kanban board) ----------------
def status_name(page: Dict[str, Any]) -> str:
    prop = ((page or {}).get("properties") or {}).get("Status") or {}
    name = (prop.get("status") or {}).get("name") or (prop.get("select") or {}).get("name")
    return name or "Unknown"


def custom_id(page: Dict[str, Any]) -> str:
    prop = ((page or {}).get("properties") or {}).get("ID")
    if not prop:
        return str(page.get("id"))
    if isinstance(prop.get("number"), (int, float)) and not isinstance(prop.get("number"), bool):
        return _number_text(prop["number"])
    for kind in ("title", "rich_text"):
        items = prop.get(kind)
        if isinstance(items, list) and items and items[0].get("plain_text"):
            return str(items[0]["plain_text"])
    unique = prop.get("unique_id") or {}
    if isinstance(unique.get("number"), (int, float)):
        return _number_text(unique["number"])
    return str(page.get("id"))


def _number_text(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class NotionClient:
    def __init__(self, token: str, *, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def query_database(self, database_id: str) -> List[Dict[str, Any]]:
        """All pages of a database, following `next_cursor`."""
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }
        url = f"{NOTION_BASE_URL}/databases/{database_id}/query"
        pages: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            body: Dict[str, Any] = {"page_size": 100}
            if cursor:
                body["start_cursor"] = cursor
            try:
                resp = self.session.post(url, headers=headers, json=body, timeout=self.timeout)
            except requests.RequestException as exc:
                raise UpstreamError(f"Notion error: {exc}") from exc
            if resp.status_code >= 300:
                raise UpstreamError(f"Notion error: {resp.text[:300]}")
            data = resp.json()
            pages.extend(data.get("results") or [])
            cursor = data.get("next_cursor") if data.get("has_more") else None
            if not cursor:
                return pages
