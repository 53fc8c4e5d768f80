#!/usr/bin/env python3
"""
Clash Royale API Provider

Talks to the official Clash Royale REST API for one clan:

    GET /clans/%23{tag}                   roster (memberList)
    GET /clans/%23{tag}/{WAR_LOG_PATH}    historical war log (items)
    GET /clans/%23{tag}/currentriverrace  race in progress

The API key is sent as a bearer token and is never logged. Only paths under
/clans/ are ever requested.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from warstats.config import DEFAULT_CONFIG, is_valid_api_key, mask_api_key
from warstats.models import RawWarRecord
from warstats.providers.provider_base import (ClanDataProvider, EndpointDisabledError,
                                              ProviderAPIError, ProviderDataError)

ALLOWED_PATH_PREFIX = "/clans/"


class ClashRoyaleProvider(ClanDataProvider):
    """Clan data from api.clashroyale.com."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the Clash Royale provider.

        Args:
            config: Configuration dictionary (DEFAULT_CONFIG keys), notably
                API_KEY, CLAN_TAG, API_BASE_URL, REQUEST_TIMEOUT, WAR_LOG_PATH
        """
        super().__init__({**DEFAULT_CONFIG, **(config or {})})

        self.api_key = self.config.get("API_KEY", "")
        self.clan_tag = str(self.config["CLAN_TAG"]).lstrip("#").upper()
        self.base_url = str(self.config["API_BASE_URL"]).rstrip("/")
        self.timeout = self.config["REQUEST_TIMEOUT"]
        self.war_log_path = str(self.config["WAR_LOG_PATH"]).strip("/")

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {self.api_key}',
            'Accept': 'application/json',
            'User-Agent': self.config.get("USER_AGENT", "Gladiators-War-Stats/1.0"),
        })

        self.logger.info(f"Initialized ClashRoyaleProvider for #{self.clan_tag} "
                         f"(key {mask_api_key(self.api_key)})")

    @property
    def clan_path(self) -> str:
        return f"/clans/{quote('#' + self.clan_tag, safe='')}"

    def _get(self, path: str, war_log: bool = False) -> Dict[str, Any]:
        """
        GET one API path and return the decoded JSON body.

        Args:
            path: Path below the API base URL, must start with /clans/
            war_log: Whether this is the war-log endpoint (enables disabled detection)

        Raises:
            ProviderAPIError: Network failure, timeout or non-200 status
            EndpointDisabledError: War-log endpoint switched off upstream
            ProviderDataError: Body is not JSON
        """
        if not is_valid_api_key(self.api_key):
            raise ProviderAPIError("API key not configured", status=500, reason="apiKeyMissing")
        if not path.startswith(ALLOWED_PATH_PREFIX):
            raise ProviderAPIError(f"Refusing to request non-clan path {path!r}", reason="invalidEndpoint")

        self.logger.debug(f"GET {path[:20]}...")
        try:
            response = self.session.get(f"{self.base_url}{path}", timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise ProviderAPIError("Request timeout", status=504, reason="timeout") from e
        except requests.exceptions.RequestException as e:
            raise ProviderAPIError("Network error occurred", status=500, reason="networkError") from e

        if response.status_code != 200:
            raise self._error_for(response, war_log)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderDataError("Failed to parse API response") from e
        if not isinstance(data, dict):
            raise ProviderDataError(f"Unexpected API response type: {type(data).__name__}")
        return data

    def _error_for(self, response, war_log: bool) -> ProviderAPIError:
        status = response.status_code
        reason, message = None, None
        try:
            body = response.json()
            if isinstance(body, dict):
                reason = body.get("reason")
                message = body.get("message")
        except ValueError:
            pass

        reason_text = str(reason or "")
        message_text = str(message or "")

        if status == 404 and war_log and (
                reason_text == "notFound"
                or "disabled" in message_text.lower()
                or "disabled" in reason_text.lower()):
            return EndpointDisabledError("War log endpoint is disabled", status=status, reason=reason)
        if status == 403:
            return ProviderAPIError(
                "API authentication failed: the key may be invalid, expired or not "
                "allowed from this IP address", status=status, reason=reason)
        if status == 404:
            detail = f": {reason_text}" if reason_text else ""
            return ProviderAPIError(f"Clan not found{detail}", status=status, reason=reason)
        if status == 429:
            return ProviderAPIError("Rate limit exceeded", status=status, reason=reason)
        # Upstream reasons can echo key details; those are never passed on
        if reason_text and "key" not in reason_text.lower():
            return ProviderAPIError(f"API error: {reason_text}", status=status, reason=reason)
        return ProviderAPIError(f"API returned status {status}", status=status)

    def fetch_members(self) -> List[Dict[str, Any]]:
        data = self._get(self.clan_path)
        members = data.get("memberList")
        if not isinstance(members, list):
            raise ProviderDataError("Clan response has no memberList")
        self.logger.info(f"👥 Fetched {len(members)} clan members")
        return [m for m in members if isinstance(m, dict)]

    def fetch_war_log(self) -> List[RawWarRecord]:
        data = self._get(f"{self.clan_path}/{self.war_log_path}", war_log=True)
        items = data.get("items")
        if not isinstance(items, list):
            raise ProviderDataError("War log response has no items")
        records = [RawWarRecord.from_payload(item, "warlog", self.clan_tag) for item in items]
        self.logger.info(f"📜 Fetched {len(records)} war log entries")
        return records

    def fetch_current_race(self) -> List[RawWarRecord]:
        """
        Convert the race in progress into one undated record.

        Returns:
            [] when the response has no participant list
        """
        data = self._get(f"{self.clan_path}/currentriverrace")
        clan = data.get("clan")
        if not isinstance(clan, dict) or not isinstance(clan.get("participants"), list):
            self.logger.warning("⚠️ Current river race has no participant list")
            return []

        record = RawWarRecord(
            source="riverrace",
            participants=tuple(p for p in clan["participants"] if isinstance(p, dict)),
            state=data.get("state") or "unknown",
        )
        self.logger.info(f"🏁 Fetched current race ({len(record.participants)} participants, "
                         f"state {record.state})")
        return [record]
