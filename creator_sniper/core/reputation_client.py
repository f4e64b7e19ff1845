"""
Reputation / Profile Client

Resolves a creator wallet to {social_handle, reputation_score}:
1. Zora profile API -> linked Twitter/X account
2. Ethos API -> credibility score for that account

Raw provider payloads never leave this module.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote

import aiohttp

from ..exceptions import ReputationLookupException
from ..utils.retry import CircuitBreaker

logger = logging.getLogger(__name__)


def extract_social_handle(profile: Dict[str, Any], fields: Sequence[str]) -> Optional[str]:
    """Pick the Twitter/X handle out of a Zora profile, first non-empty field wins."""
    socials = profile.get("socialAccounts") or {}
    twitter = socials.get("twitter") or {}
    for name in fields:
        value = twitter.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip().lstrip("@")
    return None


class ReputationClient:
    """
    Usage:
        async with aiohttp.ClientSession() as session:
            client = ReputationClient.from_settings(session, settings)
            profile = await client.get_profile("0xabc...")
            # {"social_handle": "vitalik", "reputation_score": 2140}
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        zora_api_base: str,
        ethos_api_base: str,
        ethos_client_name: str,
        handle_fields: Sequence[str] = ("username", "handle"),
        zora_api_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.session = session
        self.zora_api_base = zora_api_base.rstrip("/")
        self.ethos_api_base = ethos_api_base.rstrip("/")
        self.ethos_client_name = ethos_client_name
        self.handle_fields = tuple(handle_fields)
        self.zora_api_key = zora_api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        self.zora_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="Zora")
        self.ethos_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="Ethos")

    @classmethod
    def from_settings(cls, session: aiohttp.ClientSession, settings) -> "ReputationClient":
        return cls(
            session,
            zora_api_base=settings.ZORA_API_BASE,
            ethos_api_base=settings.ETHOS_API_BASE,
            ethos_client_name=settings.ETHOS_CLIENT_NAME,
            handle_fields=settings.SOCIAL_HANDLE_FIELDS,
            zora_api_key=settings.ZORA_API_KEY,
            timeout=settings.API_TIMEOUT_SEC,
        )

    async def get_profile(self, wallet_address: str) -> Dict[str, Any]:
        """
        Returns {"social_handle": str | None, "reputation_score": int | float | None}.

        Raises ReputationLookupException when either upstream fails.
        """
        handle = await self.get_social_handle(wallet_address)
        if handle is None:
            return {"social_handle": None, "reputation_score": None}

        score = await self.get_score_by_handle(handle)
        return {"social_handle": handle, "reputation_score": score}

    async def get_social_handle(self, wallet_address: str) -> Optional[str]:
        headers = {"Accept": "application/json"}
        if self.zora_api_key:
            headers["api-key"] = self.zora_api_key

        payload = await self._get_json(
            self.zora_breaker,
            f"{self.zora_api_base}/profile",
            params={"identifier": wallet_address},
            headers=headers,
        )
        if payload is None:
            logger.debug(f"No Zora profile for {wallet_address}")
            return None

        profile = payload.get("profile")
        if profile is None and isinstance(payload.get("data"), dict):
            profile = payload["data"].get("profile")
        if not profile:
            logger.debug(f"No Zora profile for {wallet_address}")
            return None

        handle = extract_social_handle(profile, self.handle_fields)
        logger.debug(
            f"Zora profile {profile.get('handle') or wallet_address}: "
            f"twitter={'@' + handle if handle else 'none'}"
        )
        return handle

    async def get_score_by_handle(self, handle: str):
        userkey = f"service:x.com:username:{handle}"
        payload = await self._get_json(
            self.ethos_breaker,
            f"{self.ethos_api_base}/api/v2/score/userkey?userkey={quote(userkey, safe='')}",
            headers={"X-Ethos-Client": self.ethos_client_name, "Accept": "application/json"},
        )
        if payload is None:
            logger.debug(f"No Ethos score for @{handle}")
            return None
        score = payload.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return None
        return score

    async def _get_json(
        self,
        breaker: CircuitBreaker,
        url: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """GET returning the JSON body, None on 404, raising on anything else."""
        if not breaker.can_execute():
            raise ReputationLookupException(f"{breaker.name} circuit open", url=url)

        try:
            async with self.session.get(url, params=params, headers=headers, timeout=self.timeout) as resp:
                if resp.status == 404:
                    breaker.record_success()
                    return None
                if resp.status != 200:
                    raise ReputationLookupException(f"{breaker.name} returned HTTP {resp.status}", url=url)
                data = await resp.json(content_type=None)
        except ReputationLookupException:
            breaker.record_failure()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            breaker.record_failure()
            raise ReputationLookupException(f"{breaker.name} request failed: {e}", url=url) from e

        breaker.record_success()
        if not isinstance(data, dict):
            raise ReputationLookupException(f"Unexpected {breaker.name} response format", url=url)
        return data
