"""
OAuth credential authority client for CrowdSafe.

This module exchanges client credentials for bearer tokens against the
operator's token endpoint, resolving the endpoint through OpenID
discovery when it is not configured directly.
"""

import asyncio
import aiohttp
from typing import Dict, List, Optional, Tuple
from crowdsafe.core.errors import UpstreamAuthError
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.oauth")

class OAuthClient:
    """OAuth 토큰 교환 클라이언트"""

    def __init__(self,
                 *,
                 client_id: Optional[str],
                 client_secret: Optional[str] = None,
                 token_url: Optional[str] = None,
                 discovery_url: Optional[str] = None,
                 grant_type: str = "client_credentials",
                 default_scopes: Optional[List[str]] = None,
                 audience: Optional[str] = None,
                 additional_params: Optional[Dict[str, str]] = None,
                 timeout: float = 10,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        초기화합니다.

        Args:
            client_id: OAuth 클라이언트 ID
            client_secret: OAuth 클라이언트 시크릿 (있으면 Basic 인증 사용)
            token_url: 토큰 엔드포인트 (없으면 discovery_url로 조회)
            discovery_url: OpenID discovery 문서 URL
            grant_type: grant 타입
            default_scopes: 요청 스코프가 비었을 때 사용할 스코프
            audience: 기본 audience
            additional_params: 교환 요청에 추가할 파라미터
            timeout: 요청 타임아웃 (초)
            session: 외부에서 주입하는 aiohttp 세션
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.discovery_url = discovery_url
        self.grant_type = grant_type or "client_credentials"
        self.default_scopes = list(default_scopes or [])
        self.audience = audience
        self.additional_params = dict(additional_params or {})
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None
        self._resolved_token_url: Optional[str] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        """소유한 세션을 닫습니다."""
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def resolve_token_endpoint(self) -> str:
        """
        토큰 엔드포인트를 결정합니다.

        설정값이 우선이며, 없으면 discovery 문서의 token_endpoint를 한 번만 조회해 기억합니다.
        """
        if self.token_url:
            return self.token_url
        if self._resolved_token_url:
            return self._resolved_token_url
        if not self.discovery_url:
            raise UpstreamAuthError("token_url 또는 discovery_url 설정이 필요합니다")

        log.info(f"OAuth discovery 조회 url:{self.discovery_url}")
        try:
            async with self._get_session().get(
                self.discovery_url,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status >= 400:
                    raise UpstreamAuthError(f"discovery 요청 실패 status:{resp.status}")
                doc = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamAuthError(f"discovery 요청 실패: {e}") from e

        endpoint = (doc or {}).get("token_endpoint")
        if not endpoint:
            raise UpstreamAuthError(f"discovery 문서에 token_endpoint 없음 url:{self.discovery_url}")

        log.info(f"토큰 엔드포인트 확인 endpoint:{endpoint}")
        self._resolved_token_url = endpoint
        return endpoint

    def build_form(self, scopes: List[str], audience: Optional[str]) -> Dict[str, str]:
        """토큰 교환 폼 파라미터를 구성합니다."""
        form = {"grant_type": self.grant_type, "client_id": self.client_id}
        if self.client_secret:
            # 일부 제공자는 Basic 인증과 별개로 본문에도 시크릿을 요구
            form["client_secret"] = self.client_secret

        scope_list = list(scopes) if scopes else self.default_scopes
        if scope_list:
            form["scope"] = " ".join(scope_list)

        extra = dict(self.additional_params)
        effective_audience = audience or self.audience
        if effective_audience:
            extra["audience"] = effective_audience
        for key, value in extra.items():
            if value and key not in form:
                form[key] = value
        return form

    async def exchange(self, scopes: List[str], audience: Optional[str] = None) -> Tuple[str, Optional[float]]:
        """
        자격 증명을 토큰으로 교환합니다.

        Returns:
            (access_token, expires_in)

        Raises:
            UpstreamAuthError: 전송 오류, 비정상 응답, access_token 누락
        """
        if not self.client_id:
            raise UpstreamAuthError("client_id가 설정되지 않았습니다")

        token_url = await self.resolve_token_endpoint()
        form = self.build_form(scopes, audience)
        auth = aiohttp.BasicAuth(self.client_id, self.client_secret) if self.client_secret else None

        log.info(f"OAuth 토큰 요청 url:{token_url} scopes:{form.get('scope', 'default')} audience:{form.get('audience', 'none')}")
        try:
            async with self._get_session().post(
                token_url,
                data=form,
                auth=auth,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status >= 400:
                    raise UpstreamAuthError(f"토큰 요청 실패 status:{resp.status}")
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamAuthError(f"토큰 요청 실패: {e}") from e

        access_token = (body or {}).get("access_token")
        if not access_token:
            log.error(f"토큰 응답에 access_token 없음 url:{token_url}")
            raise UpstreamAuthError(f"토큰 엔드포인트 {token_url} 응답에 access_token이 없습니다")

        expires_in = body.get("expires_in")
        log.info(f"OAuth 토큰 발급 성공 expires_in:{expires_in or 'unknown'}")
        return access_token, expires_in
