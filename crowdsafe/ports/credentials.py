"""
Credential authority port interface.

This module defines the protocol for OAuth token exchange.
"""

from typing import List, Optional, Protocol, Tuple

class CredentialAuthorityPort(Protocol):
    """자격 증명 발급 포트 인터페이스"""

    async def exchange(self, scopes: List[str], audience: Optional[str] = None) -> Tuple[str, Optional[float]]:
        """
        토큰을 교환합니다.

        Args:
            scopes: 요청 스코프 목록
            audience: 대상 audience

        Returns:
            (access_token, expires_in 초 또는 None)

        Raises:
            UpstreamAuthError: 교환 실패
        """
        ...
