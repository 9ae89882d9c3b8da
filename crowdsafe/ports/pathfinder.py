"""
Path-finder port interface.

This module defines the protocol for the external street-routing service.
"""

from typing import List, Protocol, Tuple
from crowdsafe.core.models import Point

class PathfinderPort(Protocol):
    """경로 탐색 포트 인터페이스"""

    async def route(self, origin: Point, destination: Point) -> Tuple[List[Point], float]:
        """
        두 지점 간 경로를 찾습니다.

        Returns:
            (경로 좌표 목록, 소요 시간 초)

        Raises:
            PathfinderUnavailable: 실패, 비정상 응답, 빈 결과
        """
        ...
