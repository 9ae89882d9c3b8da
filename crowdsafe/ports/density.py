"""
Population density provider port interface.

This module defines the protocol for the upstream density data source.
"""

from datetime import datetime
from typing import Any, Dict, List, Protocol
from crowdsafe.core.models import Point

class DensityProviderPort(Protocol):
    """인구 밀도 제공자 포트 인터페이스"""

    async def retrieve(self, boundary: List[Point], start: datetime, end: datetime,
                       precision: int) -> List[Dict[str, Any]]:
        """
        폴리곤 경계와 시간 구간에 대한 밀도 데이터를 조회합니다.

        Returns:
            시간 구간 목록. 각 구간은 startTime/endTime 과
            cellPopulationDensityData (geohash, dataType, pplDensity 등) 를 가집니다.
        """
        ...
