"""
Error taxonomy for CrowdSafe.

Each error carries an HTTP-like status and a CAMARA-style error code
so the HTTP layer can map it without inspecting the type.
"""

from typing import Dict, Any

class CrowdSafeError(Exception):
    """CrowdSafe 기본 예외"""

    status: int = 500
    code: str = "INTERNAL"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "code": self.code, "message": self.message}

class UpstreamAuthError(CrowdSafeError):
    """자격 증명 교환 실패"""
    status = 401
    code = "UNAUTHENTICATED"

class DataUnavailable(CrowdSafeError):
    """밀도/흐름 데이터 없음 또는 알 수 없는 영역"""
    status = 503
    code = "UNAVAILABLE"

class PathfinderUnavailable(CrowdSafeError):
    """외부 경로 탐색 실패 또는 타임아웃 (내부에서 항상 폴백 처리)"""
    status = 503
    code = "UNAVAILABLE"

class WebhookDeliveryError(CrowdSafeError):
    """웹훅 전달 실패 (로그 후 폐기, 재시도 없음)"""
    status = 502
    code = "BAD_GATEWAY"

class RuleNotFound(CrowdSafeError):
    """알 수 없는 규칙 id. 삭제 시에는 성공으로 취급됨"""
    status = 404
    code = "NOT_FOUND"
