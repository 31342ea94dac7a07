"""
🎬 TrailerBox - 錯誤類型

持久層所有可預期的失敗都以下列例外回報給呼叫端，
每個類別帶有穩定的 code 與對應的 HTTP 狀態碼。
"""


class TrailerBoxError(Exception):
    code = "INTERNAL_ERROR"
    http_status_code = 500
    default_message = "Internal error"

    def __init__(self, message=None):
        if message is None:
            message = self.default_message
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class BadRequest(TrailerBoxError):
    code = "BAD_REQUEST"
    http_status_code = 400
    default_message = "Invalid request data"


class InvalidSubmission(BadRequest):
    code = "INVALID_SUBMISSION"
    default_message = "IMDb ID and AcFun URL are required"


class CapacityExceeded(TrailerBoxError):
    """待審核佇列已滿，稍後可重試"""
    code = "CAPACITY_EXCEEDED"
    http_status_code = 429
    default_message = "Pending submissions limit reached. Try again later."


class DuplicateKey(TrailerBoxError):
    """提交 ID 重複嘗試後仍衝突"""
    code = "DUPLICATE_KEY"
    default_message = "Submission failed: could not allocate a unique id"


class NotFound(TrailerBoxError):
    code = "NOT_FOUND"
    http_status_code = 404
    default_message = "Submission not found or already reviewed"


class AuthenticationFailed(TrailerBoxError):
    code = "AUTHENTICATION_FAILED"
    http_status_code = 401
    default_message = "Invalid credentials"


class Forbidden(TrailerBoxError):
    code = "FORBIDDEN"
    http_status_code = 403
    default_message = "Only super admins can add new administrators"


class Conflict(TrailerBoxError):
    code = "CONFLICT"
    http_status_code = 409
    default_message = "Username already exists"


class ConnectivityError(TrailerBoxError):
    code = "CONNECTIVITY_ERROR"
    http_status_code = 503
    default_message = "Database is unreachable"
