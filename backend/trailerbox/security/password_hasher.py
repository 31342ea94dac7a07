"""
🎬 TrailerBox - 管理員密碼雜湊模組
使用 Argon2id（自適應、含鹽）儲存與驗證管理員密碼。
"""

import logging

from argon2 import PasswordHasher as _Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger("trailerbox.security")


class PasswordHasher:
    """Argon2id 密碼雜湊器"""

    def __init__(self, **argon2_params):
        # argon2_params 僅供測試降低成本，正式環境使用函式庫預設值
        self._ph = _Argon2Hasher(**argon2_params)

    def hash(self, plaintext: str) -> str:
        return self._ph.hash(plaintext)

    def verify(self, plaintext: str, digest: str) -> bool:
        """
        驗證密碼

        不符或雜湊格式無效時回傳 False，不拋出例外。
        """
        if not digest:
            return False
        try:
            return self._ph.verify(digest, plaintext)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            logger.warning(f"⚠️ 無法驗證的密碼雜湊格式: {type(e).__name__}")
            return False

    def needs_rehash(self, digest: str) -> bool:
        try:
            return self._ph.check_needs_rehash(digest)
        except InvalidHashError:
            return True


# 全域密碼雜湊器實例（無狀態，可共用）
password_hasher = PasswordHasher()
