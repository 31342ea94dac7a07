"""
🎬 TrailerBox - 安全模組
管理員密碼雜湊（Argon2id）。
"""

from trailerbox.security.password_hasher import PasswordHasher, password_hasher

__all__ = ["PasswordHasher", "password_hasher"]
