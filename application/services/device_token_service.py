"""
设备令牌服务 - 解密客户端上送的设备令牌（AES-256-GCM）

令牌格式：base64( iv[12] || ciphertext || tag[16] )，明文为 ``deviceID_<id>``。
"""
from __future__ import annotations

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import InvalidTokenError, PaymentConfigurationError


logger = get_logger(__name__)

IV_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
DEVICE_ID_PREFIX = b"deviceID_"


def parse_secret(secret: Optional[str]) -> bytes:
    """解析密钥：原始 32 字节或 ``base64:`` 前缀编码"""
    if not secret:
        raise PaymentConfigurationError("DEVICE_ID_SECRET is not configured", field="DEVICE_ID_SECRET")
    if secret.startswith("base64:"):
        try:
            key = base64.b64decode(secret[len("base64:"):], validate=True)
        except (binascii.Error, ValueError):
            raise PaymentConfigurationError("DEVICE_ID_SECRET is not valid base64", field="DEVICE_ID_SECRET")
    else:
        key = secret.encode("utf-8")
    if len(key) != KEY_SIZE:
        raise PaymentConfigurationError("Device secret key length must be 32 bytes", field="DEVICE_ID_SECRET")
    return key


class DeviceTokenService:
    def __init__(self, secret: Optional[str] = None) -> None:
        self._secret = secret if secret is not None else settings.DEVICE_ID_SECRET

    def _aead(self) -> AESGCM:
        # 延迟解析，未启用试用套餐时不要求配置密钥
        return AESGCM(parse_secret(self._secret))

    def decrypt(self, token: str) -> str:
        """解密令牌并返回设备 ID；任何认证或格式问题都抛出 InvalidTokenError"""
        aead = self._aead()
        try:
            raw = base64.b64decode(token or "", validate=True)
        except (binascii.Error, ValueError):
            raise InvalidTokenError("format")
        if len(raw) <= IV_SIZE + TAG_SIZE:
            raise InvalidTokenError("format")

        iv, sealed = raw[:IV_SIZE], raw[IV_SIZE:]
        try:
            plaintext = aead.decrypt(iv, sealed, None)
        except InvalidTag:
            logger.warning("device_token_auth_failed")
            raise InvalidTokenError("authentication")

        if not plaintext.startswith(DEVICE_ID_PREFIX):
            raise InvalidTokenError("content")
        try:
            device_id = plaintext[len(DEVICE_ID_PREFIX):].decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidTokenError("content")
        if not device_id:
            raise InvalidTokenError("empty_device_id")
        return device_id

    def encrypt(self, device_id: str, *, iv: Optional[bytes] = None) -> str:
        """签发令牌（客户端与测试使用）"""
        iv = iv or os.urandom(IV_SIZE)
        sealed = self._aead().encrypt(iv, DEVICE_ID_PREFIX + device_id.encode("utf-8"), None)
        return base64.b64encode(iv + sealed).decode("ascii")
