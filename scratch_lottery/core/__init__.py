"""Core module - configuration, security, logging and exceptions."""

from scratch_lottery.core.config import Settings, get_settings
from scratch_lottery.core.exceptions import LotteryError
from scratch_lottery.core.security import AESCipher, generate_aes_key, get_cipher

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Security
    "AESCipher",
    "generate_aes_key",
    "get_cipher",
    # Exceptions
    "LotteryError",
]
