"""
WhatsApp click-to-chat link construction and input rules.
"""

import re
from urllib.parse import quote

# E.164: + followed by 1-15 digits, no leading zero
E164_PATTERN = r"^\+[1-9]\d{1,14}$"
E164_REGEX = re.compile(E164_PATTERN)
MAX_MESSAGE_LENGTH = 65536

WHATSAPP_BASE_URL = "https://wa.me/"

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


def is_valid_phone(phone: object) -> bool:
    return isinstance(phone, str) and E164_REGEX.match(phone) is not None


def is_valid_message(message: object) -> bool:
    return isinstance(message, str) and len(message) <= MAX_MESSAGE_LENGTH


def build_whatsapp_link(phone: str, message: str = "") -> str:
    """Build ``https://wa.me/<digits>[?text=<message>]``."""
    link = WHATSAPP_BASE_URL + phone.replace("+", "", 1)
    if message and message.strip():
        link += "?text=" + quote(message, safe=_URI_COMPONENT_SAFE)
    return link
