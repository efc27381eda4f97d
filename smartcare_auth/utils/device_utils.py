# smartcare_auth/utils/device_utils.py

import json
import os
import re
import secrets
import string
import time
from typing import Dict, Any, Optional

from user_agents import parse

DEVICE_ID_KEY = "deviceId"

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_device_id() -> str:
    """
    Timestamp + random composite, e.g. ``device_lx2k9a1b_4f8z1c0q7m2ab``.
    Generated once per client and then reused.
    """
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"device_{timestamp}_{random_part}"


# ============================================================================
# KEY-VALUE STORES (client-side persistent storage)
# ============================================================================

class KeyValueStore:
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """Stores keys in a small JSON file, like a browser's localStorage."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError:
                return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def get(self, key):
        return self._load().get(key)

    def set(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key):
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


# ============================================================================
# DEVICE IDENTITY PROVIDERS
# ============================================================================

class DeviceIdentityProvider:
    """Hands out a stable identifier for the current device."""

    def get_or_create(self) -> str:
        raise NotImplementedError


class StoredDeviceIdentity(DeviceIdentityProvider):
    """Device id persisted in a client-side key-value store."""

    def __init__(self, store: KeyValueStore, key: str = DEVICE_ID_KEY):
        self.store = store
        self.key = key

    def get_or_create(self) -> str:
        device_id = self.store.get(self.key)
        if not device_id:
            device_id = generate_device_id()
            self.store.set(self.key, device_id)
        return device_id

    def has_device_id(self) -> bool:
        return bool(self.store.get(self.key))

    def clear(self) -> None:
        self.store.delete(self.key)


class SessionDerivedDeviceIdentity(DeviceIdentityProvider):
    """
    Synthetic device id derived from session fields (device name + IP).

    Used when trust is granted to an existing session rather than a
    browser that carries its own device id. The id is collidable: two
    sessions with the same device name behind the same IP map to the
    same device record.
    """

    def __init__(self, user_id: str, session: Dict[str, Any]):
        self.user_id = user_id
        self.session = session or {}

    @property
    def device_name(self) -> str:
        return self.session.get("deviceName") or self.session.get("device_name") or "Unknown Device"

    @property
    def ip_address(self) -> str:
        return self.session.get("ipAddress") or self.session.get("ip_address") or "Unknown"

    def get_or_create(self) -> str:
        base = re.sub(r"[^a-zA-Z0-9_]", "_", f"{self.device_name}_{self.ip_address}")
        return f"session_{base}_{self.user_id[:8]}"

    def device_metadata(self) -> Dict[str, Any]:
        # Session device names look like "Chrome on Windows"
        parts = self.device_name.split(" on ")
        browser = parts[0] or "Unknown"
        os_name = parts[1] if len(parts) > 1 and parts[1] else "Unknown"
        device_type = self.session.get("deviceType") or self.session.get("device_type") or "desktop"
        mobile = device_type == "mobile"

        return {
            "browser": browser,
            "os": os_name,
            "deviceType": device_type,
            "screenWidth": 375 if mobile else 1920,
            "screenHeight": 667 if mobile else 1080,
            "userAgent": self.session.get("userAgent") or self.session.get("user_agent") or "Unknown",
            "timezone": self.session.get("timezone") or "UTC",
        }


# ============================================================================
# DEVICE METADATA
# ============================================================================

def build_device_metadata(
    user_agent: str,
    screen_width: int = 0,
    screen_height: int = 0,
    timezone: str = "",
    language: str = "",
    platform: str = "",
) -> Dict[str, Any]:
    """
    Extract human-readable device information from a user agent string.
    """
    ua_parsed = parse(user_agent or "")

    return {
        "browser": ua_parsed.browser.family or "Unknown",
        "os": ua_parsed.os.family or "Unknown",
        "deviceType": "mobile" if ua_parsed.is_mobile else "tablet" if ua_parsed.is_tablet else "desktop",
        "userAgent": user_agent or "",
        "platform": platform,
        "language": language,
        "screenWidth": screen_width,
        "screenHeight": screen_height,
        "timezone": timezone,
    }


def complete_device_metadata(device_metadata: Optional[Dict[str, Any]], user_agent: str = "") -> Dict[str, Any]:
    """Fill in browser / OS from the user agent when the client did not send them."""
    metadata = dict(device_metadata or {})
    ua = metadata.get("userAgent") or user_agent
    if ua and (not metadata.get("browser") or not metadata.get("os")):
        parsed = build_device_metadata(ua)
        for key in ("browser", "os", "deviceType", "userAgent"):
            if not metadata.get(key):
                metadata[key] = parsed[key]
    return metadata
