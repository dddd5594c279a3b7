import logging
import os
from typing import Optional
import yaml
import keyring

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"
KEYRING_SERVICE = "gymrat"

# sensitive setting -> environment variable consulted when it is not stored
ENV_FALLBACKS = {"gemini_api_key": "GEMINI_API_KEY"}


class YamlConfig:
    """Settings file that keeps API keys apart from ordinary preferences.

    Ordinary settings are plain YAML. With ``ENCRYPT_SETTINGS=1`` each
    sensitive key is written to the system keyring and the file only holds a
    ``True`` marker in its place. Saving preferences never drops a key that
    is already stored; keys change only through :meth:`set_secret` or an
    explicit value in :meth:`save`.
    """

    SENSITIVE_KEYS = frozenset(ENV_FALLBACKS)

    def __init__(
        self,
        path: str = "settings.yaml",
        encrypt: Optional[bool] = None,
        service: str = KEYRING_SERVICE,
    ) -> None:
        self.path = path
        if encrypt is None:
            encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.encrypt = encrypt
        self.service = service

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a settings mapping")
        return data

    def _write(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True)

    def _stored_form(self, key: str, value) -> object:
        if not self.encrypt:
            return value
        keyring.set_password(self.service, key, str(value))
        return True

    def load(self) -> dict:
        """Return every setting, with keyring secrets filled in."""
        data = self._read()
        if not self.encrypt:
            return data
        for key in self.SENSITIVE_KEYS & data.keys():
            value = keyring.get_password(self.service, key)
            if value is None:
                logger.warning("%s is marked in %s but missing from the keyring", key, self.path)
                data.pop(key)
            else:
                data[key] = value
        return data

    def save(self, data: dict) -> None:
        stored = self._read()
        out = {k: v for k, v in data.items() if k not in self.SENSITIVE_KEYS}
        for key in self.SENSITIVE_KEYS:
            if key in data:
                out[key] = self._stored_form(key, data[key])
            elif key in stored:
                out[key] = stored[key]
        self._write(out)

    def secret(self, key: str) -> Optional[str]:
        """Return the stored value of ``key`` or its environment fallback."""
        value = self.load().get(key)
        if isinstance(value, str) and value:
            return value
        env = ENV_FALLBACKS.get(key)
        return (os.environ.get(env) if env else None) or None

    def set_secret(self, key: str, value: str) -> None:
        if key not in self.SENSITIVE_KEYS:
            raise KeyError(f"{key} is not a sensitive setting")
        data = self._read()
        data[key] = self._stored_form(key, value)
        self._write(data)
