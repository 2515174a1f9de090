"""Settings and configuration."""
import logging
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from piivault.errors import ConfigurationMissing

logger = logging.getLogger(__name__)

DEV_TRANSIT_KEY = "piivault-dev"
DEV_SEARCH_HASH_SECRET = "dev-search-hash-secret-change-in-prod"


class Settings(BaseSettings):
    # Core
    DEV_MODE: bool = False
    LOG_LEVEL: str = "INFO"

    # Key service (Vault Transit)
    VAULT_ADDR: Optional[str] = None
    VAULT_TOKEN: Optional[str] = None
    VAULT_TRANSIT_KEY: Optional[str] = None
    VAULT_TRANSIT_MOUNT: str = "transit"
    VAULT_NAMESPACE: Optional[str] = None
    VAULT_TIMEOUT_SECONDS: float = 10.0

    # Integrity tags: comma separated key names still accepted for verification
    INTEGRITY_PREVIOUS_KEYS: str = ""

    # Search hashes
    SEARCH_HASH_SECRET: Optional[str] = None

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
    )

    @property
    def previous_integrity_keys(self) -> List[str]:
        return [k.strip() for k in self.INTEGRITY_PREVIOUS_KEYS.split(",") if k.strip()]

    @property
    def transit_key(self) -> str:
        if self.VAULT_TRANSIT_KEY:
            return self.VAULT_TRANSIT_KEY
        if self.DEV_MODE:
            return DEV_TRANSIT_KEY
        raise ConfigurationMissing(["VAULT_TRANSIT_KEY"])

    @property
    def search_hash_secret(self) -> str:
        if self.SEARCH_HASH_SECRET:
            return self.SEARCH_HASH_SECRET
        if self.DEV_MODE:
            logger.warning("Using insecure default SEARCH_HASH_SECRET")
            return DEV_SEARCH_HASH_SECRET
        raise ConfigurationMissing(["SEARCH_HASH_SECRET"])

    def require_key_service(self) -> None:
        """Fail fast at startup when key-service configuration is absent."""
        if self.DEV_MODE:
            # In-memory key service unless a real Vault is configured
            if self.VAULT_ADDR and not self.VAULT_TOKEN:
                raise ConfigurationMissing(["VAULT_TOKEN"])
            return
        required = {
            "VAULT_ADDR": self.VAULT_ADDR,
            "VAULT_TOKEN": self.VAULT_TOKEN,
            "VAULT_TRANSIT_KEY": self.VAULT_TRANSIT_KEY,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationMissing(missing)


settings = Settings()
