from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

from vacuum.core.errors import ConfigurationError


def parse_pubkey(value: str, field: str = "address") -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {field}: {value}. Must be a valid Solana public key.") from exc


class Settings(BaseSettings):
    """Resolved runtime configuration; read from the environment or `.env`."""

    # Solana RPC
    solana_rpc_url: str = "https://api.devnet.solana.com"
    rpc_timeout_sec: float = 30.0
    rpc_max_retries: int = Field(3, ge=1)
    rpc_retry_base_delay: float = Field(1.0, ge=0)
    confirm_timeout_sec: float = 60.0

    # Operator
    treasury_address: str
    operator_keypair_path: Path = Path("./operator-keypair.json")

    # Kora integration
    kora_node_url: Optional[str] = None

    # Safety
    dry_run: bool = True
    cooldown_hours: int = 24  # reserved, not consulted by detection
    min_inactive_days: int = Field(7, ge=0)

    # Storage
    db_path: Path = Path("./data/accounts.db")

    # Logging
    log_level: str = "INFO"

    # Notifications
    webhook_url: str = ""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("treasury_address")
    @classmethod
    def validate_treasury(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("TREASURY_ADDRESS is required. Set it in your .env file.")
        try:
            Pubkey.from_string(value)
        except ValueError:
            raise ValueError(f"Invalid TREASURY_ADDRESS: {value}. Must be a valid Solana public key.")
        return value

    @property
    def treasury_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.treasury_address)

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    def ensure_dirs(self) -> None:
        """Create the directory holding the registry database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


class ClientOverrides(BaseModel):
    """Caller-supplied settings that take precedence over the environment.

    Every field is optional; ``None`` leaves the environment value in place.

    - ``rpc_url``: Solana JSON-RPC endpoint used for every ledger call.
    - ``treasury``: base58 address that receives reclaimed rent.
    - ``keypair_path``: operator keypair file (solana-keygen JSON array).
    - ``dry_run``: default dry-run mode when a reclaim call does not say.
    - ``db_path``: SQLite file backing the account registry.
    - ``log_level``: root log level applied by ``setup_logging``.
    - ``min_inactive_days``: days without activity before an account is
      reported as ``inactive`` for manual review.
    """

    rpc_url: Optional[str] = None
    treasury: Optional[str] = None
    keypair_path: Optional[Path] = None
    dry_run: Optional[bool] = None
    db_path: Optional[Path] = None
    log_level: Optional[str] = None
    min_inactive_days: Optional[int] = Field(None, ge=0)


OVERRIDE_FIELDS = {
    "rpc_url": "solana_rpc_url",
    "treasury": "treasury_address",
    "keypair_path": "operator_keypair_path",
    "dry_run": "dry_run",
    "db_path": "db_path",
    "log_level": "log_level",
    "min_inactive_days": "min_inactive_days",
}


def apply_overrides(settings: Settings, overrides: Optional[ClientOverrides]) -> Settings:
    """Return a copy of ``settings`` with the provided override fields replaced."""
    if overrides is None:
        return settings
    update = {}
    for source, target in OVERRIDE_FIELDS.items():
        value = getattr(overrides, source)
        if value is not None:
            update[target] = value
    if not update:
        return settings
    if "treasury_address" in update:
        parse_pubkey(update["treasury_address"], "treasury")
    return settings.model_copy(update=update)


def load_settings(**values) -> Settings:
    try:
        return Settings(**values)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    settings.ensure_dirs()
    return settings
