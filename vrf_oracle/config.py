from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="VRF_", extra="allow")

    # Database (fulfillment outcomes)
    database_url: str = "sqlite+pysqlite:///vrf_oracle.db"
    record_outcomes: bool = True

    # Solana cluster
    rpc_url: str = "https://api.devnet.solana.com"
    ws_url: str | None = None  # derived from rpc_url when unset
    commitment: str = "confirmed"
    backfill_commitment: str = "finalized"

    # Key material
    signer_private_key: str | None = None  # base58 secret key or JSON byte array
    vrf_private_key: str | None = None  # hex-encoded 32-byte scalar or JSON byte array

    # Tracked programs (comma-separated), merged with programs_config
    program_ids: str | None = None
    programs_config: str = "config/programs.yaml"

    # Submission retry/backoff
    submit_max_attempts: int = 10
    submit_backoff_initial_sec: float = 0.5
    submit_backoff_multiplier: float = 1.5
    submit_backoff_max_sec: float = 60.0

    # Subscription reconnect backoff
    subscribe_backoff_initial_sec: float = 0.5
    subscribe_backoff_max_sec: float = 60.0

    # Startup replay of historical transactions
    backfill_enabled: bool = True
    backfill_pages: int = 1  # pages of signatures per program
    backfill_limit: int | None = None  # signatures per page; node default (1000) when unset

    # Status API
    api_limit_max: int = 500

    # Logging
    log_level: str = "INFO"

    # --- Validators to coerce empty strings in optional envs to None ---
    @field_validator(
        "ws_url", "signer_private_key", "vrf_private_key", "program_ids", "backfill_limit", mode="before"
    )
    @classmethod
    def _empty_str_to_none(cls, v):
        if v == "":
            return None
        return v

    def websocket_url(self) -> str:
        if self.ws_url:
            return self.ws_url
        return self.rpc_url.replace("https://", "wss://").replace("http://", "ws://")

    def programs_to_track(self) -> list[str]:
        import yaml

        lst: list[str] = []
        for pid in (self.program_ids or "").split(","):
            pid = pid.strip()
            if pid and pid not in lst:
                lst.append(pid)

        path = Path(self.programs_config)
        if path.exists():
            data = yaml.safe_load(path.read_text()) or {}
            for item in data.get("programs", []):
                # Solana pubkeys are case-sensitive base58; keep as-is
                addr = item.get("address") if isinstance(item, dict) else item
                if addr and addr not in lst:
                    lst.append(str(addr))
        return lst
