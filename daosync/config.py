from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .datastructures.type_aliases import ContractAddress, ModuleName

DEVNET_NODE_URL = "https://fullnode.devnet.aptoslabs.com/v1"
DEFAULT_CONTRACT_ADDRESS = (
    "0xbdffa7eedb36f54c05ee1540b79c606fe5d75f8bbcecf6844a1502a2b1f9cea6"
)


class DaoSyncSettings(BaseSettings):
    """daosync client configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="DAOSYNC_", env_file=".env", extra="ignore"
    )

    node_url: str = Field(
        DEVNET_NODE_URL, description="Base URL of the fullnode REST API."
    )
    contract_address: ContractAddress = Field(
        DEFAULT_CONTRACT_ADDRESS,
        description="Account address the DAO module is published under.",
    )
    module_name: ModuleName = Field("InvestDAO", description="Name of the DAO module.")

    poll_interval: float = Field(
        5.0, gt=0, description="Seconds between treasury/member token refreshes."
    )
    proposal_poll_interval: float = Field(
        10.0, gt=0, description="Seconds between refreshes of cached proposals."
    )
    stale_grace: float = Field(
        5.0,
        ge=0,
        description="Seconds a fetched value is served to reads without re-fetching.",
    )
    retry_attempts: int = Field(
        3, ge=1, description="Fetch attempts per refresh before serving stale data."
    )
    retry_base_delay: float = Field(
        1.0, ge=0, description="First backoff delay in seconds; doubles per attempt."
    )
    retry_max_delay: float = Field(
        30.0, ge=0, description="Upper bound for a single backoff delay."
    )
    view_timeout: float = Field(
        10.0, gt=0, description="HTTP timeout in seconds for one view request."
    )

    min_description_length: int = Field(
        20, ge=0, description="Minimum trimmed length of a proposal description."
    )
    max_description_length: int = Field(
        500, ge=1, description="Maximum length of a proposal description."
    )
    max_parallel_reads: int = Field(
        16, ge=1, description="Proposal reads one aggregation may run at once."
    )

    hint_db_path: Path | None = Field(
        None,
        description="SQLite file for the reconnect hint; in-memory when unset.",
    )

    log_level: str = Field("INFO", description="Loguru level for stderr output.")
    debug_scopes: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Modules to log at DEBUG regardless of log_level.",
    )
    log_file: Path | None = Field(None, description="Optional log file sink.")

    def function_id(self, name: str) -> str:
        """Fully qualify a DAO module function name."""
        return f"{self.contract_address}::{self.module_name}::{name}"
