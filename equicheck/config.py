from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class AzureOpenAIConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EQUICHECK_AZURE_OPENAI__",
        env_file=".env",
        extra="ignore",
    )

    endpoint: str = ""
    api_key: str = ""
    deployment: str = "gpt-4.1-mini"
    api_version: str = "2025-03-01-preview"
    temperature: float = 0.1
    max_tokens: int = 8192

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.api_key)


class DatabaseConfig(BaseSettings):
    """Remote PostgreSQL store. Leave host or name empty to run local-only."""

    model_config = SettingsConfigDict(
        env_prefix="EQUICHECK_DB__",
        env_file=".env",
        extra="ignore",
    )

    host: str = ""
    port: int = 5432
    name: str = ""
    user: str = ""
    password: str = ""
    table: str = "analyses"
    connect_timeout_s: int = 10
    # SSH tunnel (optional)
    ssh_host: str = ""
    ssh_port: int = 22
    ssh_user: str = ""
    ssh_key_path: str = ""
    ssh_password: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.name)

    @property
    def conninfo(self) -> str:
        parts = f"host={self.host} port={self.port} dbname={self.name}"
        if self.user:
            parts += f" user={self.user}"
        if self.password:
            parts += f" password={self.password}"
        return parts

    def ssh_config(self) -> dict | None:
        """SSH tunnel settings as a dict, or None if no tunnel is configured."""
        if not self.ssh_host:
            return None
        return {
            "ssh_host": self.ssh_host,
            "ssh_port": self.ssh_port,
            "ssh_user": self.ssh_user,
            "ssh_key_path": self.ssh_key_path,
            "ssh_password": self.ssh_password,
            "db_host": self.host,
            "db_port": self.port,
        }


class LocalStoreConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EQUICHECK_LOCAL__",
        env_file=".env",
        extra="ignore",
    )

    path: Path = Path(__file__).resolve().parent.parent / "data" / "equicheck_analyses.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    azure_openai: AzureOpenAIConfig = AzureOpenAIConfig()
    db: DatabaseConfig = DatabaseConfig()
    local: LocalStoreConfig = LocalStoreConfig()
    max_upload_mb: int = 20


settings = Settings()
