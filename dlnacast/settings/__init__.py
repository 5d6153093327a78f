from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DLNACAST_")

    product: str = "dlnacast"
    version: str = "1"
    aliases: str = ""
    location_url: str | None = None
    discover_timeout: float = 5.0
    max_responses: int | None = None
    ssdp_ttl: int = 4
    http_timeout: float = 10.0
    verify_ssl: bool = False
    poll_max_attempts: int = 10
    poll_retry_delay: float = 1.0
    subtitle_fallback: bool = True

    @property
    def user_agent(self) -> str:
        return f"{self.product}/{self.version} UPnP/1.0"

    @property
    def location_urls(self) -> list[str]:
        if not self.location_url:
            return []
        return [url.strip() for url in self.location_url.split(",") if url.strip()]

    def dlna_name_alias(self, uuid: str, name: str, ip: str | None) -> str:
        if not self.aliases:
            return name
        keys = {uuid.strip(), name.strip()}
        if ip:
            keys.add(ip.strip())
        for alias in self.aliases.split(","):
            if ":" not in alias:
                continue
            k, v = alias.rsplit(":", 1)
            if k.strip() in keys:
                return v.strip()
        return name


settings = Settings()
