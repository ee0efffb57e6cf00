import logging
import os
from dataclasses import dataclass


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    cache_dir: str
    cache_ttl_hours: float
    asset_root: str
    derived_dir: str
    dump_dir: str
    static_dir: str
    github_api: str
    github_user: str
    timeout: float
    primary_transport: bool
    images_per_page: int
    webp_quality: int
    base_path: str
    user_agent: str
    port: int
    log_level: str

    @property
    def cache_ttl_seconds(self) -> int:
        return int(self.cache_ttl_hours * 3600)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            cache_dir=os.getenv("FOLIO_CACHE_DIR", "./cache"),
            cache_ttl_hours=float(os.getenv("FOLIO_CACHE_TTL_HOURS", "24")),
            asset_root=os.getenv("FOLIO_ASSET_ROOT", "."),
            derived_dir=os.getenv("FOLIO_DERIVED_DIR", "assets/img/cache"),
            dump_dir=os.getenv("FOLIO_DUMP_DIR", "assets/img/dump"),
            static_dir=os.getenv("FOLIO_STATIC_DIR", "data"),
            github_api=os.getenv("FOLIO_GITHUB_API", "https://api.github.com").rstrip("/"),
            github_user=os.getenv("FOLIO_GITHUB_USER", "octocat"),
            timeout=float(os.getenv("FOLIO_TIMEOUT", "30")),
            primary_transport=_env_flag("FOLIO_PRIMARY_TRANSPORT", "1"),
            images_per_page=int(os.getenv("FOLIO_IMAGES_PER_PAGE", "12")),
            webp_quality=int(os.getenv("FOLIO_WEBP_QUALITY", "80")),
            base_path=os.getenv("FOLIO_BASE_PATH", "").rstrip("/"),
            user_agent=os.getenv("FOLIO_USER_AGENT", "folio-proxy/1.0"),
            port=int(os.getenv("PORT", "5500")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


SETTINGS = Settings.from_env()


def configure_logging(settings: Settings = SETTINGS) -> logging.Logger:
    logging.basicConfig(level=settings.log_level)
    return logging.getLogger("folio-proxy")
