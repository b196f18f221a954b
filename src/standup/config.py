"""
配置管理模組
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from datetime import timedelta, tzinfo
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".standup"
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_PREFIX = "STANDUP_"


@dataclass
class Config:
    """應用程式配置"""
    kimai_url: str = ""                   # Kimai Server URL
    kimai_token: str = ""                 # Kimai API Token
    azure_devops_url: str = ""            # Collection URL (e.g., https://dev.azure.com/my-org)
    azure_devops_project: str = ""        # 專案名稱
    azure_devops_pat: str = ""            # Personal Access Token
    timezone: str = ""                    # IANA 時區，空則使用系統時區
    cache_max_age_seconds: int = 60       # 上游資料快取秒數
    max_report_days: int = 7              # 單次報表最多天數
    outbox_path: str = ""                 # 工時調整匯出檔，空則不匯出

    @classmethod
    def load(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        載入配置

        先讀設定檔，再以 STANDUP_* 環境變數覆寫。
        """
        config = cls()
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
                    config = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
            except (OSError, ValueError, TypeError) as e:
                logger.warning(f"Ignoring unreadable config file {CONFIG_FILE}: {e}")
        config.apply_env(os.environ if environ is None else environ)
        return config

    def apply_env(self, environ: Mapping[str, str]) -> None:
        """以環境變數覆寫，例如 STANDUP_KIMAI_URL"""
        for f in fields(self):
            value = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if value is None:
                continue
            if f.type in (int, "int"):
                try:
                    value = int(value)
                except ValueError:
                    logger.warning(f"Ignoring {ENV_PREFIX}{f.name.upper()}={value!r}: not an integer")
                    continue
            setattr(self, f.name, value)

    def save(self):
        """儲存配置"""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, 'w') as f:
            json.dump(asdict(self), f, indent=2)
        # 設定檔案權限為僅擁有者可讀寫
        CONFIG_FILE.chmod(0o600)

    def is_configured(self) -> bool:
        """檢查是否已配置必要項目"""
        return bool(
            self.kimai_url and self.kimai_token
            and self.azure_devops_url and self.azure_devops_pat
        )

    def get_tzinfo(self) -> Optional[tzinfo]:
        """取得使用者時區，未設定時回傳 None（使用系統時區）"""
        return ZoneInfo(self.timezone) if self.timezone else None

    @property
    def cache_max_age(self) -> timedelta:
        return timedelta(seconds=self.cache_max_age_seconds)
