# config/settings.py
import os
import json
import logging
from typing import Dict, Any
from pathlib import Path
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Supabase (PostgREST) 数据源配置"""
    url: str
    service_role_key: str
    timeout: float


@dataclass
class AuthConfig:
    """身份令牌校验配置"""
    jwt_secret: str
    jwt_algorithm: str


@dataclass
class CampaignConfig:
    """活动看板默认参数"""
    referral_code: str
    product_name: str
    transaction_currency: str
    profile_transaction_limit: int


@dataclass
class AppConfig:
    """应用程序配置"""
    log_level: str
    log_file: str


class Settings:
    """配置管理类"""

    def __init__(self, config_path: str = None):
        self._config_path = config_path or self._get_config_path()
        self._config = self._load_config()

        # 初始化各配置对象
        self.supabase = self._get_supabase_config()
        self.auth = self._get_auth_config()
        self.campaign = self._get_campaign_config()
        self.app = self._get_app_config()

        # 设置日志
        self._setup_logging()

    def _get_config_path(self) -> str:
        """获取配置文件路径"""
        # 优先使用环境变量
        env_path = os.getenv("DASHBOARD_CONFIG_PATH")
        if env_path and os.path.exists(env_path):
            return env_path

        current_dir = Path(__file__).parent
        project_root = current_dir.parent

        possible_paths = [
            current_dir / "config.json",
            project_root / "config" / "config.json",
            Path.cwd() / "config" / "config.json",
            Path.home() / ".campaign-dashboard" / "config.json"
        ]

        for path in possible_paths:
            if path.exists():
                return str(path)

        default_path = project_root / "config" / "config.json"
        logger.warning(f"Config file not found, will use defaults. Expected at: {default_path}")
        return str(default_path)

    def _load_config(self) -> Dict[str, Any]:
        """加载配置文件"""
        default_config = {
            "SUPABASE_URL": "",
            "SUPABASE_SERVICE_ROLE_KEY": "",
            "SUPABASE_TIMEOUT": 30,
            "IMPACT_LINK_SECRET": "",
            "JWT_ALGORITHM": "HS256",
            "CAMPAIGN_REFERRAL_CODE": "CB6aXl",
            "CAMPAIGN_PRODUCT_NAME": "AI untuk UMKM",
            "TRANSACTION_CURRENCY": "IDR",
            "PROFILE_TRANSACTION_LIMIT": 500,
            "LOG_LEVEL": "INFO",
            "LOG_FILE": "logs/campaign_dashboard.log"
        }

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
                config = {**default_config, **file_config}
                logger.info(f"Config loaded from {self._config_path}")
                return config
        except FileNotFoundError:
            logger.warning(f"Config file not found at {self._config_path}, using defaults")
            return default_config
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file: {e}")
            logger.warning("Using default configuration")
            return default_config

    def _get_config_value(self, key: str, default: Any = None) -> Any:
        """获取配置值，支持环境变量覆盖"""
        env_value = os.getenv(key)
        if env_value:
            return env_value

        if key in self._config:
            return self._config[key]

        if default is not None:
            return default

        raise ValueError(f"Configuration key '{key}' not found")

    def _get_supabase_config(self) -> SupabaseConfig:
        """获取Supabase配置"""
        return SupabaseConfig(
            url=self._get_config_value("SUPABASE_URL", ""),
            service_role_key=self._get_config_value("SUPABASE_SERVICE_ROLE_KEY", ""),
            timeout=float(self._get_config_value("SUPABASE_TIMEOUT", 30))
        )

    def _get_auth_config(self) -> AuthConfig:
        """获取令牌校验配置"""
        return AuthConfig(
            jwt_secret=self._get_config_value("IMPACT_LINK_SECRET", ""),
            jwt_algorithm=self._get_config_value("JWT_ALGORITHM", "HS256")
        )

    def _get_campaign_config(self) -> CampaignConfig:
        """获取活动看板配置"""
        return CampaignConfig(
            referral_code=self._get_config_value("CAMPAIGN_REFERRAL_CODE", "CB6aXl"),
            product_name=self._get_config_value("CAMPAIGN_PRODUCT_NAME", "AI untuk UMKM"),
            transaction_currency=self._get_config_value("TRANSACTION_CURRENCY", "IDR"),
            profile_transaction_limit=int(self._get_config_value("PROFILE_TRANSACTION_LIMIT", 500))
        )

    def _get_app_config(self) -> AppConfig:
        """获取应用配置"""
        return AppConfig(
            log_level=self._get_config_value("LOG_LEVEL", "INFO"),
            log_file=self._get_config_value("LOG_FILE", "logs/campaign_dashboard.log")
        )

    def _setup_logging(self):
        """设置日志"""
        log_file = Path(self.app.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, self.app.log_level.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(log_file, encoding='utf-8'),
                logging.StreamHandler()
            ]
        )


# 单例模式
_settings = None


def get_settings() -> Settings:
    """获取全局配置实例"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
