# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load all configuration from environment variables / .env file.
#   Provides typed config objects; components receive them through
#   constructors, they never read the environment themselves.
#
# CLASSES:
# --------
# - MySQLConfig (dataclass)
#     host: str          (default "localhost")
#     port: int          (default 3306)
#     user: str          (default "root")
#     password: str      (default "root")
#     database: str      (default "food_delivery")
#     pool_size: int     (default 10)
#
# - MongoConfig (dataclass)
#     uri: str           (default "mongodb://localhost:27017")
#     database: str      (default "food_delivery")
#
# - AppConfig (dataclass)
#     mysql: MySQLConfig
#     mongo: MongoConfig
#     log_level: str         (default "INFO")
#     migration_source: str  (default "mariadb")
#
# FUNCTION:
# ---------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# ==============================================

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass
class MySQLConfig:
    """MySQL / MariaDB configuration."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "food_delivery"
    pool_size: int = 10


@dataclass
class MongoConfig:
    """MongoDB configuration."""
    uri: str = "mongodb://localhost:27017"
    database: str = "food_delivery"


@dataclass
class AppConfig:
    """Main application configuration."""
    mysql: MySQLConfig
    mongo: MongoConfig
    log_level: str = "INFO"
    migration_source: str = "mariadb"


# Singleton instance
_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    mysql_config = MySQLConfig(
        host=os.getenv("MYSQL_HOST", "localhost"),
        port=int(os.getenv("MYSQL_PORT", "3306")),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", "root"),
        database=os.getenv("MYSQL_DATABASE", "food_delivery"),
        pool_size=int(os.getenv("MYSQL_POOL_SIZE", "10")),
    )

    mongo_config = MongoConfig(
        uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        database=os.getenv("MONGO_DATABASE", "food_delivery"),
    )

    _config_instance = AppConfig(
        mysql=mysql_config,
        mongo=mongo_config,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        migration_source=os.getenv("MIGRATION_SOURCE", "mariadb"),
    )

    return _config_instance


def reset_config() -> None:
    """Drop the cached instance so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None
