"""
起動処理（設定・ロギング・メトリクス）の公開API。
"""

from .config_loader import ENVIRONMENT_VARIABLE, AppConfigModel, YamlConfigLoader
from .container import (
    BootstrapContainer,
    BootstrapContext,
    BootstrapError,
    ConfigBundle,
    InvalidConfigurationError,
    LoggingConfigurator,
    MetricsConfigurator,
    MissingConfigurationError,
    Overrides,
)
from .logging_setup import DictConfigLoggingConfigurator
from .metrics_setup import MetricsConfiguratorRegistry, NoopMetricsConfigurator, PrometheusMetricsConfigurator

__all__ = [
    "ENVIRONMENT_VARIABLE",
    "AppConfigModel",
    "YamlConfigLoader",
    "BootstrapContainer",
    "BootstrapContext",
    "BootstrapError",
    "ConfigBundle",
    "InvalidConfigurationError",
    "LoggingConfigurator",
    "MetricsConfigurator",
    "MissingConfigurationError",
    "Overrides",
    "DictConfigLoggingConfigurator",
    "MetricsConfiguratorRegistry",
    "NoopMetricsConfigurator",
    "PrometheusMetricsConfigurator",
]
