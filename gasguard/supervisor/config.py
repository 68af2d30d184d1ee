"""Configuration for the supervisory node."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from gasguard.shared.config import get_config_path, get_log_level, load_yaml_config
from gasguard.shared.connection import BackoffPolicy
from gasguard.shared.exceptions import ConfigError
from gasguard.shared.models import AlertLevel
from gasguard.shared.mqtt import MQTTConfig, TopicSet

from .observers import LoggingObserver, Observer


@dataclass
class DashboardConfig:
    enabled: bool = False
    title: str = "gasguard supervisor"


@dataclass
class TelegramConfig:
    enabled: bool = False
    token: Optional[str] = None
    chat_id: Optional[str] = None
    min_level: AlertLevel = AlertLevel.WARNING


@dataclass
class WebhookConfig:
    enabled: bool = False
    url: Optional[str] = None
    min_interval: float = 5.0


@dataclass
class SupervisorConfig:
    """Configuration for the supervisory node."""

    node_id: str = "supervisor"
    sensor_node: str = "sensor-1"
    topic_base: str = "gasguard/sensor-1"

    stale_after: float = 30.0
    alert_clear_after: Optional[float] = 30.0
    staleness_check_interval: float = 5.0

    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def topics(self) -> TopicSet:
        return TopicSet(self.topic_base)

    @classmethod
    def from_dict(cls, data: dict) -> "SupervisorConfig":
        """Create config from dictionary."""
        node_id = data.get("node_id", "supervisor")
        sensor_node = data.get("sensor_node", "sensor-1")

        mqtt_data = dict(data.get("mqtt", {}))
        mqtt_data.setdefault("client_id", node_id)

        observers = data.get("observers", {})
        dashboard_data = observers.get("dashboard", {})
        telegram_data = observers.get("telegram", {})
        webhook_data = observers.get("webhook", {})

        try:
            min_level = AlertLevel.from_wire(str(telegram_data.get("min_level", "WARNING")).upper())
        except KeyError as e:
            raise ConfigError(f"Unknown telegram min_level: {telegram_data.get('min_level')}") from e

        config = cls(
            node_id=node_id,
            sensor_node=sensor_node,
            topic_base=data.get("topic_base", f"gasguard/{sensor_node}"),
            stale_after=data.get("stale_after", 30.0),
            alert_clear_after=data.get("alert_clear_after", 30.0),
            staleness_check_interval=data.get("staleness_check_interval", 5.0),
            mqtt=MQTTConfig.from_dict(mqtt_data),
            backoff=BackoffPolicy.from_dict(data.get("backoff", {})),
            dashboard=DashboardConfig(
                enabled=dashboard_data.get("enabled", False),
                title=dashboard_data.get("title", "gasguard supervisor"),
            ),
            telegram=TelegramConfig(
                enabled=telegram_data.get("enabled", False),
                token=telegram_data.get("token") or os.getenv("TELEGRAM_BOT_TOKEN"),
                chat_id=telegram_data.get("chat_id") or os.getenv("TELEGRAM_CHAT_ID"),
                min_level=min_level,
            ),
            webhook=WebhookConfig(
                enabled=webhook_data.get("enabled", False),
                url=webhook_data.get("url") or os.getenv("GASGUARD_WEBHOOK_URL"),
                min_interval=webhook_data.get("min_interval", 5.0),
            ),
            log_level=get_log_level(data),
            log_file=data.get("log_file"),
        )

        if config.telegram.enabled and not (config.telegram.token and config.telegram.chat_id):
            raise ConfigError("Telegram notifier enabled without token and chat_id")
        if config.webhook.enabled and not config.webhook.url:
            raise ConfigError("Webhook sync enabled without a url")
        if config.staleness_check_interval <= 0:
            raise ConfigError("staleness_check_interval must be positive")
        return config


def build_observers(config: SupervisorConfig) -> List[Observer]:
    """Create the observers enabled in the configuration.

    HTTP and terminal observers are imported lazily so aiohttp and rich
    are only loaded when used.
    """
    observers: List[Observer] = [LoggingObserver()]

    if config.dashboard.enabled:
        from .dashboard import TerminalDashboard
        observers.append(TerminalDashboard(config.dashboard.title))

    if config.telegram.enabled:
        from .notifiers import TelegramNotifier
        observers.append(TelegramNotifier(
            token=config.telegram.token,
            chat_id=config.telegram.chat_id,
            min_level=config.telegram.min_level,
        ))

    if config.webhook.enabled:
        from .notifiers import WebhookSync
        observers.append(WebhookSync(config.webhook.url, min_interval=config.webhook.min_interval))

    return observers


def load_config(config_path: Optional[str] = None) -> SupervisorConfig:
    """Load supervisory node configuration.

    Args:
        config_path: Path to YAML config file. If not provided, uses
            SUPERVISOR_CONFIG, then config/supervisor[-{env}].yaml.
    """
    if config_path is None:
        config_path = os.environ.get("SUPERVISOR_CONFIG")
    if config_path is None:
        config_path = get_config_path("supervisor")

    return SupervisorConfig.from_dict(load_yaml_config(config_path))
