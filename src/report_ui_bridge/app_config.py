from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from report_ui_bridge.agent_binding import AgentBindingConfig
from report_ui_bridge.bridge import BridgeConfig
from report_ui_bridge.tool_wrapper import ToolWrapperConfig

_DEFAULT_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


@dataclass
class RuntimeEnv:
    allowed_origins: list[str]


@dataclass
class AppConfig:
    enable_ui_bridge: bool
    max_payload_size: int
    max_retries: int
    retry_delay_ms: float
    session_timeout_ms: float
    session_cleanup_interval_ms: float
    notification_timeout_seconds: float
    enable_metrics: bool
    enable_logging: bool
    host: str
    port: int
    mcp_server_configs: dict
    log_level: str
    log_consumers: list | None

    def bridge_config(self) -> BridgeConfig:
        return BridgeConfig(
            enabled=self.enable_ui_bridge,
            max_payload_size=self.max_payload_size,
            enable_metrics=self.enable_metrics,
            enable_logging=self.enable_logging,
        )

    def tool_wrapper_config(self) -> ToolWrapperConfig:
        return ToolWrapperConfig(
            enable_ui_bridge=self.enable_ui_bridge,
            enable_metrics=self.enable_metrics,
            enable_logging=self.enable_logging,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay_ms,
            notification_timeout=self.notification_timeout_seconds,
        )

    def agent_binding_config(self) -> AgentBindingConfig:
        return AgentBindingConfig(
            enable_ui_bridge=self.enable_ui_bridge,
            enable_metrics=self.enable_metrics,
            enable_logging=self.enable_logging,
            session_timeout=self.session_timeout_ms / 1000,
            notification_timeout=self.notification_timeout_seconds,
        )


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        enable_ui_bridge=_to_bool(config.get("EnableUIBridge", True), default=True),
        max_payload_size=int(config.get("MaxPayloadSize", 1024 * 1024)),
        max_retries=max(0, int(config.get("MaxRetries", 3))),
        retry_delay_ms=float(config.get("RetryDelayMs", 1000)),
        session_timeout_ms=float(config.get("SessionTimeoutMs", 30 * 60 * 1000)),
        session_cleanup_interval_ms=float(config.get("SessionCleanupIntervalMs", 5 * 60 * 1000)),
        notification_timeout_seconds=float(config.get("NotificationTimeoutSeconds", 5.0)),
        enable_metrics=_to_bool(config.get("EnableMetrics", True), default=True),
        enable_logging=_to_bool(config.get("EnableLogging", True), default=True),
        host=str(config.get("Host", "0.0.0.0")),
        port=int(config.get("Port", 3001)),
        mcp_server_configs=config.get("McpServers", {}),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    raw_origins = os.environ.get("ALLOWED_ORIGINS", "")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    return RuntimeEnv(allowed_origins=origins or list(_DEFAULT_ORIGINS))
