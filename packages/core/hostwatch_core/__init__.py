"""Core services: settings, logging, subscription registry, and broadcast scheduling."""

from .config import AppConfig, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload, fetch_monitor_status, monitor_status_url
from .protocol import ClientMessage, ProtocolError, ServerMessage, parse_client_message
from .registry import ChannelState, SubscriberChannel, SubscriptionRegistry
from .supervisor import MonitorSupervisor, SupervisorStatus

__all__ = [
    "AppConfig",
    "ChannelState",
    "ClientMessage",
    "DiagnosticsExporter",
    "MonitorSupervisor",
    "ProtocolError",
    "ServerMessage",
    "SubscriberChannel",
    "SubscriptionRegistry",
    "SupervisorStatus",
    "build_doctor_payload",
    "fetch_monitor_status",
    "load_config",
    "monitor_status_url",
    "parse_client_message",
    "save_config",
]
