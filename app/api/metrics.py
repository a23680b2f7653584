"""
Prometheus metrics for API service.

Tracks WebSocket connections, realtime deliveries and messaging activity.
"""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry

# Create registry
registry = CollectorRegistry()

# WebSocket connection metrics
websocket_connections_active = Gauge(
    "websocket_connections_active",
    "Number of active WebSocket connections",
    labelnames=["instance"],
    registry=registry
)

websocket_connections_total = Counter(
    "websocket_connections_total",
    "Total number of WebSocket connections established",
    labelnames=["instance"],
    registry=registry
)

websocket_disconnections_total = Counter(
    "websocket_disconnections_total",
    "Total number of WebSocket disconnections",
    labelnames=["instance", "reason"],
    registry=registry
)

websocket_handshake_rejections_total = Counter(
    "websocket_handshake_rejections_total",
    "Total number of WebSocket handshakes refused",
    labelnames=["reason", "instance"],
    registry=registry
)

websocket_messages_sent_total = Counter(
    "websocket_messages_sent_total",
    "Total number of events sent via WebSocket",
    labelnames=["message_type", "instance"],
    registry=registry
)

websocket_messages_received_total = Counter(
    "websocket_messages_received_total",
    "Total number of events received via WebSocket",
    labelnames=["event", "instance"],
    registry=registry
)

websocket_users_connected = Gauge(
    "websocket_users_connected",
    "Number of unique users currently connected",
    labelnames=["instance"],
    registry=registry
)

# Messaging metrics
messages_created_total = Counter(
    "messages_created_total",
    "Total number of direct messages created",
    labelnames=["source", "instance"],
    registry=registry
)

message_flow_duration_seconds = Histogram(
    "message_flow_duration_seconds",
    "Time from receiving a private_message event to sender confirmation",
    labelnames=["status", "instance"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0],
    registry=registry
)


def update_websocket_metrics(session_registry):
    """
    Update WebSocket gauges from session registry state.

    Args:
        session_registry: SessionRegistry instance
    """
    websocket_connections_active.labels(instance="api").set(session_registry.get_connection_count())
    websocket_users_connected.labels(instance="api").set(session_registry.get_user_count())
