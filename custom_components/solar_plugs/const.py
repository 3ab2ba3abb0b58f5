"""Constants for the Solar Plugs integration."""

DOMAIN = "solar_plugs"

# Config keys: telemetry
CONF_TELEMETRY_SOURCE = "telemetry_source"
CONF_PROMETHEUS_URL = "prometheus_url"
CONF_SOURCE_POWER_QUERY = "source_power_query"
CONF_SOURCE_POWER_SENSOR = "source_power_sensor"

TELEMETRY_PROMETHEUS = "prometheus"
TELEMETRY_SENSOR = "sensor"

# Config keys: regulation parameters
CONF_BASELINE_CONSUMPTION = "baseline_consumption"
CONF_UPDATE_INTERVAL = "update_interval"
CONF_MIN_TOGGLE_MINUTES = "min_toggle_minutes"
CONF_RECENT_USAGE_MINUTES = "recent_usage_minutes"

# Config keys: discretionary loads
CONF_LOADS = "loads"
CONF_ALIAS = "alias"
CONF_HOST = "host"
CONF_CONSUMPTION = "consumption"
CONF_CAN_TURN_ON = "can_turn_on"
CONF_CAN_TURN_OFF = "can_turn_off"
CONF_ADD_ANOTHER = "add_another"

# Defaults: regulation parameters
DEFAULT_BASELINE_CONSUMPTION = 0
DEFAULT_UPDATE_INTERVAL_SECONDS = 60
DEFAULT_MIN_TOGGLE_MINUTES = 5
DEFAULT_RECENT_USAGE_MINUTES = 5
DEFAULT_SOURCE_POWER_QUERY = 'sum(power_production_watts{job="solarmon"})'

# Peak usage per plug over a window, in W. Keyed by the exporter's "name" label.
RECENT_USAGE_QUERY = "max by (name) (max_over_time(power_mw[{window}])) / 1000"
RECENT_USAGE_LABEL = "name"

# Network timeouts (seconds)
DISCOVERY_TIMEOUT_SECONDS = 5
QUERY_TIMEOUT_SECONDS = 1
COMMAND_TIMEOUT_SECONDS = 1
TELEMETRY_TIMEOUT_SECONDS = 10

# Hard ceiling for a single evaluation cycle
CYCLE_TIMEOUT_SECONDS = 120

# How long to keep querying a plug directly after it stops answering discovery
ADDRESS_HISTORY_MINUTES = 10

# TP-Link smart plug protocol
TPLINK_PORT = 9999
TPLINK_BROADCAST = "255.255.255.255"

# Services
SERVICE_PAUSE = "pause"
SERVICE_STATUS = "status"
ATTR_ALIAS = "alias"
ATTR_DURATION = "duration"
