# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Every variable is optional; defaults keep all data under .local/geotoggle.
"""

ENV_VARS = {
    # App / logging
    "GEOTOGGLE_APP_NAME": "App display name (default: geotoggle).",
    "GEOTOGGLE_LOG_LEVEL": "Console logging level (default: INFO).",
    "GEOTOGGLE_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    # Paths (gitignored)
    "GEOTOGGLE_DATA_DIR": "Local data directory (default: .local/geotoggle).",
    "GEOTOGGLE_TOGGLE_DB_PATH": "Widget toggle SQLite path (default: <data_dir>/widgets.sqlite3).",
    "GEOTOGGLE_SAMPLES_DIR": "Directory for location_data_<ms>.csv run logs (default: <data_dir>/samples).",
    # Location subscription
    "GEOTOGGLE_MIN_INTERVAL_MS": "Minimum time between delivered fixes in ms (default: 2000).",
    "GEOTOGGLE_MIN_DISTANCE_M": "Minimum movement between delivered fixes in meters (default: 0).",
    "GEOTOGGLE_MAX_WRITE_FAILURES": "Consecutive sample write failures before tracking stops (default: 3).",
    # Notifications / foreground
    "GEOTOGGLE_NOTIFICATION_CHANNEL_ID": "Notification channel id (default: location_service_channel).",
    "GEOTOGGLE_NOTIFICATION_ID": "Id of the persistent tracking notification (default: 1).",
    "GEOTOGGLE_FOREGROUND_MAX_TOKENS": "Foreground execution quota (default: 1).",
    # Broadcast
    "GEOTOGGLE_BROADCAST_QUEUE_SIZE": "Per-listener buffer for location updates (default: 64).",
    # Platform emulation
    "GEOTOGGLE_GRANTED_PERMISSIONS": (
        "Permissions granted at startup (default: location notifications foreground_service)."
    ),
    "GEOTOGGLE_WIDGET_IDS": "Widget instances placed at startup (default: 1).",
}
