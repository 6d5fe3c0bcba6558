# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (the REST API key, the Matrix password). Keep them in:
- .env (local, gitignored)

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "DESK_APP_NAME": "App display name (default: complaint-desk).",
    "DESK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "DESK_DATA_DIR": "Local data directory for the log file, SQLite db and exports (default: .local/complaint_desk).",
    # Store
    "DESK_STORE": "Store backend: sqlite | rest (default: sqlite).",
    "DESK_SQLITE_PATH": "SQLite store path (default: <data_dir>/complaints.sqlite3).",
    "DESK_REST_URL": "PostgREST base URL (required when DESK_STORE=rest).",
    "DESK_REST_API_KEY": "API key sent as apikey + bearer token (optional).",
    "DESK_REST_POLL_SECONDS": "Polling interval of the REST change feed in seconds (default: 5).",
    "DESK_CHANNEL": "Change channel name (default: admin-complaints-channel).",
    # Acting agent
    "DESK_AGENT_ID": "Agent id this console acts as (default: local-admin).",
    "DESK_AGENT_NAME": "Agent display name (default: Admin).",
    # Notifications
    "DESK_NOTIFIER": "console | matrix | none (default: console).",
    "DESK_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "DESK_MATRIX_USER_ID": "Matrix user ID used to post notices.",
    "DESK_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "DESK_MATRIX_ROOM": "Room ID that receives notices.",
    "DESK_MATRIX_STORE_PATH": "Matrix session directory (default: <data_dir>/matrix).",
    # Display
    "DESK_DURATION_LOCALE": "Labels for time-to-close: en | ar (default: en).",
}
