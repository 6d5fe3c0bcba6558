# src/complaint_desk/notify/matrix.py

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse

logger = logging.getLogger(__name__)


def _session_path(store_dir: Path) -> Path:
    return store_dir / "session.json"


def _load_json(path: Path) -> dict[str, Any]:
    val = json.loads(path.read_text("utf-8"))
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Create a Matrix AsyncClient for sending notices.

    session.json keeps the access token/device id across restarts so the
    password is only needed once. It holds a credential: keep it under the
    gitignored data dir.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/complaint_desk/matrix")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set DESK_MATRIX_HOMESERVER and DESK_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = _session_path(store_dir)

    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(store_sync_tokens=False),
    )

    if session_file.exists():
        try:
            data = _load_json(session_file)
            access_token = data.get("access_token")
            sess_user_id = data.get("user_id")
            device_id = data.get("device_id")
            if not access_token or not sess_user_id or not device_id:
                raise ValueError("session.json is missing required fields")

            client.access_token = str(access_token)
            client.user_id = str(sess_user_id)
            client.device_id = str(device_id)
            logger.info("Matrix session restored for %s", client.user_id)
            return client
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore Matrix session.json, will try password login: %r", e)

    if not password:
        logger.error(
            "Matrix session.json not found and password is not set. "
            "Set DESK_MATRIX_PASSWORD once to bootstrap a session."
        )
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'complaint-desk')} (notifier)"
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        _atomic_write_json(
            session_file,
            {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
        )
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        logger.warning("Failed to write Matrix session.json (%s): %r", session_file, e)

    return client


class MatrixNotifier:
    """Posts notices as m.text messages into one Matrix room."""

    def __init__(self, settings, *, client: AsyncClient | None = None) -> None:
        self._settings = settings
        self._room_id = (getattr(settings, "matrix_room", "") or "").strip()
        self._client = client

    async def start(self) -> None:
        if self._client is None:
            self._client = await create_matrix_client(self._settings)
        if self._client is None:
            logger.warning("Matrix notifier disabled: client unavailable")
        elif not self._room_id:
            logger.warning("Matrix notifier has no room (DESK_MATRIX_ROOM); notices will be dropped")

    async def notify(self, title: str, body: str) -> None:
        if self._client is None or not self._room_id:
            logger.debug("Matrix notice dropped: %s", title)
            return
        await self._client.room_send(
            room_id=self._room_id,
            message_type="m.room.message",
            content={"msgtype": "m.text", "body": f"{title}\n{body}"},
            ignore_unverified_devices=True,
        )
        logger.debug("Matrix notice sent to %s: %s", self._room_id, title)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.close()
