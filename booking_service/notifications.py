"""
Push notification delivery.

Notifier is the boundary the booking core talks to. FcmNotifier sends through
the FCM HTTP v1 API, authenticating with a service-account key: a signed JWT
is exchanged for an OAuth access token, cached until shortly before expiry.
Callers in the core go through safe_notify/safe_notify_many, which turn every
delivery failure into a log line.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

import httpx
from jose import jwt

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

HTTP_TIMEOUT = 10.0
# refresh the access token a bit before Google expires it
_TOKEN_REFRESH_MARGIN = 5 * 60


class NotificationError(Exception):
    pass


@dataclass
class DeliveryResult:
    target: str
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class BatchResult:
    success_count: int = 0
    failure_count: int = 0
    results: list[DeliveryResult] = field(default_factory=list)


def stringify(data: dict | None) -> dict[str, str]:
    """FCM data payloads only carry strings."""
    out = {str(k): "" if v is None else str(v) for k, v in (data or {}).items()}
    out.setdefault("clickAction", "FLUTTER_NOTIFICATION_CLICK")
    return out


class Notifier:
    async def notify(self, target: str, title: str, body: str, data: dict | None = None) -> str:
        """Deliver one message; return the delivery id or raise NotificationError."""
        raise NotImplementedError

    async def notify_many(
        self, targets: list[str], title: str, body: str, data: dict | None = None
    ) -> BatchResult:
        batch = BatchResult()
        for target in targets:
            try:
                message_id = await self.notify(target, title, body, data)
            except NotificationError as e:
                batch.failure_count += 1
                batch.results.append(DeliveryResult(target=target, success=False, error=str(e)))
                continue
            batch.success_count += 1
            batch.results.append(DeliveryResult(target=target, success=True, message_id=message_id))
        return batch


class FcmNotifier(Notifier):
    def __init__(self, project_id: str | None, service_account_file: str | None, timeout: float = HTTP_TIMEOUT):
        self.project_id = project_id
        self.service_account_file = service_account_file
        self.timeout = timeout
        self._credentials: dict | None = None
        self._token: tuple[str, float] | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.project_id and self.service_account_file)

    def _load_credentials(self) -> dict:
        if self._credentials is None:
            path = Path(self.service_account_file)
            try:
                self._credentials = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise NotificationError(f"cannot read FCM service account {path}: {e}") from e
        return self._credentials

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        now = time.time()
        if self._token and self._token[1] > now:
            return self._token[0]

        creds = self._load_credentials()
        token_uri = creds.get("token_uri") or DEFAULT_TOKEN_URI
        issued_at = int(now)
        assertion = jwt.encode(
            {
                "iss": creds.get("client_email"),
                "scope": FCM_SCOPE,
                "aud": token_uri,
                "iat": issued_at,
                "exp": issued_at + 3600,
            },
            creds.get("private_key"),
            algorithm="RS256",
        )

        resp = await client.post(
            token_uri,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": assertion,
            },
        )
        if resp.status_code != 200:
            raise NotificationError(f"FCM token exchange failed: {resp.status_code} {resp.text}")

        payload = resp.json()
        expires_in = int(payload.get("expires_in", 3600))
        self._token = (payload["access_token"], now + expires_in - _TOKEN_REFRESH_MARGIN)
        return self._token[0]

    def _message(self, target: str, title: str, body: str, data: dict | None) -> dict:
        return {
            "message": {
                "token": target,
                "notification": {"title": title, "body": body},
                "data": stringify(data),
                "android": {
                    "priority": "high",
                    "notification": {"sound": "default", "channel_id": "default"},
                },
                "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
            }
        }

    async def notify(self, target, title, body, data=None):
        if not self.enabled:
            raise NotificationError("FCM is not configured (FCM_PROJECT_ID / FCM_SERVICE_ACCOUNT_FILE)")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                access_token = await self._access_token(client)
                resp = await client.post(
                    FCM_SEND_URL.format(project_id=self.project_id),
                    json=self._message(target, title, body, data),
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            raise NotificationError(f"FCM request failed: {e}") from e

        if resp.status_code != 200:
            if resp.status_code == 404:
                # token unregistered or from another Firebase project
                raise NotificationError(f"FCM token not registered: {target[:20]}...")
            raise NotificationError(f"FCM returned {resp.status_code}: {resp.text}")

        return resp.json().get("name", "")


async def safe_notify(
    notifier: Notifier, target: str | None, title: str, body: str, data: dict | None = None
) -> str | None:
    if not target:
        logger.info("no push target for %r, skipping", title)
        return None
    try:
        return await notifier.notify(target, title, body, data)
    except Exception as e:
        logger.warning("notification %r to %s... failed: %s", title, target[:20], e)
        return None


async def safe_notify_many(
    notifier: Notifier, targets: list[str] | None, title: str, body: str, data: dict | None = None
) -> BatchResult | None:
    targets = [t for t in (targets or []) if t]
    if not targets:
        logger.info("no push targets for %r, skipping", title)
        return None
    try:
        batch = await notifier.notify_many(targets, title, body, data)
    except Exception as e:
        logger.warning("batch notification %r failed: %s", title, e)
        return None
    if batch.failure_count:
        logger.warning(
            "notification %r: %d delivered, %d failed", title, batch.success_count, batch.failure_count
        )
    return batch
