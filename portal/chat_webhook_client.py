from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import requests

_log = logging.getLogger(__name__)

ERROR_TIMEOUT = "timeout"
ERROR_NETWORK = "network"
ERROR_HTTP = "http"
ERROR_CONFIG = "config"
ERROR_UNKNOWN = "unknown"

DEFAULT_REPLY = "Response received from the assistant."

SHAPE_ARRAY_OUTPUT = "array_output"
SHAPE_OUTPUT = "output"
SHAPE_RESPONSE = "response"
SHAPE_MESSAGE = "message"
SHAPE_STRING = "string"
SHAPE_PLAIN_TEXT = "plain_text"
SHAPE_DEFAULT = "default"

_RETRYABLE_STATUS = {408, 425, 429}
_CHUNK_BYTES = 8192


@dataclass(frozen=True)
class DecodedReply:
    shape: str
    text: str


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _present(value: Any) -> bool:
    return value is not None and value != ""


def decode_reply(content_type: str, body: str) -> DecodedReply:
    """Reduce the webhook's reply to one text, trying each known shape in order."""
    if "application/json" not in str(content_type or "").lower():
        return DecodedReply(SHAPE_PLAIN_TEXT, body or "")
    try:
        data = json.loads(body) if body else None
    except ValueError:
        _log.debug("webhook declared JSON but body did not parse", exc_info=True)
        return DecodedReply(SHAPE_PLAIN_TEXT, body or "")

    if isinstance(data, list) and data and isinstance(data[0], dict) and _present(data[0].get("output")):
        return DecodedReply(SHAPE_ARRAY_OUTPUT, _as_text(data[0]["output"]))
    if isinstance(data, dict):
        for key, shape in (("output", SHAPE_OUTPUT), ("response", SHAPE_RESPONSE), ("message", SHAPE_MESSAGE)):
            if _present(data.get(key)):
                return DecodedReply(shape, _as_text(data[key]))
    if isinstance(data, str) and data:
        return DecodedReply(SHAPE_STRING, data)
    return DecodedReply(SHAPE_DEFAULT, DEFAULT_REPLY)


@dataclass(frozen=True)
class ChatIdentity:
    user_id: str
    role: str
    email: str
    display_name: str = ""


@dataclass(frozen=True)
class ChatOutcome:
    success: bool
    response: str = ""
    error: str = ""
    error_kind: str = ""
    shape: str = ""

    @classmethod
    def delivered(cls, reply: DecodedReply) -> "ChatOutcome":
        return cls(success=True, response=reply.text, shape=reply.shape)

    @classmethod
    def failed(cls, kind: str, error: str) -> "ChatOutcome":
        return cls(success=False, error=error, error_kind=kind)

    def as_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "response": self.response}
        return {"success": False, "error": self.error, "error_kind": self.error_kind}


def build_payload(message: str, identity: ChatIdentity, now: Optional[datetime] = None) -> Dict[str, Any]:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "message": message,
        "userId": identity.user_id,
        "userRole": identity.role,
        "userEmail": identity.email,
        "userName": identity.display_name,
        "timestamp": stamp,
    }


class ChatWebhookClient:
    """One POST per message to the assistant workflow, bounded by a client deadline.

    The deadline is enforced here regardless of what the server does: when it
    passes, the call is flagged as cancelled, its HTTP session is closed and
    any late reply is thrown away.
    """

    def __init__(
        self,
        *,
        url: str,
        timeout_sec: float = 30.0,
        retry_attempts: int = 1,
        retry_enabled: bool = False,
        ping_timeout_sec: Optional[float] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = str(url or "").strip()
        self.timeout_sec = max(0.01, float(timeout_sec))
        self.retry_attempts = max(1, int(retry_attempts or 1))
        self.retry_enabled = bool(retry_enabled)
        self.ping_timeout_sec = max(self.timeout_sec, float(ping_timeout_sec or 0))
        self._session_factory = session_factory
        self._sleep = sleep

    def _is_retryable(self, outcome: ChatOutcome, status_code: Optional[int]) -> bool:
        if outcome.error_kind == ERROR_NETWORK:
            return True
        if outcome.error_kind == ERROR_HTTP and status_code is not None:
            return status_code in _RETRYABLE_STATUS or status_code >= 500
        return False

    def _read_body(self, resp: Any, cancelled: threading.Event, stop_at: float) -> Optional[str]:
        chunks = []
        for chunk in resp.iter_content(chunk_size=_CHUNK_BYTES):
            # A server trickling bytes cannot hold the worker past the deadline.
            if cancelled.is_set() or time.monotonic() > stop_at:
                return None
            chunks.append(chunk)
        return b"".join(chunks).decode(resp.encoding or "utf-8", errors="replace")

    def _attempt(self, payload: Dict[str, Any], deadline: float) -> Tuple[ChatOutcome, Optional[int]]:
        session = self._session_factory()
        cancelled = threading.Event()
        done = threading.Event()
        box: Dict[str, Any] = {}
        connect_timeout = min(10.0, deadline)
        stop_at = time.monotonic() + deadline

        def _call() -> None:
            try:
                resp = session.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json", "Accept": "application/json, text/plain, */*"},
                    timeout=(connect_timeout, deadline),
                    stream=True,
                )
                try:
                    body = None if cancelled.is_set() else self._read_body(resp, cancelled, stop_at)
                    if body is not None and not cancelled.is_set():
                        box["result"] = (resp.status_code, resp.headers.get("Content-Type", ""), body)
                finally:
                    resp.close()
            except Exception as exc:
                box["error"] = exc
            finally:
                done.set()

        # Daemon: an abandoned call never keeps the interpreter alive.
        worker = threading.Thread(target=_call, name="chat-webhook", daemon=True)
        worker.start()
        try:
            if not done.wait(deadline):
                cancelled.set()
                _log.warning("chat webhook exceeded %.1fs deadline; request cancelled", deadline)
                return ChatOutcome.failed(ERROR_TIMEOUT, f"no reply within {deadline:g}s"), None
            if "error" in box:
                raise box["error"]
            result = box.get("result")
        except requests.ConnectionError as exc:
            _log.warning("chat webhook unreachable", exc_info=True)
            return ChatOutcome.failed(ERROR_NETWORK, f"connection failed: {exc}"), None
        except requests.Timeout:
            _log.warning("chat webhook read timed out", exc_info=True)
            return ChatOutcome.failed(ERROR_TIMEOUT, f"no reply within {deadline:g}s"), None
        except Exception as exc:
            _log.warning("chat webhook failed", exc_info=True)
            return ChatOutcome.failed(ERROR_UNKNOWN, str(exc) or exc.__class__.__name__), None
        finally:
            session.close()

        if result is None:
            _log.warning("chat webhook reply exceeded %.1fs deadline while streaming", deadline)
            return ChatOutcome.failed(ERROR_TIMEOUT, f"no reply within {deadline:g}s"), None
        status_code, content_type, body = result
        if status_code >= 400:
            _log.warning("chat webhook answered HTTP %s", status_code)
            snippet = (body or "").strip()[:200]
            detail = f"HTTP {status_code}: {snippet}" if snippet else f"HTTP {status_code}"
            return ChatOutcome.failed(ERROR_HTTP, detail), status_code
        return ChatOutcome.delivered(decode_reply(content_type, body)), status_code

    def send(self, message: str, identity: ChatIdentity, *, deadline: Optional[float] = None) -> ChatOutcome:
        if not self.url:
            return ChatOutcome.failed(ERROR_CONFIG, "chat webhook URL not configured")
        payload = build_payload(message, identity)
        limit = float(deadline or self.timeout_sec)
        # Retries stay off unless explicitly enabled; one attempt is the default contract.
        attempts = self.retry_attempts if self.retry_enabled else 1
        outcome = ChatOutcome.failed(ERROR_UNKNOWN, "not sent")
        for attempt in range(attempts):
            outcome, status_code = self._attempt(payload, limit)
            if outcome.success:
                return outcome
            if attempt < attempts - 1 and self._is_retryable(outcome, status_code):
                # bounded exponential backoff with jitter
                delay = min(4.0, 0.25 * (2**attempt) + random.random() * 0.25)
                _log.info("retrying chat webhook after %s (attempt %d/%d)", outcome.error_kind, attempt + 2, attempts)
                self._sleep(delay)
                continue
            break
        return outcome

    def ping(self, identity: ChatIdentity) -> ChatOutcome:
        return self.send("test connection", identity, deadline=self.ping_timeout_sec)
