"""
Notification delivery for hostwatch.

All alerts go to a single Telegram chat. Quiet hours suppress every message
that is not sent with ``bypass_quiet_hours=True``; critical events (kernel,
RAID, OOM-loop reboot) always bypass.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from .config.settings import QuietHoursConfig
from .constants import Defaults, Timeouts

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def load_timezone(name: str) -> Optional[ZoneInfo]:
    """ZoneInfo for ``name``, or None (local time) when empty or unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using local time")
        return None


class QuietHours:
    """
    Daily quiet window evaluated in the configured timezone.

    A window whose start is before its end lies within one day; otherwise it
    wraps midnight (e.g. 23:30-07:00).
    """

    def __init__(
        self,
        config: QuietHoursConfig,
        timezone: str = "UTC",
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.tz = load_timezone(timezone)
        self._now = now or (lambda: datetime.now(self.tz))

    def is_active(self, now: Optional[datetime] = None) -> bool:
        cfg = self.config
        if not cfg.enabled:
            return False

        if now is None:
            now = self._now()
        elif self.tz is not None and now.tzinfo is not None:
            now = now.astimezone(self.tz)

        current = now.hour * 60 + now.minute
        start = cfg.start_hour * 60 + cfg.start_minute
        end = cfg.end_hour * 60 + cfg.end_minute

        if start < end:
            return start <= current < end
        return current >= start or current < end


def split_message(text: str, max_len: int = Defaults.TELEGRAM_MAX_MESSAGE_LEN) -> List[str]:
    """Split ``text`` into chunks of at most ``max_len``, preferring newline boundaries."""
    remaining = (text or "").strip()
    if not remaining:
        return [""]

    max_len = max(1, int(max_len))
    parts = []
    while remaining:
        if len(remaining) <= max_len:
            parts.append(remaining)
            break
        cut = remaining.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        parts.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    return parts


class Notifier:
    """Base notifier: applies quiet-hours suppression, subclasses deliver."""

    def __init__(self, quiet_hours: Optional[QuietHours] = None):
        self.quiet_hours = quiet_hours

    def is_quiet_hours(self) -> bool:
        return self.quiet_hours is not None and self.quiet_hours.is_active()

    def send(self, message: str, bypass_quiet_hours: bool = False) -> bool:
        """
        Send a Markdown message to the operator.

        Returns:
            True if the message was delivered, False if suppressed or failed
        """
        if not bypass_quiet_hours and self.is_quiet_hours():
            logger.debug(f"Quiet hours, suppressed: {message.splitlines()[0] if message else ''}")
            return False
        return self._deliver(message)

    def _deliver(self, message: str) -> bool:
        raise NotImplementedError


class TelegramNotifier(Notifier):
    """Posts messages through the Telegram Bot API sendMessage method."""

    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        quiet_hours: Optional[QuietHours] = None,
        timeout: float = Timeouts.HTTP_REQUEST,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(quiet_hours)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self._session = session or requests.Session()
        self._lock = threading.Lock()

    def _redact(self, text: str) -> str:
        if self.bot_token:
            return text.replace(self.bot_token, "<redacted>")
        return text

    def _post(self, text: str, parse_mode: Optional[str]) -> Tuple[bool, str]:
        payload = {"chat_id": self.chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        url = TELEGRAM_API_URL.format(token=self.bot_token)
        try:
            response = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            return False, self._redact(f"{type(e).__name__}: {e}")

        try:
            data = response.json()
        except ValueError:
            return False, f"HTTP {response.status_code}: non-JSON response"
        if data.get("ok"):
            return True, ""
        return False, str(data.get("description") or f"HTTP {response.status_code}")

    def _deliver(self, message: str) -> bool:
        delivered = True
        with self._lock:
            for part in split_message(message):
                ok, error = self._post(part, "Markdown")
                if not ok and "parse" in error.lower():
                    # Unbalanced Markdown from container names or kernel lines
                    logger.warning(f"Telegram rejected Markdown ({error}), resending as plain text")
                    ok, error = self._post(part, None)
                if not ok:
                    logger.error(f"Telegram send failed: {error}")
                    delivered = False
        return delivered


class RecordingNotifier(Notifier):
    """
    Keeps delivered messages in memory instead of sending them.

    Used when no bot token is configured, and in tests.
    """

    def __init__(self, quiet_hours: Optional[QuietHours] = None, log_messages: bool = False):
        super().__init__(quiet_hours)
        self.log_messages = log_messages
        self.sent: List[Tuple[str, bool]] = []
        self.suppressed: List[str] = []
        self._lock = threading.Lock()

    def send(self, message: str, bypass_quiet_hours: bool = False) -> bool:
        if not bypass_quiet_hours and self.is_quiet_hours():
            with self._lock:
                self.suppressed.append(message)
            return False
        with self._lock:
            self.sent.append((message, bypass_quiet_hours))
        if self.log_messages:
            logger.info(f"[notification] {message}")
        return True

    def _deliver(self, message: str) -> bool:
        return self.send(message, bypass_quiet_hours=True)

    @property
    def messages(self) -> List[str]:
        with self._lock:
            return [m for m, _ in self.sent]

    def clear(self):
        with self._lock:
            self.sent.clear()
            self.suppressed.clear()


def create_notifier(bot_token: str, chat_id: int, quiet_hours: Optional[QuietHours] = None) -> Notifier:
    """Telegram notifier when credentials are set, otherwise a logging recorder."""
    if bot_token and chat_id:
        return TelegramNotifier(bot_token, chat_id, quiet_hours=quiet_hours)
    logger.warning("No bot token or chat id configured, notifications will only be logged")
    return RecordingNotifier(quiet_hours=quiet_hours, log_messages=True)
