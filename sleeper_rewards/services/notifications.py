"""Fire-and-forget notifications after a distribution commits"""
import logging
import time
from typing import Callable, List, Optional

import requests

from sleeper_rewards.models.session import DistributionEvent

logger = logging.getLogger(__name__)

Listener = Callable[[DistributionEvent], None]


class DistributionBroadcaster:
    """In-process fan-out; a failing listener never affects the others or the caller"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: DistributionEvent) -> int:
        """Deliver to every listener, returns how many succeeded"""
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Distribution listener {getattr(listener, '__name__', listener)!r} failed: {e}")
        return delivered


class WebhookNotifier:
    """Posts distribution events to an HTTP endpoint"""

    def __init__(self, url: str, timeout: float = 10.0, attempts: int = 3, retry_delay: float = 1.0):
        self.url = url
        self.timeout = timeout
        self.attempts = attempts
        self.retry_delay = retry_delay

    def __call__(self, event: DistributionEvent) -> None:
        self.send(event)

    def send(self, event: DistributionEvent) -> Optional[int]:
        """POST the event with retries; the last failure is raised"""
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }

        for attempt in range(self.attempts):
            try:
                response = requests.post(
                    self.url,
                    data=event.model_dump_json(),
                    headers=headers,
                    timeout=self.timeout
                )
                response.raise_for_status()
                logger.info(f"Distribution webhook delivered for {event.night_date}")
                return response.status_code
            except requests.RequestException as e:
                if attempt == self.attempts - 1:
                    raise
                logger.warning(f"Retrying webhook after error: {e}")
                time.sleep(self.retry_delay)
        return None
