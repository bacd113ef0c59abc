"""
Gemini API key pool for quiz authoring
Round-robin over the configured keys with per-key 429 backoff
"""

import time
import threading
import logging
from typing import List, Optional, Sequence, Union
from dataclasses import dataclass, field
from collections import deque
import google.generativeai as genai

from credilink.config import GEMINI_API_KEYS, GEMINI_MODEL, GEMINI_MAX_RETRIES
from credilink.errors import Unavailable

logger = logging.getLogger(__name__)


@dataclass
class KeyStats:
    """Track request rate and 429 backoff for one API key"""
    key_name: str
    rpm_limit: int = 15
    requests_this_minute: deque = field(default_factory=lambda: deque(maxlen=300))
    total_requests: int = 0
    last_429_time: Optional[float] = None
    consecutive_429s: int = 0

    def backoff_seconds(self) -> float:
        return min(60 * (2 ** self.consecutive_429s), 300)

    def can_make_request(self) -> bool:
        now = time.time()

        while self.requests_this_minute and now - self.requests_this_minute[0] > 60:
            self.requests_this_minute.popleft()

        if len(self.requests_this_minute) >= self.rpm_limit:
            return False

        if self.last_429_time and now - self.last_429_time < self.backoff_seconds():
            return False

        return True

    def record_request(self):
        self.requests_this_minute.append(time.time())
        self.total_requests += 1
        self.consecutive_429s = 0

    def record_429(self):
        self.last_429_time = time.time()
        self.consecutive_429s += 1

    def get_wait_time(self) -> float:
        now = time.time()

        if self.last_429_time:
            elapsed = now - self.last_429_time
            if elapsed < self.backoff_seconds():
                return self.backoff_seconds() - elapsed

        if len(self.requests_this_minute) >= self.rpm_limit and self.requests_this_minute:
            wait = 60 - (now - self.requests_this_minute[0])
            if wait > 0:
                return wait

        return 0


class GeminiKeyPool:
    def __init__(self, api_keys: List[str], model_name: str = GEMINI_MODEL, max_wait_seconds: float = 30):
        if not api_keys:
            raise Unavailable("No Gemini API keys configured (set GEMINI_API_KEYS)")
        self.api_keys = api_keys
        self.model_name = model_name
        self.max_wait_seconds = max_wait_seconds
        self.lock = threading.RLock()
        self.key_index = 0
        self.stats = [KeyStats(key_name=f"key_{i + 1}") for i in range(len(api_keys))]

    def _next_available(self) -> Optional[int]:
        with self.lock:
            for _ in range(len(self.api_keys)):
                index = self.key_index
                self.key_index = (self.key_index + 1) % len(self.api_keys)
                if self.stats[index].can_make_request():
                    return index
            return None

    def _min_wait_time(self) -> float:
        with self.lock:
            return min(s.get_wait_time() for s in self.stats)

    def run(self, contents: Union[str, Sequence[str]], max_retries: int = GEMINI_MAX_RETRIES) -> str:
        """
        Send contents to Gemini and return the response text

        Raises:
            Unavailable: every key is rate limited or the API call failed
        """
        last_error = None
        for attempt in range(max_retries):
            index = self._next_available()

            if index is None:
                wait_time = self._min_wait_time()
                if 0 < wait_time <= self.max_wait_seconds:
                    logger.warning("All Gemini keys rate-limited, waiting %.1fs", wait_time)
                    time.sleep(wait_time + 0.1)
                    continue
                raise Unavailable("All Gemini API keys are rate-limited")

            stats = self.stats[index]
            try:
                genai.configure(api_key=self.api_keys[index])
                model = genai.GenerativeModel(self.model_name)
                response = model.generate_content(contents)
                text = response.text
            except Exception as e:
                last_error = e
                error_str = str(e)
                if "429" in error_str or "quota" in error_str.lower():
                    with self.lock:
                        stats.record_429()
                    logger.warning("%s hit rate limit (429), trying next key", stats.key_name)
                    continue
                logger.error("Gemini request failed on %s: %s", stats.key_name, error_str)
                raise Unavailable(f"Gemini request failed: {error_str}") from e

            with self.lock:
                stats.record_request()
            return text

        raise Unavailable(f"Gemini failed after {max_retries} attempts: {last_error}")


_pool: Optional[GeminiKeyPool] = None

def run_gemini(contents: Union[str, Sequence[str]]) -> str:
    """Module-level entry point; builds the key pool on first use"""
    global _pool
    if _pool is None:
        _pool = GeminiKeyPool(GEMINI_API_KEYS)
    return _pool.run(contents)
