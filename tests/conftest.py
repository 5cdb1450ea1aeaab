"""
Pytest configuration and shared fixtures.
"""

import threading
import time
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest

from etymofill.database import Word, get_session, init_database
from etymofill.env import Settings
from etymofill.logger import get_logger
from etymofill.registry import FillJobRegistry
from etymofill.storage import WordStore


class FakeAnalysisClient:
    """
    Stand-in for AnalysisClient.

    ``responses`` maps a word to a script of outcomes, one per attempt; the
    last outcome repeats. An outcome is either a payload dict or an
    exception instance to raise. Unscripted words succeed.
    """

    def __init__(self, latency: float = 0.0, responses: Optional[Dict[str, List[Any]]] = None):
        self.latency = latency
        self.responses = responses or {}
        self.calls: List[str] = []
        self.attempts: Counter = Counter()
        self.duplicates: List[str] = []
        self.closed = False
        self._outstanding = set()
        self._lock = threading.Lock()

    def analyze(self, word: str, language: str) -> Dict[str, Any]:
        with self._lock:
            if word in self._outstanding:
                self.duplicates.append(word)
            self._outstanding.add(word)
            self.calls.append(word)
            self.attempts[word] += 1
            attempt = self.attempts[word]

        try:
            if self.latency:
                time.sleep(self.latency)
            script = self.responses.get(word)
            if script:
                outcome = script[min(attempt, len(script)) - 1]
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            return {"word": word, "language": language, "origin": "test"}
        finally:
            with self._lock:
                self._outstanding.discard(word)

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def close(self) -> None:
        self.closed = True


def word_list(count: int, prefix: str = "word") -> List[str]:
    return [f"{prefix}{i:03d}" for i in range(count)]


@pytest.fixture(autouse=True)
def quiet_logger():
    """Undo any logger reconfiguration a test (e.g. the CLI) performs."""
    yield
    get_logger().configure(enable_file=False)


@pytest.fixture
def engine(tmp_path):
    """Create a temporary SQLite database with the words table."""
    return init_database(tmp_path / "words.db")


@pytest.fixture
def store(engine) -> WordStore:
    return WordStore(engine)


@pytest.fixture
def db_session(engine):
    session = get_session(engine)
    yield session
    session.close()


@pytest.fixture
def seeded_store(store) -> WordStore:
    """Store with 30 unfilled Korean words and 2 filled ones."""
    store.add_words("ko", word_list(30))
    store.add_words("ja", word_list(5, prefix="kotoba"))
    session = get_session(store.engine)
    session.add(Word(word="done1", language="ko", etymology={"origin": "seed"}))
    session.add(Word(word="done2", language="ko", etymology={"origin": "seed"}))
    session.commit()
    session.close()
    return store


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with test-friendly intervals and backoff."""
    return Settings(
        database_url="sqlite://",
        default_delay_ms=1,
        rate_limit_backoff=0.01,
        poll_interval=0.005,
        idle_interval=0.01,
    )


@pytest.fixture
def fake_client() -> FakeAnalysisClient:
    return FakeAnalysisClient()


@pytest.fixture
def registry(seeded_store, fake_client, fast_settings):
    registry = FillJobRegistry(seeded_store, fake_client, fast_settings)
    yield registry
    registry.shutdown(timeout=10)
