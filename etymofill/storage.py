"""
Word storage used by the fill pipeline.

Wraps the ``words`` table behind the four operations the fill jobs need
(count, fetch a batch, re-read one, persist) plus seeding. All SQLAlchemy
failures surface as DatastoreError.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import String, cast, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import Word

# Textual forms of a stored payload that still count as "no analysis"
EMPTY_PAYLOADS = ("null", "{}")

# Keeps IN (...) lists under SQLite's bound-parameter limit
SEED_CHUNK_SIZE = 500


class DatastoreError(Exception):
    """Raised when the word store cannot be read or written."""
    pass


@dataclass(frozen=True)
class Item:
    """Detached view of a word row, safe to pass between threads."""

    id: int
    word: str
    language: str
    etymology: Optional[Dict[str, Any]] = None

    @property
    def is_unfilled(self) -> bool:
        return is_unfilled(self.etymology)


def is_unfilled(payload: Any) -> bool:
    """True when a loaded payload means the word still needs analysis."""
    return not payload or payload == "null"


def _unfilled_clause():
    return or_(
        Word.etymology.is_(None),
        cast(Word.etymology, String).in_(EMPTY_PAYLOADS),
    )


def _to_item(row: Word) -> Item:
    return Item(id=row.id, word=row.word, language=row.language, etymology=row.etymology)


class WordStore:
    """Datastore for fill jobs, backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._Session = sessionmaker(bind=engine, expire_on_commit=False)

    def count_unfilled(self, language_key: str) -> int:
        try:
            with self._Session() as session:
                return (
                    session.query(Word)
                    .filter(Word.language == language_key, _unfilled_clause())
                    .count()
                )
        except SQLAlchemyError as e:
            raise DatastoreError(f"Failed to count unfilled words for {language_key}: {e}") from e

    def fetch_unfilled(self, language_key: str, limit: int, after_id: Optional[int] = None) -> List[Item]:
        """
        Fetch a batch of unfilled words.

        Args:
            language_key: Partition key (e.g. "ko")
            limit: Maximum number of words to return
            after_id: Only return words with a greater id (None = from the start)

        Returns:
            Items ordered by ascending id
        """
        try:
            with self._Session() as session:
                query = session.query(Word).filter(Word.language == language_key, _unfilled_clause())
                if after_id is not None:
                    query = query.filter(Word.id > after_id)
                rows = query.order_by(Word.id.asc()).limit(limit).all()
                return [_to_item(row) for row in rows]
        except SQLAlchemyError as e:
            raise DatastoreError(f"Failed to fetch unfilled words for {language_key}: {e}") from e

    def refetch_one(self, item_id: int) -> Optional[Item]:
        """Re-read a single word; None if it no longer exists."""
        try:
            with self._Session() as session:
                row = session.get(Word, item_id)
                return _to_item(row) if row is not None else None
        except SQLAlchemyError as e:
            raise DatastoreError(f"Failed to read word {item_id}: {e}") from e

    def persist_analysis(self, item_id: int, payload: Dict[str, Any]) -> None:
        """
        Store the analysis for a word. Last write wins.

        Raises:
            DatastoreError: If the write fails or the word is gone
        """
        try:
            with self._Session() as session, session.begin():
                updated = (
                    session.query(Word)
                    .filter(Word.id == item_id)
                    .update(
                        {Word.etymology: payload, Word.updated_at: datetime.now()},
                        synchronize_session=False,
                    )
                )
        except SQLAlchemyError as e:
            raise DatastoreError(f"Failed to save analysis for word {item_id}: {e}") from e
        if updated == 0:
            raise DatastoreError(f"Word {item_id} not found")

    def add_words(self, language_key: str, words: Iterable[str]) -> int:
        """
        Insert words that are not stored yet for the language.

        Returns:
            Number of words added
        """
        wanted = []
        seen = set()
        for word in words:
            word = word.strip()
            if word and word not in seen:
                seen.add(word)
                wanted.append(word)
        if not wanted:
            return 0

        try:
            with self._Session() as session, session.begin():
                existing = set()
                for start in range(0, len(wanted), SEED_CHUNK_SIZE):
                    chunk = wanted[start:start + SEED_CHUNK_SIZE]
                    existing.update(
                        w for (w,) in session.query(Word.word)
                        .filter(Word.language == language_key, Word.word.in_(chunk))
                    )
                new_rows = [Word(word=w, language=language_key) for w in wanted if w not in existing]
                session.add_all(new_rows)
                return len(new_rows)
        except SQLAlchemyError as e:
            raise DatastoreError(f"Failed to add words for {language_key}: {e}") from e
