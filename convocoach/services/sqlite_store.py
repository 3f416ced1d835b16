import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from convocoach.core.config import settings
from convocoach.models.conversation import Conversation, ConversationEnd
from convocoach.models.segment import Segment
from convocoach.models.summary import Summary
from convocoach.services.state import now_ms
from convocoach.services.storage import ConversationNotFound, StoreError, generate_id

logger = logging.getLogger(__name__)

DDL = [
    '''CREATE TABLE IF NOT EXISTS conversations(
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT,
        started_at INTEGER NOT NULL,
        ended_at INTEGER,
        duration_ms INTEGER,
        created_at INTEGER NOT NULL
    )''',
    '''CREATE TABLE IF NOT EXISTS speech_segments(
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        transcription TEXT,
        speaker TEXT DEFAULT 'user',
        sentiment TEXT,
        timestamp INTEGER,
        duration_ms INTEGER,
        stutters TEXT DEFAULT '[]',
        pauses TEXT DEFAULT '[]',
        tone TEXT DEFAULT '{}',
        filler_words TEXT DEFAULT '[]',
        speaking_rate TEXT DEFAULT '{}',
        confidence TEXT DEFAULT '{}',
        interruptions TEXT DEFAULT '{}',
        key_insights TEXT DEFAULT '[]',
        created_at INTEGER
    )''',
    '''CREATE INDEX IF NOT EXISTS idx_segments_conversation
        ON speech_segments(conversation_id, timestamp)''',
    '''CREATE TABLE IF NOT EXISTS conversation_summaries(
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL UNIQUE,
        user_id TEXT NOT NULL,
        total_segments INTEGER,
        total_words INTEGER,
        avg_words_per_minute REAL,
        total_filler_words INTEGER,
        filler_word_rate REAL,
        total_stutters INTEGER,
        stutter_rate REAL,
        total_pauses INTEGER,
        avg_pause_duration REAL,
        confidence_score REAL,
        overall_tone TEXT,
        overall_sentiment TEXT,
        grade TEXT,
        grade_score REAL,
        strengths TEXT DEFAULT '[]',
        areas_for_improvement TEXT DEFAULT '[]',
        key_patterns TEXT DEFAULT '[]',
        filler_word_breakdown TEXT DEFAULT '{}',
        tone_breakdown TEXT DEFAULT '{}',
        is_fallback INTEGER DEFAULT 0,
        created_at INTEGER,
        updated_at INTEGER
    )''',
]

# Колонка -> поле AnalysisDetails в camelCase
SEGMENT_JSON_COLUMNS = {
    "stutters": "stutters",
    "pauses": "pauses",
    "tone": "tone",
    "filler_words": "fillerWords",
    "speaking_rate": "speakingRate",
    "confidence": "confidence",
    "interruptions": "interruptions",
    "key_insights": "keyInsights",
}

SUMMARY_METRIC_COLUMNS = (
    "total_segments",
    "total_words",
    "avg_words_per_minute",
    "total_filler_words",
    "filler_word_rate",
    "total_stutters",
    "stutter_rate",
    "total_pauses",
    "avg_pause_duration",
    "confidence_score",
    "overall_tone",
    "overall_sentiment",
)


class SqliteStore:
    """Хранилище разговоров, сегментов и отчётов в SQLite"""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or settings.db_path
        self.init_db()

    def connect(self) -> sqlite3.Connection:
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(str(path))
        con.row_factory = sqlite3.Row
        return con

    def _execute(self, sql: str, params: tuple = (), fetch: Optional[str] = None) -> Any:
        try:
            con = self.connect()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}")
        try:
            cur = con.execute(sql, params)
            if fetch == "one":
                result = cur.fetchone()
            elif fetch == "all":
                result = cur.fetchall()
            else:
                result = cur.rowcount
            con.commit()
            return result
        except sqlite3.Error as e:
            logger.error(f"SQLite query failed: {e}")
            raise StoreError(str(e))
        finally:
            con.close()

    def init_db(self) -> None:
        try:
            con = self.connect()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}")
        try:
            for stmt in DDL:
                con.execute(stmt)
            con.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e))
        finally:
            con.close()

    # --------------------
    # Разговоры
    # --------------------

    def create(self, user_id: str, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(
            id=generate_id(), user_id=user_id, title=title, started_at=now_ms()
        )
        self._execute(
            "INSERT INTO conversations(id, user_id, title, started_at, created_at) VALUES(?,?,?,?,?)",
            (conversation.id, user_id, title, conversation.started_at, conversation.started_at),
        )
        return conversation

    def get(self, conversation_id: str, user_id: Optional[str] = None) -> Optional[Conversation]:
        row = self._execute(
            "SELECT * FROM conversations WHERE id=?", (conversation_id,), fetch="one"
        )
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return None
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            duration_ms=row["duration_ms"],
        )

    def end(self, conversation_id: str, user_id: str) -> ConversationEnd:
        conversation = self.get(conversation_id, user_id)
        if conversation is None:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")

        ended_at = now_ms()
        duration_ms = ended_at - conversation.started_at
        self._execute(
            "UPDATE conversations SET ended_at=?, duration_ms=? WHERE id=? AND user_id=?",
            (ended_at, duration_ms, conversation_id, user_id),
        )
        return ConversationEnd(id=conversation_id, ended_at=ended_at, duration_ms=duration_ms)

    # --------------------
    # Сегменты
    # --------------------

    def append(self, segment: Segment) -> Segment:
        analysis = segment.analysis.model_dump(by_alias=True)
        self._execute(
            "INSERT INTO speech_segments("
            "id, conversation_id, user_id, transcription, speaker, sentiment, timestamp, "
            "duration_ms, stutters, pauses, tone, filler_words, speaking_rate, confidence, "
            "interruptions, key_insights, created_at"
            ") VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (
                segment.id,
                segment.conversation_id,
                segment.user_id,
                segment.transcript,
                segment.speaker,
                segment.analysis.sentiment,
                segment.timestamp_ms,
                segment.duration_ms,
                *(json.dumps(analysis[key]) for key in SEGMENT_JSON_COLUMNS.values()),
                segment.created_at or now_ms(),
            ),
        )
        return segment

    def list_by_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> List[Segment]:
        if user_id is None:
            rows = self._execute(
                "SELECT * FROM speech_segments WHERE conversation_id=? ORDER BY timestamp ASC",
                (conversation_id,), fetch="all",
            )
        else:
            rows = self._execute(
                "SELECT * FROM speech_segments WHERE conversation_id=? AND user_id=? "
                "ORDER BY timestamp ASC",
                (conversation_id, user_id), fetch="all",
            )
        return [self._row_to_segment(row) for row in rows]

    @staticmethod
    def _row_to_segment(row: sqlite3.Row) -> Segment:
        analysis: Dict[str, Any] = {
            field: json.loads(row[column] or "null")
            for column, field in SEGMENT_JSON_COLUMNS.items()
        }
        analysis["sentiment"] = row["sentiment"]
        return Segment.model_validate({
            "id": row["id"],
            "conversationId": row["conversation_id"],
            "userId": row["user_id"],
            "transcription": row["transcription"] or "",
            "speaker": row["speaker"],
            "timestampMs": row["timestamp"],
            "durationMs": row["duration_ms"],
            "createdAt": row["created_at"],
            "analysis": analysis,
        })

    # --------------------
    # Отчёты
    # --------------------

    def upsert(self, summary: Summary) -> Summary:
        metrics = summary.metrics
        self._execute(
            "INSERT OR REPLACE INTO conversation_summaries("
            "id, conversation_id, user_id, " + ", ".join(SUMMARY_METRIC_COLUMNS) + ", "
            "grade, grade_score, strengths, areas_for_improvement, key_patterns, "
            "filler_word_breakdown, tone_breakdown, is_fallback, created_at, updated_at"
            ") VALUES(" + ",".join("?" * (3 + len(SUMMARY_METRIC_COLUMNS) + 10)) + ")",
            (
                summary.id,
                summary.conversation_id,
                summary.user_id,
                *(getattr(metrics, column) for column in SUMMARY_METRIC_COLUMNS),
                summary.grade,
                summary.grade_score,
                json.dumps(summary.strengths),
                json.dumps(summary.areas_for_improvement),
                json.dumps(summary.key_patterns),
                json.dumps(metrics.filler_word_breakdown),
                json.dumps(metrics.tone_breakdown),
                int(summary.is_fallback),
                summary.created_at,
                summary.updated_at,
            ),
        )
        return summary

    def get_by_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> Optional[Summary]:
        row = self._execute(
            "SELECT * FROM conversation_summaries WHERE conversation_id=?",
            (conversation_id,), fetch="one",
        )
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return None
        return self._row_to_summary(row)

    def list_by_user(self, user_id: str) -> List[Summary]:
        rows = self._execute(
            "SELECT cs.*, c.title AS title, c.started_at AS started_at, c.ended_at AS ended_at "
            "FROM conversation_summaries cs "
            "LEFT JOIN conversations c ON cs.conversation_id = c.id "
            "WHERE cs.user_id=? ORDER BY cs.created_at DESC",
            (user_id,), fetch="all",
        )
        return [self._row_to_summary(row) for row in rows]

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> Summary:
        keys = row.keys()
        metrics = {column: row[column] for column in SUMMARY_METRIC_COLUMNS}
        metrics["filler_word_breakdown"] = json.loads(row["filler_word_breakdown"] or "{}")
        metrics["tone_breakdown"] = json.loads(row["tone_breakdown"] or "{}")
        return Summary.model_validate({
            "id": row["id"],
            "conversation_id": row["conversation_id"],
            "user_id": row["user_id"],
            "metrics": metrics,
            "grade": row["grade"],
            "grade_score": row["grade_score"],
            "strengths": json.loads(row["strengths"] or "[]"),
            "areas_for_improvement": json.loads(row["areas_for_improvement"] or "[]"),
            "key_patterns": json.loads(row["key_patterns"] or "[]"),
            "is_fallback": bool(row["is_fallback"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "title": row["title"] if "title" in keys else None,
            "started_at": row["started_at"] if "started_at" in keys else None,
            "ended_at": row["ended_at"] if "ended_at" in keys else None,
        })
