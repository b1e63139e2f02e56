from __future__ import annotations

"""
persistence_utils.py — the player record store.

The world core only ever talks to storage through three calls:

    load_player_record(persistent_id) -> dict | None
    save_player_record(persistent_id, record) -> None      # merge-upsert
    touch_last_seen(persistent_id) -> None

``PlayerStore`` implements them over a single JSON document keyed by persistent
id. Writes merge field by field into the stored record (last writer wins per
field), so a position update and an avatar update that race each other both
survive. ``lastSeen`` is refreshed on every write and ``createdAt`` is only set
the first time a record appears.

The in-memory document is updated synchronously; the file is written behind
by a DebouncedSaver so storage latency never sits on the broadcast path.
Every failure is logged and counted, never raised: the live registry stays
authoritative even when the disk does not cooperate.

Any object exposing the same three methods can stand in for PlayerStore, e.g.
a document-database client.
"""

import copy
import json
import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from debounced_saver import DebouncedSaver

logger = logging.getLogger(__name__)


class PlayerRecordStore(Protocol):
    def load_player_record(self, persistent_id: str) -> Optional[dict]: ...
    def save_player_record(self, persistent_id: str, record: dict) -> None: ...
    def touch_last_seen(self, persistent_id: str) -> None: ...


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


class PlayerStore:
    """JSON-file backed key-value store for persisted player records."""

    def __init__(self, state_path: str | None, *, debounce_ms: int = 300) -> None:
        self._path = state_path
        self._records: Dict[str, dict] = {}
        self._lock = threading.RLock()
        self._dirty = False
        self._stats: Dict[str, Any] = {
            'loads': 0,
            'saves': 0,
            'errors': 0,
            'last_write_time': None,
        }
        self._saver: Optional[DebouncedSaver] = None
        if state_path:
            self._read_file()
            self._saver = DebouncedSaver(self._write_file, interval_ms=debounce_ms)

    # --- key-value interface ---

    def load_player_record(self, persistent_id: str) -> Optional[dict]:
        with self._lock:
            self._stats['loads'] += 1
            rec = self._records.get(persistent_id)
            return copy.deepcopy(rec) if rec is not None else None

    def save_player_record(self, persistent_id: str, record: dict) -> None:
        if not persistent_id:
            raise ValueError("persistent_id is required")
        now = utc_now_iso()
        with self._lock:
            stored = self._records.setdefault(persistent_id, {})
            for key, value in record.items():
                stored[key] = copy.deepcopy(value)
            stored['lastSeen'] = now
            stored.setdefault('createdAt', now)
            self._stats['saves'] += 1
            self._dirty = True
        self._schedule_write()

    def touch_last_seen(self, persistent_id: str) -> None:
        with self._lock:
            stored = self._records.get(persistent_id)
            if stored is None:
                return
            stored['lastSeen'] = utc_now_iso()
            self._dirty = True
        self._schedule_write()

    # --- file handling ---

    def _schedule_write(self) -> None:
        if self._saver is not None:
            self._saver.debounce()

    def flush(self) -> None:
        if self._saver is not None:
            self._saver.flush()

    def _read_file(self) -> None:
        assert self._path is not None
        if not os.path.exists(self._path):
            return
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self._stats['errors'] += 1
            logger.error("Failed to read player records from %s: %s", self._path, e)
            return
        players = data.get('players') if isinstance(data, dict) else None
        if isinstance(players, dict):
            self._records = {str(k): v for k, v in players.items() if isinstance(v, dict)}
        logger.info("Loaded %d player records from %s", len(self._records), self._path)

    def _write_file(self) -> None:
        if self._path is None:
            return
        with self._lock:
            if not self._dirty:
                return
            snapshot = {'players': copy.deepcopy(self._records)}
            self._dirty = False
        try:
            folder = os.path.dirname(self._path)
            if folder:
                os.makedirs(folder, exist_ok=True)
            tmp_path = self._path + '.tmp'
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path)
            self._stats['last_write_time'] = time.time()
        except (OSError, TypeError, ValueError) as e:
            with self._lock:
                self._stats['errors'] += 1
                # Keep the data marked dirty so the next debounce retries the whole document
                self._dirty = True
            logger.error("Failed to write player records to %s: %s", self._path, e)

    def get_save_stats(self) -> Dict[str, Any]:
        """Counters for monitoring: loads, saves, errors, last_write_time, records."""
        with self._lock:
            return {**self._stats, 'records': len(self._records)}
