"""
Health log persistence.

The health log is the only durable state: an ordered, append-only JSON array
of measurement records. Everything else (baselines, weekly statistics) is
derived from it at read time.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable

from opentelemetry import trace
from pydantic import ValidationError

from statpulse.exceptions import HealthLogWriteError
from statpulse.models.measurement_record import MeasurementRecord

try:
    import fcntl
except ImportError:
    fcntl = None  # Windows fallback: in-process lock only

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@runtime_checkable
class HealthLogStore(Protocol):
    """Persistence boundary for measurement records."""

    def load(self) -> List[MeasurementRecord]:
        """Return every stored record in append order."""
        ...

    def append(self, record: MeasurementRecord) -> None:
        """Append one record. Appending a record already present is a no-op."""
        ...

    def append_many(self, records: Sequence[MeasurementRecord]) -> None:
        """Append records in order as one write."""
        ...


def _record_key(record: MeasurementRecord) -> Tuple[str, str]:
    return record.endpoint.value, record.timestamp.isoformat()


def _new_records(
    existing: Iterable[MeasurementRecord], records: Sequence[MeasurementRecord]
) -> List[MeasurementRecord]:
    seen: Set[Tuple[str, str]] = {_record_key(r) for r in existing}
    fresh = []
    for record in records:
        key = _record_key(record)
        if key in seen:
            logger.info("Skipping duplicate record for %s at %s", *key)
            continue
        seen.add(key)
        fresh.append(record)
    return fresh


class InMemoryHealthLog:
    """
    In-memory implementation of HealthLogStore.

    Used by tests and dry runs where nothing should touch the filesystem.
    """

    def __init__(self, records: Iterable[MeasurementRecord] = ()):
        self._records: List[MeasurementRecord] = list(records)
        self._lock = threading.Lock()

    def load(self) -> List[MeasurementRecord]:
        with self._lock:
            return list(self._records)

    def append(self, record: MeasurementRecord) -> None:
        self.append_many([record])

    def append_many(self, records: Sequence[MeasurementRecord]) -> None:
        with self._lock:
            self._records.extend(_new_records(self._records, records))


class JsonFileHealthLog:
    """
    HealthLogStore backed by a single JSON array file.

    Reads are lenient: a missing file is empty history, an unreadable or
    non-array file is empty history with a warning, and malformed entries
    are skipped. Writes are strict and raise HealthLogWriteError.

    Writers are serialized with a process-local lock and, where the platform
    supports it, an exclusive flock on a sidecar ``.lock`` file. The array
    is rewritten through a temp file and os.replace so readers never observe
    a half-written document.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def load(self) -> List[MeasurementRecord]:
        with tracer.start_as_current_span("health_log.load") as span:
            span.set_attribute("health_log.path", str(self.path))
            records = self._read_records()
            span.set_attribute("health_log.records", len(records))
            return records

    def append(self, record: MeasurementRecord) -> None:
        self.append_many([record])

    def append_many(self, records: Sequence[MeasurementRecord]) -> None:
        if not records:
            return

        with tracer.start_as_current_span("health_log.append") as span:
            span.set_attribute("health_log.path", str(self.path))
            try:
                with self._exclusive():
                    raw = self._read_raw(strict=True)
                    if raw is None:
                        raw = self._quarantine()
                    existing = self._parse(raw)
                    fresh = _new_records(existing, records)
                    if not fresh:
                        return
                    raw.extend(r.to_dict() for r in fresh)
                    self._write_raw(raw)
            except OSError as e:
                logger.error("Could not write health log %s: %s", self.path, e)
                raise HealthLogWriteError(f"Could not write health log {self.path}: {e}") from e

            span.set_attribute("health_log.appended", len(fresh))
            logger.info("Appended %s record(s) to %s", len(fresh), self.path)

    @contextmanager
    def _exclusive(self):
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if fcntl is None:
                yield
                return
            with open(self.lock_path, "a") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_raw(self, strict: bool = False) -> Optional[list]:
        """
        Raw JSON items. [] when the file is absent or blank, None when it
        exists but is not a readable JSON array. With ``strict``, I/O errors
        propagate instead of degrading to None.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("Health log %s not found, starting with empty history", self.path)
            return []
        except UnicodeDecodeError as e:
            logger.warning("Health log %s is not valid UTF-8 (%s), treating as empty", self.path, e)
            return None
        except OSError as e:
            if strict:
                raise
            logger.warning("Could not read health log %s (%s), treating as empty", self.path, e)
            return None

        if not text.strip():
            return []

        try:
            parsed = json.loads(text)
        except ValueError as e:
            logger.warning("Could not parse health log %s (%s), treating as empty", self.path, e)
            return None

        if not isinstance(parsed, list):
            logger.warning("Health log %s is not an array, treating as empty", self.path)
            return None
        return parsed

    def _read_records(self) -> List[MeasurementRecord]:
        return self._parse(self._read_raw() or [])

    def _parse(self, raw: list) -> List[MeasurementRecord]:
        records = []
        skipped = 0
        for item in raw:
            if not isinstance(item, dict):
                skipped += 1
                continue
            try:
                records.append(MeasurementRecord.from_dict(item))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning("Skipped %s malformed record(s) in %s", skipped, self.path)
        return records

    def _quarantine(self) -> list:
        """
        Move an unreadable log aside so appends can start a fresh array.

        Earlier quarantined copies are never overwritten: the first goes to
        ``<name>.corrupt``, later ones to ``<name>.corrupt.1``, ``.corrupt.2``...
        """
        target = self.path.with_name(self.path.name + ".corrupt")
        n = 0
        while target.exists():
            n += 1
            target = self.path.with_name(f"{self.path.name}.corrupt.{n}")
        os.replace(self.path, target)
        logger.warning("Moved unreadable health log %s to %s", self.path, target)
        return []

    def _write_raw(self, raw: list) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(raw, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
