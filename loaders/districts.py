"""
District Repository - school districts, closure thresholds and history.

SQLite-backed. Each call opens and closes its own connection so the
repository can be shared across threads.
"""

import json
import time
import sqlite3
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

import numpy as np

from core.config import get_settings
from core.models import ClosureType, District, DistrictThresholds, SchoolClosing
from core.utils import ensure_aware

log = logging.getLogger(__name__)

MIN_CLOSINGS_FOR_LEARNING = 5
LEARNING_WINDOW_YEARS = 3
FALLBACK_DISTRICT_ID = 0


def fallback_district(name: str = "Unknown District") -> District:
    return District(id=FALLBACK_DISTRICT_ID, district_name=name)


class DistrictRepository:
    """SQLite store for districts, thresholds and closure history."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_settings().db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self):
        conn = self._connect()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS districts (
                id INTEGER PRIMARY KEY,
                district_name TEXT NOT NULL,
                district_code TEXT,
                county TEXT,
                zip_codes TEXT,
                city TEXT,
                latitude REAL,
                longitude REAL,
                district_type TEXT,
                enrollment INTEGER
            );
            CREATE TABLE IF NOT EXISTS district_thresholds (
                district_id INTEGER PRIMARY KEY,
                full_closing_snowfall REAL,
                delay_snowfall REAL,
                ice_threshold REAL,
                temperature_threshold REAL,
                wind_threshold REAL,
                total_predictions INTEGER DEFAULT 0,
                correct_predictions INTEGER DEFAULT 0,
                updated_at REAL
            );
            CREATE TABLE IF NOT EXISTS school_closings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                district_id INTEGER NOT NULL,
                closing_date TEXT NOT NULL,
                closure_type TEXT NOT NULL,
                snowfall_amount REAL,
                ice_amount REAL,
                temperature REAL,
                notes TEXT,
                source TEXT
            );
        """)
        conn.commit()
        conn.close()

    # ───────────────────────────────────────────────────────────────────────
    # Districts
    # ───────────────────────────────────────────────────────────────────────
    @staticmethod
    def _row_to_district(row) -> District:
        return District(
            id=row[0],
            district_name=row[1],
            district_code=row[2],
            county=row[3],
            zip_codes=json.loads(row[4]) if row[4] else [],
            city=row[5],
            latitude=row[6],
            longitude=row[7],
            district_type=row[8] or "public",
            enrollment=row[9],
        )

    def add_district(self, district: District) -> District:
        conn = self._connect()
        conn.execute(
            """INSERT OR REPLACE INTO districts
               (id, district_name, district_code, county, zip_codes, city,
                latitude, longitude, district_type, enrollment)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (district.id, district.district_name, district.district_code, district.county,
             json.dumps(district.zip_codes), district.city, district.latitude,
             district.longitude, district.district_type, district.enrollment)
        )
        conn.commit()
        conn.close()
        return district

    def list_districts(self) -> List[District]:
        conn = self._connect()
        rows = conn.execute("SELECT * FROM districts ORDER BY district_name").fetchall()
        conn.close()
        return [self._row_to_district(r) for r in rows]

    def get_district(self, district_id: int) -> Optional[District]:
        conn = self._connect()
        row = conn.execute("SELECT * FROM districts WHERE id = ?", (district_id,)).fetchone()
        conn.close()
        return self._row_to_district(row) if row else None

    def find_by_zip(self, zip_code: str) -> Optional[District]:
        for district in self.list_districts():
            if zip_code in district.zip_codes:
                return district
        return None

    def find_by_name(self, name: str) -> Optional[District]:
        """Exact (case-insensitive) match first, then substring."""
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM districts WHERE lower(district_name) = lower(?)", (name,)
        ).fetchone()
        if row is None:
            row = conn.execute(
                "SELECT * FROM districts WHERE lower(district_name) LIKE lower(?) ORDER BY id",
                (f"%{name}%",)
            ).fetchone()
        conn.close()
        return self._row_to_district(row) if row else None

    def resolve(self, identifier: Union[int, str]) -> District:
        """
        Resolve an id, 5-digit ZIP code or name to a district.

        Unknown identifiers fall back to district id 0 so predictions can
        still run against the default thresholds.
        """
        district = None
        if isinstance(identifier, int):
            district = self.get_district(identifier)
        else:
            text = str(identifier).strip()
            if text.isdigit() and len(text) == 5:
                district = self.find_by_zip(text)
            elif text.isdigit():
                district = self.get_district(int(text))
            if district is None and text:
                district = self.find_by_name(text)

        if district is None:
            log.warning(f"District '{identifier}' not found, using defaults")
            return fallback_district()
        return district

    # ───────────────────────────────────────────────────────────────────────
    # Thresholds
    # ───────────────────────────────────────────────────────────────────────
    def get_thresholds(self, district_id: int) -> DistrictThresholds:
        """District thresholds, or the defaults when none are stored."""
        conn = self._connect()
        row = conn.execute(
            """SELECT full_closing_snowfall, delay_snowfall, ice_threshold,
                      temperature_threshold, wind_threshold, total_predictions,
                      correct_predictions
               FROM district_thresholds WHERE district_id = ?""",
            (district_id,)
        ).fetchone()
        conn.close()
        if row is None:
            return DistrictThresholds(district_id=district_id)
        return DistrictThresholds(district_id, *row)

    def save_thresholds(self, thresholds: DistrictThresholds):
        conn = self._connect()
        conn.execute(
            """INSERT OR REPLACE INTO district_thresholds
               (district_id, full_closing_snowfall, delay_snowfall, ice_threshold,
                temperature_threshold, wind_threshold, total_predictions,
                correct_predictions, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (thresholds.district_id, thresholds.full_closing_snowfall, thresholds.delay_snowfall,
             thresholds.ice_threshold, thresholds.temperature_threshold, thresholds.wind_threshold,
             thresholds.total_predictions, thresholds.correct_predictions, time.time())
        )
        conn.commit()
        conn.close()

    def record_outcome(self, district_id: int, correct: bool) -> DistrictThresholds:
        """Count a scored prediction against the district's track record."""
        thresholds = self.get_thresholds(district_id)
        thresholds.total_predictions += 1
        if correct:
            thresholds.correct_predictions += 1
        self.save_thresholds(thresholds)
        return thresholds

    # ───────────────────────────────────────────────────────────────────────
    # Closure history
    # ───────────────────────────────────────────────────────────────────────
    def add_closing(self, closing: SchoolClosing):
        conn = self._connect()
        conn.execute(
            """INSERT INTO school_closings
               (district_id, closing_date, closure_type, snowfall_amount,
                ice_amount, temperature, notes, source)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (closing.district_id, closing.closing_date.isoformat(), closing.closure_type.value,
             closing.snowfall_amount, closing.ice_amount, closing.temperature,
             closing.notes, closing.source)
        )
        conn.commit()
        conn.close()

    def get_closings(
        self,
        district_id: int,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[SchoolClosing]:
        """Closures for a district, newest first, optionally limited to the last `days`."""
        query = """SELECT district_id, closing_date, closure_type, snowfall_amount,
                          ice_amount, temperature, notes, source
                   FROM school_closings WHERE district_id = ?"""
        params: list = [district_id]
        if days is not None:
            since = ensure_aware(now).date() - timedelta(days=days)
            query += " AND closing_date >= ?"
            params.append(since.isoformat())
        query += " ORDER BY closing_date DESC"

        conn = self._connect()
        rows = conn.execute(query, params).fetchall()
        conn.close()
        return [
            SchoolClosing(
                district_id=r[0],
                closing_date=date.fromisoformat(r[1]),
                closure_type=ClosureType(r[2]),
                snowfall_amount=r[3],
                ice_amount=r[4],
                temperature=r[5],
                notes=r[6],
                source=r[7] or "manual",
            )
            for r in rows
        ]

    def learn_thresholds(self, district_id: int, now: Optional[datetime] = None) -> Optional[DistrictThresholds]:
        """
        Derive snowfall thresholds from the district's own closure history.

        Uses the median snowfall of full closings and of delays over the
        last three years. Needs at least five recorded closures; returns
        None (and leaves stored thresholds untouched) otherwise.
        """
        history = self.get_closings(district_id, days=365 * LEARNING_WINDOW_YEARS, now=now)
        if len(history) < MIN_CLOSINGS_FOR_LEARNING:
            log.info(
                f"District {district_id} has {len(history)} closings, "
                f"need {MIN_CLOSINGS_FOR_LEARNING} to learn thresholds"
            )
            return None

        full = [c.snowfall_amount for c in history
                if c.closure_type == ClosureType.FULL_CLOSING and c.snowfall_amount is not None]
        delays = [c.snowfall_amount for c in history
                  if c.closure_type == ClosureType.DELAY and c.snowfall_amount is not None]

        defaults = DistrictThresholds()
        thresholds = self.get_thresholds(district_id)
        thresholds.full_closing_snowfall = float(np.median(full)) if full else defaults.full_closing_snowfall
        thresholds.delay_snowfall = float(np.median(delays)) if delays else defaults.delay_snowfall
        self.save_thresholds(thresholds)

        log.info(
            f"Learned thresholds for district {district_id}: closing "
            f"{thresholds.full_closing_snowfall:.1f}\", delay {thresholds.delay_snowfall:.1f}\""
        )
        return thresholds


# Singleton
_repository: Optional[DistrictRepository] = None


def get_district_repository() -> DistrictRepository:
    """Get or create the district repository."""
    global _repository
    if _repository is None:
        _repository = DistrictRepository()
    return _repository
