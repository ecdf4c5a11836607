"""Database tracking for classification runs.

This module records every scored resample, every trained model and every
evaluation of a run in SQLite, so sweeps can be inspected while they run
and after they finish.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class RunDatabase:
    """SQLite database manager for classification runs.

    Uses WAL mode for concurrent read/write access, allowing queries while
    training is in progress.
    """

    def __init__(self, db_path: Path):
        """Initialize database manager.

        Parameters
        ----------
        db_path : Path
            Path to SQLite database file.
        """
        self.db_path = Path(db_path)
        self.timeout = 30.0  # Seconds

    def reset(self) -> None:
        """Delete the database file if it exists to start fresh."""
        if self.db_path.exists():
            self.db_path.unlink()
            logger.info(f"Deleted existing database: {self.db_path}")

    def initialize(self) -> None:
        """Initialize database with required tables and indexes.

        Creates three tables:
        - resample_log: One row per scored (combination, resample) job
        - model_log: One row per trained model
        - evaluation_log: One row per evaluated metric

        Safe to call multiple times - only creates tables if they don't exist.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute('PRAGMA journal_mode=WAL')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS resample_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    model_name TEXT NOT NULL,
                    algorithm TEXT NOT NULL,
                    combination_id INTEGER NOT NULL,
                    params TEXT NOT NULL,
                    resample TEXT NOT NULL,
                    resample_id INTEGER NOT NULL,
                    metric TEXT NOT NULL,
                    value REAL,
                    status TEXT NOT NULL,
                    error TEXT,
                    fit_time_sec REAL
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS model_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    model_name TEXT NOT NULL,
                    algorithm TEXT NOT NULL,
                    params TEXT NOT NULL,
                    metric TEXT NOT NULL,
                    best_score REAL,
                    n_combinations INTEGER NOT NULL,
                    n_failed INTEGER NOT NULL,
                    n_resamples INTEGER NOT NULL,
                    n_features INTEGER NOT NULL,
                    resample_hash TEXT NOT NULL,
                    training_time_sec REAL
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS evaluation_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    model_name TEXT NOT NULL,
                    dataset TEXT NOT NULL,
                    metric TEXT NOT NULL,
                    value REAL
                )
            ''')

            conn.execute('CREATE INDEX IF NOT EXISTS idx_resample_model ON resample_log(model_name)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_model_name ON model_log(model_name)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_evaluation_model ON evaluation_log(model_name)')

            conn.commit()
        finally:
            conn.close()

        logger.info(f"Database initialized at: {self.db_path}")

    def insert_resample(self, resample_data: Dict) -> None:
        """Insert a scored resample record.

        Parameters
        ----------
        resample_data : dict
            Dictionary with required keys: model_name, algorithm,
            combination_id, params, resample, resample_id, metric, value,
            status. Optional: error, fit_time_sec, timestamp.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute('''
                INSERT INTO resample_log (
                    timestamp, model_name, algorithm, combination_id, params,
                    resample, resample_id, metric, value, status, error, fit_time_sec
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', self._resample_row(resample_data))
            conn.commit()
        finally:
            conn.close()

    def insert_resamples(self, records) -> None:
        """Insert many resample records in one transaction."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.executemany('''
                INSERT INTO resample_log (
                    timestamp, model_name, algorithm, combination_id, params,
                    resample, resample_id, metric, value, status, error, fit_time_sec
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', [self._resample_row(record) for record in records])
            conn.commit()
        finally:
            conn.close()

    def insert_model(self, model_data: Dict) -> None:
        """Insert a trained model record.

        Parameters
        ----------
        model_data : dict
            Dictionary with required keys: model_name, algorithm, params,
            metric, best_score, n_combinations, n_failed, n_resamples,
            n_features, resample_hash. Optional: training_time_sec.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute('''
                INSERT INTO model_log (
                    timestamp, model_name, algorithm, params, metric, best_score,
                    n_combinations, n_failed, n_resamples, n_features,
                    resample_hash, training_time_sec
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                model_data.get('timestamp', datetime.now().isoformat()),
                model_data['model_name'],
                model_data['algorithm'],
                model_data['params'],
                model_data['metric'],
                _nullable(model_data['best_score']),
                model_data['n_combinations'],
                model_data['n_failed'],
                model_data['n_resamples'],
                model_data['n_features'],
                model_data['resample_hash'],
                model_data.get('training_time_sec')
            ))
            conn.commit()
        finally:
            conn.close()

    def insert_evaluation(self, model_name: str, dataset: str, metrics: Dict[str, float]) -> None:
        """Insert one row per metric of an evaluation."""
        timestamp = datetime.now().isoformat()
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.executemany('''
                INSERT INTO evaluation_log (timestamp, model_name, dataset, metric, value)
                VALUES (?, ?, ?, ?, ?)
            ''', [
                (timestamp, model_name, dataset, name, _nullable(value))
                for name, value in metrics.items()
            ])
            conn.commit()
        finally:
            conn.close()

    def query_resamples(self, model_name: Optional[str] = None) -> pd.DataFrame:
        """Query resample records, optionally for one model.

        Returns
        -------
        df : pd.DataFrame
            Resample data, empty if no data exists.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            if model_name is None:
                return pd.read_sql_query('SELECT * FROM resample_log ORDER BY id', conn)
            return pd.read_sql_query(
                'SELECT * FROM resample_log WHERE model_name = ? ORDER BY id',
                conn,
                params=(model_name,)
            )
        finally:
            conn.close()

    def query_models(self) -> pd.DataFrame:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            return pd.read_sql_query('SELECT * FROM model_log ORDER BY id', conn)
        finally:
            conn.close()

    def query_evaluations(self, model_name: Optional[str] = None) -> pd.DataFrame:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            if model_name is None:
                return pd.read_sql_query('SELECT * FROM evaluation_log ORDER BY id', conn)
            return pd.read_sql_query(
                'SELECT * FROM evaluation_log WHERE model_name = ? ORDER BY id',
                conn,
                params=(model_name,)
            )
        finally:
            conn.close()

    def exists(self) -> bool:
        return self.db_path.exists()

    def get_size_mb(self) -> float:
        """Get the size of the database file in MB, or 0 if it doesn't exist."""
        if self.db_path.exists():
            return self.db_path.stat().st_size / (1024 * 1024)
        return 0.0

    @staticmethod
    def _resample_row(data: Dict) -> tuple:
        return (
            data.get('timestamp', datetime.now().isoformat()),
            data['model_name'],
            data['algorithm'],
            data['combination_id'],
            data['params'],
            data['resample'],
            data['resample_id'],
            data['metric'],
            _nullable(data['value']),
            data['status'],
            data.get('error'),
            data.get('fit_time_sec')
        )


def _nullable(value) -> Optional[float]:
    # Undefined metrics (NaN) are stored as NULL
    if value is None:
        return None
    value = float(value)
    return None if value != value else value
