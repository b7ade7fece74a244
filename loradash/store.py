import logging
import sqlite3

from . import config
from .readings import Metric, format_fecha

log = logging.getLogger("loradash.store")

_METRIC_COLUMNS = ', '.join(f'{m.key} REAL' for m in Metric)
_DOC_COLUMNS = ['id', 'fecha'] + [m.key for m in Metric] + ['latitud', 'longitud']


def _row_to_document(row):
    doc = {key: row[key] for key in _DOC_COLUMNS if key in row.keys()}
    if doc.get('latitud') is None or doc.get('longitud') is None:
        doc.pop('latitud', None)
        doc.pop('longitud', None)
    return doc


class ReadingStore:
    """SQLite-backed collection of sensor readings.

    ``fecha`` is stored as a fixed-width UTC ISO string, so ordering and range
    comparisons on the text column follow time order. Every operation opens its
    own short-lived connection, which lets the MQTT thread and the HTTP workers
    share the store.
    """

    def __init__(self, db_path=config.DB_PATH):
        self.db_path = db_path

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    # --- Database Initialization ---
    def init_db(self):
        """Creates the readings table and its time index if they don't exist."""
        conn = self._connect()
        try:
            conn.execute(f'''
                CREATE TABLE IF NOT EXISTS lecturas (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    fecha TEXT NOT NULL,
                    {_METRIC_COLUMNS},
                    latitud REAL,
                    longitud REAL
                )
            ''')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_lecturas_fecha ON lecturas(fecha)')
            conn.commit()
        finally:
            conn.close()
        log.info("Database initialized at %s", self.db_path)

    # --- Writes ---
    def insert(self, reading):
        columns = ['fecha'] + [m.key for m in Metric] + ['latitud', 'longitud']
        values = [format_fecha(reading.fecha)]
        values += [reading.values.get(m) for m in Metric]
        values += [reading.latitud, reading.longitud]
        placeholders = ', '.join('?' for _ in columns)
        conn = self._connect()
        try:
            cursor = conn.execute(
                f"INSERT INTO lecturas ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            conn.commit()
            row_id = cursor.lastrowid
        finally:
            conn.close()
        return reading.to_document(id=row_id)

    # --- Queries ---
    def _fetch(self, sql, params=()):
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return rows

    def count(self):
        return self._fetch('SELECT COUNT(*) AS n FROM lecturas')[0]['n']

    def latest(self, n=config.LATEST_LIMIT):
        """Newest ``n`` readings, oldest first."""
        rows = self._fetch(
            'SELECT * FROM lecturas ORDER BY fecha DESC, id DESC LIMIT ?', (int(n),)
        )
        return [_row_to_document(r) for r in reversed(rows)]

    def all(self, limit=config.ALL_LIMIT):
        """Newest first, as stored; bounded by ``ALL_LIMIT``."""
        limit = min(int(limit), config.ALL_LIMIT)
        rows = self._fetch(
            'SELECT * FROM lecturas ORDER BY fecha DESC, id DESC LIMIT ?', (limit,)
        )
        return [_row_to_document(r) for r in rows]

    def chunk(self, skip=0, limit=config.CHUNK_LIMIT):
        """Page of ``limit`` readings after skipping the ``skip`` newest, oldest first."""
        rows = self._fetch(
            'SELECT * FROM lecturas ORDER BY fecha DESC, id DESC LIMIT ? OFFSET ?',
            (int(limit), int(skip)),
        )
        return [_row_to_document(r) for r in reversed(rows)]

    def range(self, metric, start, end):
        """Readings with ``start <= fecha < end`` that carry a value for ``metric``."""
        metric = Metric.from_key(metric)
        rows = self._fetch(
            f'''
            SELECT fecha, {metric.key} FROM lecturas
            WHERE fecha >= ? AND fecha < ? AND {metric.key} IS NOT NULL
            ORDER BY fecha ASC, id ASC
            ''',
            (format_fecha(start), format_fecha(end)),
        )
        return [{'fecha': r['fecha'], metric.key: r[metric.key]} for r in rows]
