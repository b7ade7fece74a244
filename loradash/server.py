import logging
import os
import sqlite3
import time

from flask import Flask, abort, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from . import config
from .readings import Metric, format_fecha, from_millis, parse_fecha, to_millis
from .relay import IngestionRelay
from .renderer import PlotlyRenderer
from .segmenter import segment
from .store import ReadingStore
from .viewport import VisibleWindow, y_autorange

log = logging.getLogger("loradash.server")

HISTORY_EVENT = 'historico'


def _int_arg(name, default, maximum=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    value = int(raw)
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    if maximum is not None:
        value = min(value, maximum)
    return value


def _time_arg(name, default):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    value = parse_fecha(raw)
    if value is None:
        raise ValueError(f"{name} is not a valid ISO-8601 date: {raw!r}")
    return value


def create_app(store=None, clock=time.time, public_dir=None):
    """Builds the Flask app, its Socket.IO channel and the MQTT relay feeding it.

    The relay is created but not started; ``app.py`` starts it once the
    database is ready.
    """
    store = store or ReadingStore()
    public_dir = os.path.abspath(public_dir or config.PUBLIC_DIR)

    app = Flask(__name__, static_folder=None)
    CORS(app)
    socketio = SocketIO(app, cors_allowed_origins='*', async_mode='threading')
    relay = IngestionRelay(store, socketio.emit, clock=clock)
    renderer = PlotlyRenderer()
    app.extensions['loradash'] = {'store': store, 'relay': relay, 'socketio': socketio}

    # --- Push channel ---
    @socketio.on('connect')
    def send_history(auth=None):
        try:
            records = store.latest(config.HISTORY_SEED)
        except sqlite3.Error as e:
            log.error("Could not load history for new viewer: %s", e)
            records = []
        emit(HISTORY_EVENT, records)

    # --- Flask API Endpoints ---
    @app.route('/api/data/latest', methods=['GET'])
    def latest_data():
        try:
            limit = _int_arg('limit', config.LATEST_LIMIT, maximum=config.ALL_LIMIT)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        try:
            return jsonify(store.latest(limit))
        except sqlite3.Error as e:
            log.error("latest query failed: %s", e)
            return jsonify({'error': 'Error obteniendo los datos'}), 500

    @app.route('/api/data/all', methods=['GET'])
    def all_data():
        try:
            limit = _int_arg('limit', config.ALL_LIMIT, maximum=config.ALL_LIMIT)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        try:
            return jsonify(store.all(limit))
        except sqlite3.Error as e:
            log.error("all query failed: %s", e)
            return jsonify({'error': 'Error obteniendo todos los datos'}), 500

    @app.route('/api/data/chunk', methods=['GET'])
    def chunk_data():
        try:
            skip = _int_arg('skip', 0)
            limit = _int_arg('limit', config.CHUNK_LIMIT, maximum=config.CHUNK_LIMIT)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        try:
            return jsonify(store.chunk(skip, limit))
        except sqlite3.Error as e:
            log.error("chunk query failed: %s", e)
            return jsonify({'error': 'Error obteniendo los datos'}), 500

    @app.route('/api/data/range', methods=['GET'])
    def range_data():
        try:
            metric = Metric.from_key(request.args.get('var', ''))
            start = _time_arg('start', from_millis(0))
            end = _time_arg('end', from_millis(clock() * 1000))
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        try:
            return jsonify(store.range(metric, start, end))
        except sqlite3.Error as e:
            log.error("range query failed: %s", e)
            return jsonify({'error': 'Error obteniendo los datos'}), 500

    @app.route('/api/chart/<var>', methods=['GET'])
    def chart(var):
        now = from_millis(clock() * 1000)
        try:
            metric = Metric.from_key(var)
            end = _time_arg('end', now)
            start = _time_arg('start', from_millis(to_millis(end) - config.INITIAL_DAYS * config.DAY_MS))
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        try:
            records = store.range(metric, start, end)
        except sqlite3.Error as e:
            log.error("chart query failed: %s", e)
            return jsonify({'error': 'Error obteniendo los datos'}), 500

        points = [(to_millis(r['fecha']), r[metric.key]) for r in records]
        start_ms, end_ms = to_millis(start), to_millis(end)
        bounds = y_autorange(points, start_ms, end_ms) or (None, None)
        window = VisibleWindow(start_ms, end_ms, *bounds)
        fig = renderer.render(metric, segment(points, config.GAP_MS), window)
        return app.response_class(fig.to_json(), mimetype='application/json')

    @app.route('/api/status', methods=['GET'])
    def status():
        try:
            records = store.count()
        except sqlite3.Error as e:
            log.error("count query failed: %s", e)
            return jsonify({'error': 'Error obteniendo los datos'}), 500
        last = relay.last_message_at
        live = last is not None and clock() - last <= config.FRESHNESS_TIMEOUT_S
        return jsonify({
            'records': records,
            'last_message_at': format_fecha(from_millis(last * 1000)) if last is not None else None,
            'live': live,
        })

    # --- Static dashboard assets ---
    @app.route('/')
    def index():
        if not os.path.isfile(os.path.join(public_dir, 'index.html')):
            abort(404)
        return send_from_directory(public_dir, 'index.html')

    @app.route('/<path:filename>')
    def public_file(filename):
        return send_from_directory(public_dir, filename)

    return app
