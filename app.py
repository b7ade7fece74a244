import argparse
import logging

from loradash import config
from loradash.server import create_app
from loradash.store import ReadingStore

log = logging.getLogger("loradash.app")


def main():
    parser = argparse.ArgumentParser(description="MQTT → SQLite → Socket.IO relay for LoRa soil sensors.")
    parser.add_argument('--host', default=config.HOST)
    parser.add_argument('--port', type=int, default=config.PORT)
    parser.add_argument('--db', default=config.DB_PATH, help="SQLite database path")
    parser.add_argument('--no-mqtt', action='store_true', help="Serve the API without subscribing to MQTT")
    args = parser.parse_args()

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    store = ReadingStore(args.db)
    store.init_db()
    app = create_app(store)
    ext = app.extensions['loradash']

    if not args.no_mqtt:
        log.info("Starting MQTT client (%s:%s, topic %s)...", config.MQTT_BROKER, config.MQTT_PORT, config.MQTT_TOPIC)
        ext['relay'].start()

    log.info("Starting server at http://%s:%s", args.host, args.port)
    try:
        ext['socketio'].run(app, host=args.host, port=args.port, allow_unsafe_werkzeug=True)
    finally:
        ext['relay'].stop()


if __name__ == '__main__':
    main()
