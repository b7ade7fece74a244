import json
import logging
import sqlite3
import time

import paho.mqtt.client as mqtt

from . import config
from .readings import SensorReading

log = logging.getLogger("loradash.relay")

NEW_READING_EVENT = 'nuevoDato'


class IngestionRelay:
    """Persists each MQTT reading and re-broadcasts it to connected viewers.

    ``broadcast`` is any ``callable(event, data)``; in the server it is
    ``SocketIO.emit``. One message gives one document and one broadcast.
    """

    def __init__(self, store, broadcast, topic=config.MQTT_TOPIC, clock=time.time):
        self.store = store
        self.broadcast = broadcast
        self.topic = topic
        self.clock = clock
        self.last_message_at = None
        self.client = None

    # --- MQTT Client Logic ---
    def on_connect(self, client, userdata, flags, rc):
        if rc == 0:
            log.info("Connected to MQTT broker, subscribing to %s", self.topic)
            client.subscribe(self.topic)
        else:
            log.error("Failed to connect to MQTT, return code %s", rc)

    def on_disconnect(self, client, userdata, rc):
        if rc != 0:
            log.warning("Unexpected MQTT disconnect (rc=%s), paho will reconnect", rc)

    def on_message(self, client, userdata, msg):
        log.debug("Received message from topic `%s`", msg.topic)
        try:
            self.handle_payload(msg.payload)
        except Exception:
            log.exception("Error processing MQTT message")

    def handle_payload(self, payload):
        """Decode, persist and broadcast one message. Returns the stored document or None."""
        try:
            text = payload.decode() if isinstance(payload, (bytes, bytearray)) else payload
            data = json.loads(text)
        except (UnicodeDecodeError, ValueError) as e:
            log.warning("Dropping malformed message: %s", e)
            return None
        if not isinstance(data, dict):
            log.warning("Dropping message that is not a JSON object: %r", data)
            return None

        now = self.clock()
        self.last_message_at = now
        reading = SensorReading.from_payload(data, now=now)
        try:
            doc = self.store.insert(reading)
        except sqlite3.Error as e:
            log.error("Could not persist reading, skipping broadcast: %s", e)
            return None

        log.info("Reading stored at %s", doc['fecha'])
        self.broadcast(NEW_READING_EVENT, doc)
        return doc

    def start(self, broker=config.MQTT_BROKER, port=config.MQTT_PORT,
              username=config.MQTT_USERNAME, password=config.MQTT_PASSWORD):
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION1)
        if username:
            client.username_pw_set(username, password)
        client.on_connect = self.on_connect
        client.on_disconnect = self.on_disconnect
        client.on_message = self.on_message
        self.client = client
        try:
            client.connect(broker, port, 60)
            client.loop_start()
        except (OSError, ValueError) as e:
            log.error("Could not connect to MQTT broker %s:%s: %s", broker, port, e)
        return client

    def stop(self):
        if self.client is not None:
            self.client.loop_stop()
            self.client.disconnect()
            self.client = None
