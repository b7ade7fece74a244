import json
import sqlite3
from types import SimpleNamespace

from loradash.relay import NEW_READING_EVENT, IngestionRelay

from conftest import NOW_S


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, data):
        self.events.append((event, data))


class FailingStore:
    def insert(self, reading):
        raise sqlite3.OperationalError("database is locked")


def test_payload_is_persisted_then_broadcast(store, clock):
    broadcast = Recorder()
    relay = IngestionRelay(store, broadcast, clock=clock)
    doc = relay.handle_payload(json.dumps({'humedad': 41.5, 'pH': 6.1}).encode())

    assert store.count() == 1
    assert broadcast.events == [(NEW_READING_EVENT, doc)]
    assert doc['ph'] == 6.1
    assert relay.last_message_at == NOW_S


def test_missing_fecha_uses_relay_clock(store, clock):
    relay = IngestionRelay(store, Recorder(), clock=clock)
    doc = relay.handle_payload(b'{"temperatura": 20}')
    assert doc['fecha'] == '2023-11-14T22:13:20.000Z'


def test_malformed_json_is_dropped(store, clock):
    broadcast = Recorder()
    relay = IngestionRelay(store, broadcast, clock=clock)
    assert relay.handle_payload(b'{humedad: 1') is None
    assert relay.handle_payload(b'\xff\xfe') is None
    assert relay.handle_payload(b'[1, 2, 3]') is None
    assert store.count() == 0
    assert broadcast.events == []


def test_store_failure_skips_broadcast(clock):
    broadcast = Recorder()
    relay = IngestionRelay(FailingStore(), broadcast, clock=clock)
    assert relay.handle_payload(b'{"humedad": 1}') is None
    assert broadcast.events == []


def test_on_message_never_raises(clock):
    def exploding(event, data):
        raise RuntimeError("socket gone")

    class OkStore:
        def insert(self, reading):
            return reading.to_document(id=1)

    relay = IngestionRelay(OkStore(), exploding, clock=clock)
    msg = SimpleNamespace(topic='lora/sensores', payload=b'{"humedad": 1}')
    relay.on_message(None, None, msg)


def test_on_connect_subscribes_to_topic(store):
    subscribed = []
    client = SimpleNamespace(subscribe=subscribed.append)
    relay = IngestionRelay(store, Recorder(), topic='campo/1')
    relay.on_connect(client, None, {}, 0)
    relay.on_connect(client, None, {}, 5)
    assert subscribed == ['campo/1']


def test_one_message_one_document_one_broadcast(store, clock):
    broadcast = Recorder()
    relay = IngestionRelay(store, broadcast, clock=clock)
    for i in range(5):
        relay.handle_payload(json.dumps({'fecha': 1700000000 + i, 'humedad': i}).encode())
    assert store.count() == 5
    assert len(broadcast.events) == 5
