import json

from loradash.readings import to_millis

from conftest import HOUR_MS, NOW_MS, NOW_S, make_reading


def _seed(store, times, **values):
    for i, t in enumerate(times):
        store.insert(make_reading(t, humedad=float(i), **values))


def test_latest_defaults_to_ten_ascending(client, store):
    times = [NOW_MS - i * HOUR_MS for i in range(15)]
    _seed(store, times)
    data = client.get('/api/data/latest').get_json()
    got = [to_millis(d['fecha']) for d in data]
    assert got == sorted(times)[-10:]


def test_all_is_descending(client, store):
    times = [NOW_MS - i * HOUR_MS for i in range(4)]
    _seed(store, times)
    data = client.get('/api/data/all').get_json()
    assert [to_millis(d['fecha']) for d in data] == times


def test_chunk_validates_parameters(client, store):
    _seed(store, [NOW_MS - i * HOUR_MS for i in range(6)])
    assert client.get('/api/data/chunk?skip=-1').status_code == 400
    assert client.get('/api/data/chunk?limit=abc').status_code == 400
    data = client.get('/api/data/chunk?skip=2&limit=3').get_json()
    assert len(data) == 3


def test_range_endpoint(client, store):
    times = [NOW_MS - i * HOUR_MS for i in range(5)]
    _seed(store, times)
    resp = client.get('/api/data/range', query_string={
        'var': 'humedad',
        'start': '2023-11-14T19:13:20Z',
        'end': '2023-11-14T22:13:20Z',
    })
    assert resp.status_code == 200
    got = [to_millis(d['fecha']) for d in resp.get_json()]
    assert got == [NOW_MS - 3 * HOUR_MS, NOW_MS - 2 * HOUR_MS, NOW_MS - HOUR_MS]


def test_range_rejects_bad_input(client):
    assert client.get('/api/data/range?var=co2').status_code == 400
    assert client.get('/api/data/range?var=ph&start=ayer').status_code == 400


def test_range_accepts_legacy_ph_casing(client, store):
    store.insert(make_reading(NOW_MS - HOUR_MS, pH=6.2))
    data = client.get('/api/data/range?var=pH').get_json()
    assert data == [{'fecha': '2023-11-14T21:13:20.000Z', 'ph': 6.2}]


def test_chart_endpoint_draws_gap_connector(client, store):
    times = [NOW_MS - 72 * HOUR_MS, NOW_MS - 71 * HOUR_MS, NOW_MS - 2 * HOUR_MS, NOW_MS - HOUR_MS]
    _seed(store, times)
    resp = client.get('/api/chart/humedad')
    assert resp.status_code == 200
    fig = json.loads(resp.data)
    dashes = [t['line']['dash'] for t in fig['data']]
    assert dashes == ['solid', 'dot', 'solid']
    assert fig['layout']['yaxis']['autorange'] is False


def test_chart_endpoint_unknown_metric(client):
    assert client.get('/api/chart/co2').status_code == 400


def test_status_reports_freshness(client, app, clock):
    relay = app.extensions['loradash']['relay']
    assert client.get('/api/status').get_json() == {
        'records': 0, 'last_message_at': None, 'live': False,
    }
    relay.handle_payload(b'{"humedad": 50}')
    status = client.get('/api/status').get_json()
    assert status['records'] == 1 and status['live'] is True
    clock.now = NOW_S + 3600
    assert client.get('/api/status').get_json()['live'] is False


def test_index_served_from_public_dir(client, tmp_path):
    assert client.get('/').status_code == 404
    public = tmp_path / 'public'
    public.mkdir()
    (public / 'index.html').write_text('<h1>Sensores</h1>', encoding='utf-8')
    resp = client.get('/')
    assert resp.status_code == 200
    assert b'Sensores' in resp.data


def test_viewer_gets_history_then_live_readings(app, store):
    _seed(store, [NOW_MS - i * HOUR_MS for i in range(3)])
    ext = app.extensions['loradash']
    viewer = ext['socketio'].test_client(app)
    received = viewer.get_received()
    assert received[0]['name'] == 'historico'
    assert len(received[0]['args'][0]) == 3

    doc = ext['relay'].handle_payload(b'{"temperatura": 19.5}')
    received = viewer.get_received()
    assert [r['name'] for r in received] == ['nuevoDato']
    assert received[0]['args'][0] == doc
    viewer.disconnect()
