from fair_charge.api.server import app


def test_version_endpoint_corpus_metadata():
    with app.test_client() as c:
        r = c.get('/version')
        assert r.status_code == 200
        data = r.get_json()
        assert data['version'] == '0.1.0'
        assert data['embedding_backend'] == 'hashing'
        corpus = data['corpus']
        for key in ['source', 'version_stamp', 'num_rules']:
            assert key in corpus
        assert corpus['num_rules'] > 0


def test_api_version_alias():
    with app.test_client() as c:
        assert c.get('/api/version').get_json()['version'] == c.get('/version').get_json()['version']


def test_verdict_counter_is_exported():
    with app.test_client() as c:
        c.post('/api/analyze', json={"data": {"chargeType": "other"}})
        body = c.get('/metrics').get_data(as_text=True)
        assert 'fair_charge_verdicts_total{status="insufficient_info"}' in body
        assert 'fair_charge_request_latency_seconds' in body
