import threading

from fastapi.testclient import TestClient

from probeapp.metrics import FailureMetrics


def test_unseen_vendor_reads_zero():
    metrics = FailureMetrics(runtime_collectors=False)

    assert metrics.failures("acme") == 0


def test_record_failure_counts_per_vendor():
    metrics = FailureMetrics(runtime_collectors=False)

    for _ in range(3):
        metrics.record_failure("acme")
    metrics.record_failure("globex")

    assert metrics.failures("acme") == 3
    assert metrics.failures("globex") == 1


def test_render_exposition_format():
    metrics = FailureMetrics(runtime_collectors=False)
    metrics.record_failure("acme")
    metrics.record_failure("acme")

    text = metrics.render().decode()

    assert "# HELP error_curl_total Total curl request failed" in text
    assert "# TYPE error_curl_total counter" in text
    assert 'error_curl_total{vendor="acme"} 2.0' in text


def test_instances_do_not_share_counters():
    first = FailureMetrics(runtime_collectors=False)
    second = FailureMetrics(runtime_collectors=False)

    first.record_failure("acme")

    assert second.failures("acme") == 0


def test_concurrent_increments_are_not_lost():
    metrics = FailureMetrics(runtime_collectors=False)

    def hammer():
        for _ in range(200):
            metrics.record_failure("acme")

    threads = [threading.Thread(target=hammer) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert metrics.failures("acme") == 2000


def test_metrics_endpoint(client, app):
    app.state.metrics.record_failure("acme")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'error_curl_total{vendor="acme"} 1.0' in response.text


def test_metrics_endpoint_includes_runtime_collectors(make_app):
    app = make_app(metrics=FailureMetrics())

    with TestClient(app) as client:
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "python_info" in response.text
