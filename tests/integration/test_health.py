def test_health_root(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True}


def test_health_details(client):
    data = client.get("/health/details").json()
    assert data["ok"] is True
    assert set(data["gateways"]) == {"stripe", "paystack"}
    # Lifespan en mode test: limiter désactivé
    assert data["rate_limit"]["enabled"] is False
