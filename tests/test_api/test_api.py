"""
HTTP接口测试: 状态码与错误格式
每个测试启动一次应用, 使用内存SQLite并关闭缓存
"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

from dealina.core.config import settings
from dealina.core.redis import redis_manager
from dealina.main import app

OWNER = {"X-User-Id": "user_owner"}
STRANGER = {"X-User-Id": "user_stranger"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "database_url", "sqlite+aiosqlite://")
    monkeypatch.setattr(settings, "db_auto_create", True)
    monkeypatch.setattr(settings, "cache_enabled", False)
    monkeypatch.setattr(settings, "demo_mode", False)

    with TestClient(app) as c:
        yield c


def iso(moment: datetime) -> str:
    return moment.isoformat()


def register(client, headers, name="老王咖啡"):
    response = client.post("/merchants", json={"name": name}, headers=headers)
    assert response.status_code == 201
    return response.json()


def create_deal(client, headers=OWNER, **overrides):
    now = datetime.now(timezone.utc)
    body = {
        "title": "拿铁第二杯半价",
        "discount_value": "50",
        "starts_at": iso(now - timedelta(days=1)),
        "ends_at": iso(now + timedelta(days=7)),
    }
    body.update(overrides)
    return client.post("/deals", json=body, headers=headers)


class TestServiceEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_database_health(self, client):
        body = client.get("/health/database").json()
        assert body["database"] is True
        assert body["overall"] is True

    def test_startup_without_redis_disables_cache(self, monkeypatch):
        monkeypatch.setattr(settings, "database_url", "sqlite+aiosqlite://")
        monkeypatch.setattr(settings, "db_auto_create", True)
        monkeypatch.setattr(settings, "cache_enabled", True)
        monkeypatch.setattr(settings, "demo_mode", False)
        monkeypatch.setattr(settings, "redis_url", "redis://127.0.0.1:1/0")

        with TestClient(app) as c:
            assert redis_manager.redis_pool is None
            assert settings.cache_enabled is False

            body = c.get("/health/database").json()
            assert body["database"] is True
            assert body["overall"] is True

            register(c, OWNER)
            deal = create_deal(c).json()
            assert c.get(f"/deals/{deal['deal_id']}").status_code == 200


class TestDealEndpoints:

    def test_create_and_read(self, client):
        register(client, OWNER)

        response = create_deal(client)
        assert response.status_code == 201
        deal = response.json()
        assert deal["discount_type"] == "percentage"

        assert client.get(f"/deals/{deal['deal_id']}").json()["title"] == "拿铁第二杯半价"
        assert client.get(f"/deals/code/{deal['short_code'].lower()}").json()["deal_id"] == deal["deal_id"]

    def test_create_without_login(self, client):
        response = create_deal(client, headers={})
        assert response.status_code == 401
        assert response.json()["ok"] is False

    def test_create_without_merchant(self, client):
        response = create_deal(client, headers=STRANGER)
        assert response.status_code == 403
        assert response.json()["error"] == "MerchantNotFound"

    def test_invalid_body(self, client):
        register(client, OWNER)
        response = create_deal(client, title="")
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unknown_deal(self, client):
        response = client.get("/deals/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "DealNotFound"

    def test_update_and_deactivate(self, client):
        register(client, OWNER)
        register(client, STRANGER, name="隔壁")
        deal = create_deal(client).json()

        response = client.patch(f"/deals/{deal['deal_id']}", json={"title": "新标题"}, headers=OWNER)
        assert response.status_code == 200
        assert response.json()["title"] == "新标题"

        response = client.patch(f"/deals/{deal['deal_id']}", json={"title": "抢来的"}, headers=STRANGER)
        assert response.status_code == 403
        assert response.json()["error"] == "NotOwner"

        assert client.delete(f"/deals/{deal['deal_id']}", headers=OWNER).status_code == 200
        assert client.get(f"/deals/{deal['deal_id']}").status_code == 404

    def test_repost_not_expired(self, client):
        register(client, OWNER)
        deal = create_deal(client).json()

        response = client.post(f"/deals/{deal['deal_id']}/repost", headers=OWNER)
        assert response.status_code == 409
        assert response.json()["error"] == "DealNotExpired"

    def test_repost_expired(self, client):
        register(client, OWNER)
        now = datetime.now(timezone.utc)
        deal = create_deal(
            client,
            starts_at=iso(now - timedelta(days=30)),
            ends_at=iso(now - timedelta(days=2))
        ).json()

        response = client.post(f"/deals/{deal['deal_id']}/repost", headers=OWNER)
        assert response.status_code == 201
        assert response.json()["reposted_from_id"] == deal["deal_id"]

        listed = client.get("/merchant/deals", headers=OWNER).json()
        assert len(listed) == 2


class TestRedemptionEndpoints:

    def test_issue_preview_confirm(self, client):
        register(client, OWNER)
        deal = create_deal(client, max_redemptions=5).json()

        response = client.post(f"/deals/{deal['deal_id']}/redemptions")
        assert response.status_code == 201
        code = response.json()["code"]

        preview = client.post("/redemptions/preview", json={"code": code}, headers=OWNER)
        assert preview.status_code == 200
        assert preview.json()["state"] == "READY"

        confirmed = client.post("/redemptions/confirm", json={"code": code}, headers=OWNER)
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "REDEEMED"

        again = client.post("/redemptions/confirm", json={"code": code}, headers=OWNER)
        assert again.status_code == 409
        assert again.json()["error"] == "AlreadyRedeemed"
        assert again.json()["details"]["redeemed_at"] is not None

        availability = client.get(f"/deals/{deal['deal_id']}/availability").json()
        assert availability["left"] == 4
        assert availability["redeemed_count"] == 1

        batch = client.post("/deals/availability", json={"ids": [deal["deal_id"]]}).json()
        assert batch["map"][deal["deal_id"]]["left"] == 4

        feed = client.get("/merchant/redemptions", headers=OWNER).json()
        assert [row["code"] for row in feed] == [code]

    def test_issue_outside_window(self, client):
        register(client, OWNER)
        now = datetime.now(timezone.utc)
        deal = create_deal(client, starts_at=iso(now + timedelta(days=1)), ends_at=iso(now + timedelta(days=2))).json()

        response = client.post(f"/deals/{deal['deal_id']}/redemptions")
        assert response.status_code == 409
        assert response.json()["error"] == "DealNotActive"

    def test_confirm_unknown_code(self, client):
        register(client, OWNER)
        response = client.post("/redemptions/confirm", json={"code": "ZZZZZ"}, headers=OWNER)
        assert response.status_code == 404
        assert response.json()["error"] == "CodeNotFound"

    def test_confirm_requires_login(self, client):
        response = client.post("/redemptions/confirm", json={"code": "ZZZZZ"})
        assert response.status_code == 401

    def test_cooldown_sets_retry_after(self, client):
        register(client, OWNER)
        deal = create_deal(client).json()
        device = {"X-Device-Id": "device-0001-abcdef"}
        issued = client.post(f"/deals/{deal['deal_id']}/redemptions", headers=device).json()
        client.post("/redemptions/confirm", json={"code": issued["code"]}, headers=OWNER)

        response = client.post(f"/deals/{deal['deal_id']}/redemptions", headers=device)
        assert response.status_code == 429
        assert response.json()["error"] == "Cooldown"
        assert int(response.headers["Retry-After"]) >= 1

    def test_qr_payload(self, client):
        register(client, OWNER)
        deal = create_deal(client).json()
        code = client.post(f"/deals/{deal['deal_id']}/redemptions").json()["code"]

        body = client.get(f"/redemptions/{code}/qr").json()
        assert body["code"] == code
        assert f'"dealId":"{deal["deal_id"]}"' in body["payload"]

    def test_qr_payload_echoes_normalized_code(self, client):
        register(client, OWNER)
        deal = create_deal(client).json()
        code = client.post(f"/deals/{deal['deal_id']}/redemptions").json()["code"]

        response = client.get(f"/redemptions/{code[:2].lower()}-{code[2:].lower()}/qr")
        assert response.status_code == 200
        assert response.json()["code"] == code
