"""
HTTP tests: authentication, error bodies and the end-to-end flows over the API.
"""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from jose import jwt

from core.config import settings
from db.models.task import VerificationType

pytestmark = [pytest.mark.asyncio, pytest.mark.api]


class TestAuth:

    async def test_missing_token(self, async_client: AsyncClient):
        response = await async_client.get("/account")
        assert response.status_code == 401

    async def test_invalid_token(self, async_client: AsyncClient):
        response = await async_client.get("/account", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    async def test_review_requires_admin(self, async_client: AsyncClient, make_account, auth_headers):
        user = await make_account()
        response = await async_client.post(
            "/admin/submissions/1/review",
            json={"decision": "approve"},
            headers=auth_headers(user),
        )
        assert response.status_code == 403

    async def test_expired_token(self, async_client: AsyncClient, make_account):
        user = await make_account()
        claims = {"sub": user, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)}
        token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

        response = await async_client.get("/account", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestAccountEndpoints:

    async def test_read_account_is_never_cached(self, async_client: AsyncClient, make_account, auth_headers):
        user = await make_account(points=42)

        response = await async_client.get("/account", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["points"] == 42
        assert "no-store" in response.headers["cache-control"]

    async def test_unknown_account_error_body(self, async_client: AsyncClient, auth_headers):
        response = await async_client.get("/account", headers=auth_headers("ghost"))

        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"
        assert response.json()["category"] == "not_found"

    async def test_leaderboard_is_public(self, async_client: AsyncClient, make_account):
        top = await make_account(points=99)
        await make_account(points=1)

        response = await async_client.get("/leaderboard")

        assert response.status_code == 200
        assert response.json()[0]["id"] == top


class TestTaskFlow:

    async def test_manual_task_end_to_end(self, async_client: AsyncClient, make_account, make_task, auth_headers):
        user = await make_account(points=0)
        admin = await make_account()
        task_id = await make_task(points=25, required_media=True)

        started = await async_client.post(f"/tasks/{task_id}/start", headers=auth_headers(user))
        assert started.status_code == 201
        assignment_id = started.json()["assignment_id"]

        again = await async_client.post(f"/tasks/{task_id}/start", headers=auth_headers(user))
        assert again.status_code == 409
        assert again.json() == {
            "success": False,
            "error": "AlreadyStarted",
            "category": "conflict",
            "message": "Task already started",
        }

        missing = await async_client.post(f"/tasks/assignments/{assignment_id}/submit", json={}, headers=auth_headers(user))
        assert missing.status_code == 422
        assert missing.json()["error"] == "MissingRequiredMedia"

        submitted = await async_client.post(
            f"/tasks/assignments/{assignment_id}/submit",
            json={"screenshot_ref": "uploads/proof.png", "notes": "done"},
            headers=auth_headers(user),
        )
        assert submitted.status_code == 200
        submission_id = submitted.json()["submission_id"]

        queue = await async_client.get("/admin/submissions/pending", headers=auth_headers(admin, "admin"))
        assert [s["id"] for s in queue.json()] == [submission_id]

        reviewed = await async_client.post(
            f"/admin/submissions/{submission_id}/review",
            json={"decision": "approve"},
            headers=auth_headers(admin, "admin"),
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["total_points"] == 25

        repeat = await async_client.post(
            f"/admin/submissions/{submission_id}/review",
            json={"decision": "approve"},
            headers=auth_headers(admin, "admin"),
        )
        assert repeat.status_code == 409
        assert repeat.json()["error"] == "AlreadyReviewed"

        account = await async_client.get("/account", headers=auth_headers(user))
        assert account.json()["points"] == 25

    async def test_automatic_task_completion(self, async_client: AsyncClient, make_account, make_task, auth_headers):
        user = await make_account(points=0)
        task_id = await make_task(points=15, verification_type=VerificationType.AUTOMATIC)
        assignment_id = (await async_client.post(f"/tasks/{task_id}/start", headers=auth_headers(user))).json()["assignment_id"]

        first = await async_client.post(f"/tasks/assignments/{assignment_id}/complete", headers=auth_headers(user))
        second = await async_client.post(f"/tasks/assignments/{assignment_id}/complete", headers=auth_headers(user))

        assert first.json()["total_points"] == 15
        assert second.json()["already_completed"] is True
        history = await async_client.get("/account/transactions", headers=auth_headers(user))
        assert len(history.json()) == 1

    async def test_invalid_review_decision(self, async_client: AsyncClient, make_account, auth_headers):
        admin = await make_account()
        response = await async_client.post(
            "/admin/submissions/1/review",
            json={"decision": "maybe"},
            headers=auth_headers(admin, "admin"),
        )
        assert response.status_code == 422


class TestRewardFlow:

    async def test_redeem_and_out_of_stock(self, async_client: AsyncClient, make_account, make_reward, auth_headers):
        first = await make_account(points=60)
        second = await make_account(points=60)
        reward_id = await make_reward(points_cost=50, quantity=1)

        catalogue = await async_client.get("/rewards")
        assert [r["id"] for r in catalogue.json()] == [reward_id]

        won = await async_client.post(f"/rewards/{reward_id}/redeem", headers=auth_headers(first))
        assert won.status_code == 200
        assert won.json()["remaining_balance"] == 10

        lost = await async_client.post(f"/rewards/{reward_id}/redeem", headers=auth_headers(second))
        assert lost.status_code == 409
        assert lost.json()["error"] == "OutOfStock"

        history = await async_client.get("/rewards/redemptions", headers=auth_headers(first))
        assert len(history.json()) == 1

    async def test_insufficient_balance(self, async_client: AsyncClient, make_account, make_reward, auth_headers):
        user = await make_account(points=40)
        reward_id = await make_reward(points_cost=50)

        response = await async_client.post(f"/rewards/{reward_id}/redeem", headers=auth_headers(user))

        assert response.status_code == 409
        assert response.json()["error"] == "InsufficientBalance"


class TestReferralFlow:

    async def test_code_apply_and_stats(self, async_client: AsyncClient, make_account, auth_headers):
        referrer = await make_account()
        referred = await make_account()

        code = (await async_client.post("/referrals/code", headers=auth_headers(referrer))).json()["code"]
        applied = await async_client.post("/referrals/apply", json={"referral_code": code}, headers=auth_headers(referred))
        assert applied.status_code == 200
        assert applied.json()["points_earned"] == 10

        again = await async_client.post("/referrals/apply", json={"referral_code": code}, headers=auth_headers(referred))
        assert again.status_code == 409
        assert again.json()["error"] == "AlreadyReferred"

        stats = await async_client.get("/referrals/stats", headers=auth_headers(referrer))
        assert stats.json()["total_referrals"] == 1
        referred_list = await async_client.get("/referrals/referred", headers=auth_headers(referrer))
        assert referred_list.json()[0]["referred_user_id"] == referred

    async def test_self_referral_error_body(self, async_client: AsyncClient, make_account, auth_headers):
        user = await make_account()
        code = (await async_client.post("/referrals/code", headers=auth_headers(user))).json()["code"]

        response = await async_client.post("/referrals/apply", json={"referral_code": code}, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["category"] == "precondition"

    async def test_admin_updates_bonus_and_influencer_status(self, async_client: AsyncClient, make_account, auth_headers):
        admin = await make_account()
        referrer = await make_account()
        referred = await make_account()

        updated = await async_client.put(
            "/admin/referral-settings",
            json={"base_bonus": 5},
            headers=auth_headers(admin, "admin"),
        )
        assert updated.json()["base_bonus"] == 5
        assert updated.json()["influencer_multiplier"] == 2

        status = await async_client.put(
            f"/admin/accounts/{referrer}/status",
            json={"status": "Influencer"},
            headers=auth_headers(admin, "admin"),
        )
        assert status.json()["status"] == "Influencer"

        code = (await async_client.post("/referrals/code", headers=auth_headers(referrer))).json()["code"]
        await async_client.post("/referrals/apply", json={"referral_code": code}, headers=auth_headers(referred))

        referrer_account = await async_client.get("/account", headers=auth_headers(referrer))
        referred_account = await async_client.get("/account", headers=auth_headers(referred))
        assert referrer_account.json()["points"] == 10
        assert referred_account.json()["points"] == 5

    @pytest.mark.parametrize("body", [{"base_bonus": -1}, {"influencer_multiplier": 0}])
    async def test_invalid_settings(self, async_client: AsyncClient, make_account, auth_headers, body):
        admin = await make_account()
        response = await async_client.put("/admin/referral-settings", json=body, headers=auth_headers(admin, "admin"))
        assert response.status_code == 422

    async def test_admin_stats(self, async_client: AsyncClient, make_account, auth_headers):
        admin = await make_account(points=7)
        response = await async_client.get("/admin/stats", headers=auth_headers(admin, "admin"))
        assert response.json()["total_accounts"] == 1
        assert response.json()["total_points"] == 7


class TestAccountRegistration:

    async def test_auth_service_opens_account(self, async_client: AsyncClient, make_account, auth_headers):
        admin = await make_account()

        before = await async_client.get("/account", headers=auth_headers("new-user-1"))
        assert before.status_code == 404

        created = await async_client.post(
            "/admin/accounts",
            json={"account_id": "new-user-1", "username": "newbie"},
            headers=auth_headers(admin, "admin"),
        )
        assert created.status_code == 201
        assert created.json()["points"] == 0
        assert created.json()["status"] == "Normal"

        repeated = await async_client.post(
            "/admin/accounts",
            json={"account_id": "new-user-1", "username": "other"},
            headers=auth_headers(admin, "admin"),
        )
        assert repeated.json()["username"] == "newbie"

        after = await async_client.get("/account", headers=auth_headers("new-user-1"))
        assert after.status_code == 200
        assert after.json()["username"] == "newbie"

    async def test_only_admins_open_accounts(self, async_client: AsyncClient, make_account, auth_headers):
        user = await make_account()
        response = await async_client.post("/admin/accounts", json={"account_id": "x"}, headers=auth_headers(user))
        assert response.status_code == 403

    async def test_account_id_is_required(self, async_client: AsyncClient, make_account, auth_headers):
        admin = await make_account()
        response = await async_client.post("/admin/accounts", json={"account_id": ""}, headers=auth_headers(admin, "admin"))
        assert response.status_code == 422


class TestTaskCatalogueEndpoint:

    async def test_lists_startable_tasks(self, async_client: AsyncClient, make_account, make_task, auth_headers):
        user = await make_account()
        open_task = await make_task(points=30)
        await make_task(expires_in=timedelta(hours=-2))

        catalogue = await async_client.get("/tasks")
        assert catalogue.status_code == 200
        assert [t["id"] for t in catalogue.json()] == [open_task]

        started = await async_client.post(f"/tasks/{catalogue.json()[0]['id']}/start", headers=auth_headers(user))
        assert started.status_code == 201
