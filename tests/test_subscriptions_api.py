from app.models.payment import Payment, PaymentStatus
from app.models.subscription import Subscription, SubscriptionStatus
from app.services import audit_log


def _subscribe(client, headers, plan, proof, method="gcash", reference="REF1"):
    form = {"plan_id": str(plan.id), "payment_method": method}
    if reference is not None:
        form["reference_number"] = reference
    files = {"payment_proof": proof} if proof else None
    return client.post("/subscriptions", data=form, files=files, headers=headers)


def test_member_subscribes_and_admin_verifies(client, db, member, admin, make_plan, auth_headers, png_proof, upload_dir):
    plan = make_plan(price="1200.00", duration_months=1)

    created = _subscribe(client, auth_headers(member), plan, png_proof)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "success"
    assert body["message"] == "Subscription created successfully. Please wait for payment verification."
    payment_id = body["data"]["payment_id"]

    payment = db.get(Payment, payment_id)
    assert payment.payment_proof.startswith("payments/")
    assert (upload_dir / payment.payment_proof).exists()

    verified = client.post(f"/payments/{payment_id}/verify", headers=auth_headers(admin))
    assert verified.status_code == 200
    assert verified.json()["data"]["status"] == SubscriptionStatus.active.value
    assert verified.json()["data"]["payment_status"] == PaymentStatus.verified.value

    mine = client.get("/subscriptions/me", headers=auth_headers(member)).json()["data"]
    assert mine["count"] == 1
    assert mine["subscriptions"][0]["plan_name"] == plan.name
    assert mine["subscriptions"][0]["latest_payment"]["status"] == PaymentStatus.verified.value


def test_cash_subscription_needs_no_proof(client, member, make_plan, auth_headers):
    plan = make_plan()

    response = _subscribe(client, auth_headers(member), plan, None, method="cash", reference=None)

    assert response.status_code == 201
    assert response.json()["data"]["reference_number"].startswith("CASH-")


def test_gcash_without_reference_is_invalid(client, member, make_plan, auth_headers, png_proof, upload_dir):
    plan = make_plan()

    response = _subscribe(client, auth_headers(member), plan, png_proof, reference=None)

    assert response.status_code == 422
    assert response.json()["status"] == "error"
    assert not (upload_dir / "payments").exists() or not any((upload_dir / "payments").iterdir())


def test_bank_without_proof_is_invalid(client, db, member, make_plan, auth_headers):
    plan = make_plan()

    response = _subscribe(client, auth_headers(member), plan, None, method="bank", reference=None)

    assert response.status_code == 422
    assert response.json()["data"]["error"] == "validation"
    assert db.query(Subscription).count() == 0


def test_disguised_upload_is_refused(client, db, member, make_plan, auth_headers):
    plan = make_plan()
    proof = ("receipt.png", b"<?php echo 'hi'; ?>", "image/png")

    response = _subscribe(client, auth_headers(member), plan, proof)

    assert response.status_code == 422
    assert db.query(Payment).count() == 0


def test_duplicate_subscription_discards_uploaded_proof(client, member, make_plan, auth_headers, png_proof, upload_dir):
    plan = make_plan()
    headers = auth_headers(member)
    assert _subscribe(client, headers, plan, png_proof).status_code == 201

    response = _subscribe(client, headers, plan, png_proof, reference="REF2")

    assert response.status_code == 409
    assert response.json()["data"]["code"] == "DuplicateActiveSubscription"
    assert len(list((upload_dir / "payments").iterdir())) == 1


def test_reject_then_reprocess_is_a_conflict(client, db, member, staff, make_plan, auth_headers, png_proof):
    plan = make_plan()
    payment_id = _subscribe(client, auth_headers(member), plan, png_proof).json()["data"]["payment_id"]
    headers = auth_headers(staff)

    rejected = client.post(f"/payments/{payment_id}/reject", json={"reason": "blurry proof"}, headers=headers)
    again = client.post(f"/payments/{payment_id}/verify", headers=headers)

    assert rejected.status_code == 200
    assert rejected.json()["data"]["status"] == SubscriptionStatus.cancelled.value
    assert again.status_code == 409
    assert again.json()["message"] == "Payment not found or already processed"
    db.expire_all()
    assert db.get(Payment, payment_id).rejection_reason == "blurry proof"


def test_member_cannot_verify(client, member, make_plan, auth_headers, png_proof):
    plan = make_plan()
    headers = auth_headers(member)
    payment_id = _subscribe(client, headers, plan, png_proof).json()["data"]["payment_id"]

    response = client.post(f"/payments/{payment_id}/verify", headers=headers)

    assert response.status_code == 403


def test_members_only_see_their_own_payments(client, member, other_member, make_plan, auth_headers, png_proof):
    plan = make_plan()
    payment_id = _subscribe(client, auth_headers(member), plan, png_proof).json()["data"]["payment_id"]

    assert client.get(f"/payments/{payment_id}", headers=auth_headers(member)).status_code == 200
    assert client.get(f"/payments/{payment_id}", headers=auth_headers(other_member)).status_code == 403


def test_front_desk_flow(client, db, member, other_member, staff, make_plan, auth_headers):
    plan = make_plan(price="3300.00", duration_months=3)
    headers = auth_headers(staff)

    opened = client.post("/subscriptions/admin", json={"user_id": member.id, "plan_id": plan.id}, headers=headers)
    assert opened.status_code == 201
    subscription_id = opened.json()["data"]["subscription_id"]

    latest = client.get(f"/subscriptions/{subscription_id}/payments/latest", headers=headers).json()["data"]["payment"]
    assert latest["payment_method"] == "cash"
    assert latest["status"] == PaymentStatus.pending.value

    verified = client.post(f"/payments/{latest['id']}/verify", headers=headers)
    assert verified.status_code == 200
    assert verified.json()["data"]["status"] == SubscriptionStatus.active.value

    sold = client.post("/subscriptions/admin/activate", json={"user_id": other_member.id, "plan_id": plan.id}, headers=headers)
    assert sold.status_code == 201
    assert sold.json()["data"]["status"] == SubscriptionStatus.active.value

    sold_id = sold.json()["data"]["subscription_id"]
    latest = client.get(f"/subscriptions/{sold_id}/payments/latest", headers=auth_headers(other_member))
    assert latest.json()["data"]["payment"]["payment_method"] == "admin"
    assert latest.json()["data"]["payment"]["status"] == PaymentStatus.verified.value


def test_front_desk_open_requires_plan_and_member(client, member, staff, auth_headers):
    response = client.post("/subscriptions/admin", json={"user_id": member.id}, headers=auth_headers(staff))

    assert response.status_code == 422


class _CrashingAuditSession:
    def add(self, _):
        raise RuntimeError("audit model misconfigured")

    def rollback(self):
        pass

    def close(self):
        pass


def test_audit_crash_keeps_committed_proof(client, db, member, make_plan, auth_headers, png_proof, upload_dir, monkeypatch):
    plan = make_plan()
    monkeypatch.setattr(audit_log, "SessionLocal", _CrashingAuditSession)

    response = _subscribe(client, auth_headers(member), plan, png_proof)

    assert response.status_code == 201
    payment = db.get(Payment, response.json()["data"]["payment_id"])
    assert (upload_dir / payment.payment_proof).exists()


def test_admin_cannot_delete_active_subscription(client, db, member, admin, make_plan, auth_headers, png_proof):
    plan = make_plan()
    payment_id = _subscribe(client, auth_headers(member), plan, png_proof).json()["data"]["payment_id"]
    headers = auth_headers(admin)
    subscription_id = client.post(f"/payments/{payment_id}/verify", headers=headers).json()["data"]["subscription_id"]

    response = client.delete(f"/subscriptions/{subscription_id}", headers=headers)

    assert response.status_code == 409
    assert response.json()["message"] == "Cannot delete active subscriptions"
    assert db.query(Subscription).count() == 1


def test_admin_plan_lifecycle(client, admin, auth_headers):
    headers = auth_headers(admin)

    created = client.post(
        "/plans/admin",
        json={"name": "Quarterly Strength", "duration_months": 3, "price": "3300.00", "features": ["Locker"]},
        headers=headers,
    )
    assert created.status_code == 201
    plan = created.json()["data"]
    assert plan["billing_term"] == "Billed quarterly"
    assert plan["is_active"] is True

    client.post(f"/plans/admin/{plan['id']}/deactivate", headers=headers)
    visible = client.get("/plans", headers=headers).json()["data"]
    assert visible["count"] == 0

    everything = client.get("/plans/admin", params={"include_deleted": True}, headers=headers).json()["data"]
    assert everything["plans"][0]["is_active"] is False


def test_renewal_requires_verified_member(client, make_user, admin, auth_headers):
    unverified = make_user("newbie@ironworksgym.com", is_verified=False)
    headers = auth_headers(admin)

    refused = client.post(f"/members/{unverified.id}/renew", headers=headers)
    assert refused.status_code == 409

    assert client.put(f"/members/{unverified.id}/verify", headers=headers).status_code == 200
    renewed = client.post(f"/members/{unverified.id}/renew", headers=headers)
    assert renewed.status_code == 200
    assert renewed.json()["data"]["redirect"] == f"/subscriptions/admin?member_id={unverified.id}"

    logs = client.get("/members/logs", params={"action_type": "member_verified"}, headers=headers).json()["data"]
    assert logs[0]["target_id"] == unverified.id


def test_payment_history_is_owner_or_staff_only(client, member, other_member, staff, make_plan, auth_headers, png_proof):
    plan = make_plan()
    subscription_id = _subscribe(client, auth_headers(member), plan, png_proof).json()["data"]["subscription_id"]

    own = client.get(f"/subscriptions/{subscription_id}/payments", headers=auth_headers(member))
    desk = client.get(f"/subscriptions/{subscription_id}/payments", headers=auth_headers(staff))
    stranger = client.get(f"/subscriptions/{subscription_id}/payments", headers=auth_headers(other_member))

    assert own.json()["data"]["count"] == 1
    assert own.json()["data"]["payments"][0]["reference_number"] == "REF1"
    assert desk.status_code == 200
    assert stranger.status_code == 403
