import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.config import CompletionConfig
from app.db import crud
from app.errors import Conflict, DatabaseError, Forbidden, InvalidId, NotFound, Unauthorized, ValidationFailed
from app.services.job_completion import JobCompletionService

SIGNATURE = "https://storage.example.com/signatures/sig.png"


class RecordingBroadcaster:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def broadcast(self, channel, event, payload):
        if self.fail:
            raise RuntimeError("realtime down")
        self.sent.append((channel, event, payload))
        return 1


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def service(session_factory, broadcaster):
    return JobCompletionService(session_factory, broadcaster, CompletionConfig())


async def _reload(session_factory, job_id):
    async with session_factory() as db:
        return await crud.get_job(db, job_id)


async def test_complete_happy_path(service, session_factory, seed, make_job, broadcaster):
    job = await make_job()
    payload = {
        "signature_url": SIGNATURE,
        "checklist": [{"item": "Check levels", "completed": True}],
        "parts_used": [{"name": "Filter", "quantity": 1, "cost": 200}],
        "engineer_notes": "All good",
    }
    result = await service.complete(job.id, payload, seed.contexts["engineer"])

    assert result.job.status == "completed"
    assert result.job.client_signature_url == SIGNATURE
    assert result.job.service_checklist == [{"item": "Check levels", "completed": True}]
    assert result.job.parts_used == [{"name": "Filter", "quantity": 1.0, "cost": 200.0}]
    assert result.job.engineer_notes == "All good"
    assert result.payment is not None
    assert result.payment.amount == 2500.0
    assert result.payment.status == "pending"
    assert result.payment_created is True
    assert result.engineer_availability_restored is True
    assert result.checklist_validated is True
    assert result.completed_by == seed.engineer_id

    async with session_factory() as db:
        eng = await crud.get_engineer(db, seed.engineer_id)
        assert eng.availability_status == "available"
        history = await crud.list_status_history(db, job.id)
        assert [(h.status, h.changed_by) for h in history] == [("completed", seed.engineer_id)]
        assert history[0].notes == "Job completed with client signature"

    events = [(c, e) for c, e, _ in broadcaster.sent]
    assert (f"job:{job.id}", "job_completed") in events
    assert (f"engineer:{seed.engineer_id}", "stop_location_tracking") in events


async def test_unsupplied_artifacts_stay_absent(service, session_factory, seed, make_job):
    job = await make_job()
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    assert result.checklist_validated is False
    assert result.job.service_checklist is None
    assert result.job.parts_used is None
    assert result.job.engineer_notes is None


async def test_requires_session(service, make_job):
    job = await make_job()
    with pytest.raises(Unauthorized):
        await service.complete(job.id, {"signature_url": SIGNATURE}, None)


async def test_viewer_forbidden(service, seed, make_job):
    job = await make_job()
    with pytest.raises(Forbidden):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["viewer"])


async def test_unassigned_engineer_forbidden(service, session_factory, seed, make_job):
    job = await make_job()
    with pytest.raises(Forbidden):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["other_engineer"])
    assert (await _reload(session_factory, job.id)).status == "onsite"


async def test_invalid_id(service, seed):
    with pytest.raises(InvalidId):
        await service.complete("not-a-uuid", {"signature_url": SIGNATURE}, seed.contexts["admin"])


async def test_unknown_job(service, seed):
    with pytest.raises(NotFound):
        await service.complete(
            "00000000-0000-0000-0000-000000000000", {"signature_url": SIGNATURE}, seed.contexts["admin"],
        )


@pytest.mark.parametrize("payload", [
    {"signature_url": SIGNATURE},
    {"signature_url": "not-a-url", "checklist": [{"item": "X", "completed": False}]},
    {},
])
async def test_completed_job_conflicts_regardless_of_payload(service, session_factory, seed, make_job, payload):
    job = await make_job(status="completed")
    with pytest.raises(Conflict, match="already completed"):
        await service.complete(job.id, payload, seed.contexts["admin"])
    reloaded = await _reload(session_factory, job.id)
    assert reloaded.client_signature_url is None


async def test_cancelled_job_conflicts(service, seed, make_job):
    job = await make_job(status="cancelled")
    with pytest.raises(Conflict, match="cancelled"):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["admin"])


async def test_incomplete_checklist_blocks_transition(service, session_factory, seed, make_job, broadcaster):
    job = await make_job()
    payload = {"signature_url": SIGNATURE, "checklist": [{"item": "X", "completed": False}]}
    with pytest.raises(ValidationFailed, match="1 checklist item"):
        await service.complete(job.id, payload, seed.contexts["engineer"])
    assert (await _reload(session_factory, job.id)).status == "onsite"
    assert broadcaster.sent == []


async def test_malformed_signature_blocks_transition(service, session_factory, seed, make_job):
    job = await make_job()
    with pytest.raises(ValidationFailed) as exc_info:
        await service.complete(job.id, {"signature_url": "not-a-url"}, seed.contexts["engineer"])
    assert "signature_url" in exc_info.value.details
    assert (await _reload(session_factory, job.id)).status == "onsite"


async def test_signature_host_allow_list(session_factory, seed, make_job, broadcaster):
    service = JobCompletionService(
        session_factory, broadcaster, CompletionConfig(signature_allowed_hosts=["supabase.co"]),
    )
    job = await make_job()
    with pytest.raises(ValidationFailed):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])

    result = await service.complete(
        job.id, {"signature_url": "https://proj.supabase.co/sig.png"}, seed.contexts["engineer"],
    )
    assert result.job.status == "completed"


@pytest.mark.parametrize("fee, with_agency", [(0, True), (None, True), (2500.0, False)])
async def test_payment_skipped_without_fee_or_agency(service, seed, make_job, fee, with_agency):
    job = await make_job(service_fee=fee, assigned_agency_id=seed.agency_id if with_agency else None)
    # Without an agency only the assigned engineer can reach the job
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    assert result.payment is None
    assert result.payment_created is False
    assert result.job.status == "completed"


async def test_no_engineer_means_no_restore_and_no_tracking_event(service, seed, make_job, broadcaster):
    job = await make_job(assigned_engineer_id=None)
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["manager"])
    assert result.engineer_availability_restored is False
    assert [e for _, e, _ in broadcaster.sent] == ["job_completed"]


async def test_engineer_update_failure_is_not_fatal(service, seed, make_job, monkeypatch):
    async def boom(*args, **kwargs):
        raise SQLAlchemyError("engineers table unavailable")

    monkeypatch.setattr(crud, "set_engineer_availability", boom)
    job = await make_job()
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    assert result.job.status == "completed"
    assert result.engineer_availability_restored is False
    assert result.payment_created is True


async def test_payment_failure_is_not_fatal(service, seed, make_job, monkeypatch):
    async def boom(*args, **kwargs):
        raise SQLAlchemyError("payments table unavailable")

    monkeypatch.setattr(crud, "create_payment", boom)
    job = await make_job()
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    assert result.job.status == "completed"
    assert result.payment is None
    assert result.payment_created is False
    assert result.engineer_availability_restored is True


async def test_history_and_broadcast_failures_are_not_fatal(session_factory, seed, make_job, monkeypatch):
    async def boom(*args, **kwargs):
        raise SQLAlchemyError("history unavailable")

    monkeypatch.setattr(crud, "add_status_history", boom)
    service = JobCompletionService(session_factory, RecordingBroadcaster(fail=True))
    job = await make_job()
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    assert result.job.status == "completed"
    assert result.payment_created is True


async def test_transition_failure_is_fatal(service, session_factory, seed, make_job, broadcaster, monkeypatch):
    async def boom(*args, **kwargs):
        raise SQLAlchemyError("write failed")

    monkeypatch.setattr(crud, "update_job_if_status", boom)
    job = await make_job()
    with pytest.raises(DatabaseError):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])

    assert broadcaster.sent == []
    async with session_factory() as db:
        assert await crud.list_payments_for_job(db, job.id) == []
        assert await crud.list_status_history(db, job.id) == []
        eng = await crud.get_engineer(db, seed.engineer_id)
        assert eng.availability_status == "on_job"


async def test_concurrent_status_change_is_conflict(service, session_factory, seed, make_job, broadcaster, monkeypatch):
    async def lost_race(*args, **kwargs):
        return None

    monkeypatch.setattr(crud, "update_job_if_status", lost_race)
    job = await make_job()
    with pytest.raises(Conflict):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    assert broadcaster.sent == []


async def test_second_completion_is_conflict(service, seed, make_job):
    job = await make_job()
    await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])
    with pytest.raises(Conflict, match="already completed"):
        await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["engineer"])


async def test_response_shape(service, seed, make_job):
    job = await make_job()
    result = await service.complete(job.id, {"signature_url": SIGNATURE}, seed.contexts["admin"])
    body = result.to_response().model_dump(mode="json")
    assert body["job"]["status"] == "completed"
    assert body["payment"]["amount"] == 2500.0
    assert body["metadata"]["signature_uploaded"] is True
    assert body["metadata"]["completed_by"] == seed.contexts["admin"].user_id
    assert set(body["metadata"]) == {
        "completed_at", "completed_by", "signature_uploaded", "checklist_validated",
        "engineer_availability_restored", "payment_created",
    }
