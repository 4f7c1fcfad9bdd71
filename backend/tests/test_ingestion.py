import pytest

from errors import NotFound, ValidationFailed
from ingestion import ClientInfo, ResponseIngestor
from models import AnalyticsEvent, Form, FormField, ResponseAnswer
from schemas import AnswerIn, SubmissionMetadata

def _published(db, n_required=2):
    form = Form(user_id="ingest_user", title="Ingest", status="published")
    form.fields = [
        FormField(type="text", label=f"Q{i}", position=i, validation={"required": True})
        for i in range(n_required)
    ]
    db.add(form)
    db.commit()
    return form

def _answers(form, value="ok"):
    return [AnswerIn(fieldId=f.id, value=value) for f in form.fields]

def test_submit_writes_response_answers_counter_and_event(db):
    form = _published(db, n_required=3)
    resp = ResponseIngestor(db).submit(form.id, _answers(form), SubmissionMetadata(),
                                       ClientInfo(ip_address="127.0.0.1"))

    db.refresh(form)
    assert form.response_count == 1
    assert resp.completed is True
    assert resp.ip_address == "127.0.0.1"
    assert db.query(ResponseAnswer).filter_by(response_id=resp.id).count() == 3
    events = db.query(AnalyticsEvent).filter_by(form_id=form.id).all()
    assert [(e.event_type, e.response_id) for e in events] == [("submit", resp.id)]

def test_validation_failure_leaves_no_rows(db):
    form = _published(db)
    with pytest.raises(ValidationFailed) as exc:
        ResponseIngestor(db).submit(form.id, _answers(form)[:1], SubmissionMetadata())
    assert list(exc.value.errors) == [form.fields[1].id]

    db.refresh(form)
    assert form.response_count == 0
    assert form.responses == []
    assert db.query(AnalyticsEvent).filter_by(form_id=form.id).count() == 0

def test_repeated_field_answers_are_all_stored(db):
    form = _published(db, n_required=1)
    f = form.fields[0]
    resp = ResponseIngestor(db).submit(form.id, [AnswerIn(fieldId=f.id, value="a"), AnswerIn(fieldId=f.id, value="b")],
                                       SubmissionMetadata())
    assert [(a.field_id, a.value) for a in resp.answers] == [(f.id, "a"), (f.id, "b")]

def test_repeated_field_is_validated_by_first_answer(db):
    form = _published(db, n_required=1)
    f = form.fields[0]
    with pytest.raises(ValidationFailed) as exc:
        ResponseIngestor(db).submit(form.id, [AnswerIn(fieldId=f.id, value=""), AnswerIn(fieldId=f.id, value="b")],
                                    SubmissionMetadata())
    assert exc.value.errors == {f.id: "This field is required"}
    db.refresh(form)
    assert form.responses == []

def test_archived_form_rejected(db):
    form = _published(db)
    form.status = "archived"
    db.commit()
    with pytest.raises(NotFound):
        ResponseIngestor(db).submit(form.id, _answers(form), SubmissionMetadata())

def test_hooks_run_after_commit_and_failures_are_contained(db):
    form = _published(db, n_required=1)
    seen = []

    def record(f, response_id):
        seen.append((f.id, response_id, f.response_count))

    def broken(f, response_id):
        raise RuntimeError("notifier down")

    resp = ResponseIngestor(db, hooks=[broken, record]).submit(form.id, _answers(form), SubmissionMetadata())
    assert seen == [(form.id, resp.id, 1)]
