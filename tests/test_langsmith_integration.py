from langsmith_integration import LangSmithLogger


class FakeClient:
    def __init__(self, fail_update=False):
        self.created = []
        self.updated = []
        self.fail_update = fail_update

    def create_run(self, **kwargs):
        self.created.append(kwargs)

    def update_run(self, run_id, **kwargs):
        if self.fail_update:
            raise RuntimeError("langsmith down")
        self.updated.append((run_id, kwargs))


def test_one_run_carries_all_events():
    client = FakeClient()
    tracer = LangSmithLogger(client=client, project="golf-test")
    run_id = tracer.start_run("chat_turn", {"message": "hi"})
    tracer.log_event("node_started:classify", {"state_keys": ["messages"]})
    tracer.log_event("node_finished:classify")
    assert client.updated == []

    tracer.end_run(outputs={"intent": "Unrecognized"})

    assert len(client.created) == 1
    assert client.created[0]["id"] == run_id
    assert client.created[0]["project_name"] == "golf-test"
    assert client.created[0]["inputs"] == {"message": "hi"}
    assert len(client.updated) == 1
    updated_id, fields = client.updated[0]
    assert updated_id == run_id
    assert [event["name"] for event in fields["extra"]["events"]] == ["node_started:classify", "node_finished:classify"]
    assert fields["outputs"] == {"intent": "Unrecognized"}
    assert fields["error"] is None
    assert fields["end_time"] is not None
    assert tracer.run_id is None


def test_each_run_starts_with_no_events():
    client = FakeClient()
    tracer = LangSmithLogger(client=client)
    tracer.start_run("chat_turn")
    tracer.log_event("first")
    tracer.end_run()
    tracer.start_run("chat_turn")
    tracer.log_event("second")
    tracer.end_run(status="error: boom")

    assert len(client.created) == 2
    assert client.created[0]["id"] != client.created[1]["id"]
    second = client.updated[1][1]
    assert [event["name"] for event in second["extra"]["events"]] == ["second"]
    assert second["error"] == "error: boom"


def test_end_without_run_is_a_no_op():
    client = FakeClient()
    tracer = LangSmithLogger(client=client)
    tracer.log_event("outside a run")
    tracer.end_run()
    assert client.updated == []


def test_failed_update_disables_tracing():
    tracer = LangSmithLogger(client=FakeClient(fail_update=True))
    tracer.start_run("chat_turn")
    tracer.end_run()
    assert tracer.enabled is False


def test_disabled_logger_still_tracks_events(monkeypatch):
    monkeypatch.delenv("LANGSMITH_API_KEY", raising=False)
    tracer = LangSmithLogger()
    assert tracer.enabled is False
    tracer.start_run("chat_turn")
    tracer.log_event("node_started:load_session")
    assert [event["name"] for event in tracer.events] == ["node_started:load_session"]
    tracer.end_run()
    assert tracer.events == []
