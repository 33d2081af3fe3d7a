from app.engine import turns
from app.engine.catalog import ActionKind, Role
from app.services.persistence import JsonResultSink


def test_results_written_once_per_ranked_game(table, tmp_path):
    t = table({"a": [Role.DUKE, Role.CAPTAIN], "b": [Role.CONTESSA, Role.ASSASSIN]}, coins={"a": 7})
    sink = JsonResultSink(root=tmp_path / "results")
    t.engine.sink = sink

    t.p("b").influences[0].revealed = True
    t.engine.declare("a", ActionKind.COUP, "b")
    t.engine.reveal_influence("b", 1)

    saved = sink.load_all()
    assert len(saved) == 1
    data = saved[0]
    assert data["room_code"] == "TEST01"
    assert data["winner_id"] == "a"
    assert data["duration_seconds"] == 0.0
    assert [p["placement"] for p in data["placements"]] == [1, 2]
    assert "password" not in data["settings"]
    assert data["players"][0]["stats"]["coups_enacted"] == 1


def test_load_all_on_missing_directory(tmp_path):
    assert JsonResultSink(root=tmp_path / "absent").load_all() == []


def test_result_model_duration(table):
    t = table({"a": [Role.DUKE, Role.CAPTAIN], "b": [Role.CONTESSA, Role.ASSASSIN]})
    turns.forfeit_player(t.room, t.p("a"))
    result = turns.build_result(t.room)
    assert result.started_at == result.ended_at == 1000.0
