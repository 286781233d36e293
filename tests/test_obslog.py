import json

import pytest

from fivegsim import obslog


@pytest.fixture
def log_path(tmp_path):
    path = tmp_path / "sim.jsonl"
    obslog.init_file(path)
    yield path
    obslog.close()


def _read_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_info_written_to_jsonl(log_path):
    obslog.Logger("AMF").info(
        "NGSetupRequest received", "TS 38.413 §9.2.6.1", "gnb", "gNB-001", "tac", "000001"
    )
    obslog.close()
    records = _read_lines(log_path)
    assert len(records) == 1
    rec = records[0]
    assert rec["component"] == "AMF"
    assert rec["msg"] == "NGSetupRequest received"
    assert rec["specRef"] == "TS 38.413 §9.2.6.1"
    assert rec["fields"] == {"gnb": "gNB-001", "tac": "000001"}
    assert rec["level"] == "INFO "


def test_levels_and_odd_kvpairs(log_path):
    logger = obslog.Logger("SMF")
    logger.debug("d", "")
    logger.warn("w", "", "a", "1", "dangling")
    logger.error("e", "")
    obslog.close()
    records = _read_lines(log_path)
    assert [r["level"] for r in records] == [
        obslog.Level.DEBUG.label,
        obslog.Level.WARN.label,
        obslog.Level.ERROR.label,
    ]
    assert "specRef" not in records[0]
    assert "fields" not in records[0]
    assert records[1]["fields"] == {"a": "1"}


def test_close_stops_file_output(log_path):
    obslog.Logger("UE").info("before", "")
    obslog.close()
    obslog.Logger("UE").info("after", "")
    messages = [r["msg"] for r in _read_lines(log_path)]
    assert messages == ["before"]


def test_publish_hook_receives_entries():
    seen = []
    previous = obslog.set_publish_hook(seen.append)
    try:
        obslog.Logger("UPF").info("hello", "TS 29.281", "k", "v")
    finally:
        restored = obslog.set_publish_hook(previous)
    assert restored == seen.append
    assert len(seen) == 1
    assert seen[0].component == "UPF"
    assert seen[0].message == "hello"
    assert seen[0].fields == {"k": "v"}


def test_console_output(capsys):
    obslog.Logger("gNB").info("link up", "TS 38.412", "peer", "AMF")
    out = capsys.readouterr().out
    assert "[gNB]" in out
    assert "link up" in out
    assert "peer=AMF" in out
    assert "[TS 38.412]" in out


def test_entry_to_dict_round_trips_through_json():
    logger_entries = []
    previous = obslog.set_publish_hook(logger_entries.append)
    try:
        obslog.Logger("NRF").error("boom", "spec", "x", "y")
    finally:
        obslog.set_publish_hook(previous)
    data = json.loads(json.dumps(logger_entries[0].to_dict()))
    assert data["msg"] == "boom"
    assert data["fields"] == {"x": "y"}
    assert data["ts"] == logger_entries[0].timestamp.isoformat()