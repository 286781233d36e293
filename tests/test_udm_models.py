import pytest

from fivegsim.udm.models import (
    Config,
    ErrorResponse,
    Snssai,
    Subscriber,
    SubscriptionData,
    load_config,
)


def test_error_response_omits_empty_fields():
    problem = ErrorResponse(title="Not Found", status=404)
    assert problem.to_dict() == {"title": "Not Found", "status": 404}


def test_error_response_full():
    problem = ErrorResponse(
        title="Bad Request", status=400, detail="missing supi in path", type="about:blank", instance="/x"
    )
    out = problem.to_dict()
    assert out["type"] == "about:blank"
    assert out["instance"] == "/x"
    assert out["detail"] == "missing supi in path"


def test_snssai_round_trip():
    original = Snssai(sst=1, sd="000001")
    assert Snssai.from_dict(original.to_dict()) == original


def test_snssai_without_sd_omits_key():
    assert "sd" not in Snssai(sst=1).to_dict()


def test_snssai_from_string_values():
    assert Snssai.from_dict({"sst": "2", "sd": "ffffff"}) == Snssai(sst=2, sd="ffffff")


def test_snssai_bad_sst():
    with pytest.raises(ValueError):
        Snssai.from_dict({"sst": "x"})


def test_subscriber_from_yaml_style_entry():
    sub = Subscriber.from_dict(
        {
            "supi": "imsi-001010000000001",
            "enabled": "true",
            "allowed_dnns": ["internet", "ims"],
            "default_snssai": {"sst": "1", "sd": "000001"},
        }
    )
    assert sub.supi == "imsi-001010000000001"
    assert sub.enabled is True
    assert sub.allowed_dnns == ["internet", "ims"]
    assert sub.default_snssai == Snssai(sst=1, sd="000001")


def test_subscriber_from_json_style_entry():
    sub = Subscriber.from_dict(
        {"supi": "imsi-1", "enabled": True, "allowedDnns": ["internet"], "defaultSnssai": {"sst": 1}}
    )
    assert sub.allowed_dnns == ["internet"]
    assert sub.default_snssai.sst == 1


def test_subscriber_enabled_defaults_false():
    assert Subscriber.from_dict({"supi": "imsi-1"}).enabled is False
    assert Subscriber.from_dict({"supi": "imsi-1", "enabled": "yes"}).enabled is True


def test_subscriber_rejects_bad_values():
    with pytest.raises(ValueError):
        Subscriber.from_dict({"supi": "imsi-1", "enabled": "maybe"})
    with pytest.raises(ValueError):
        Subscriber.from_dict(["not", "a", "mapping"])


def test_subscription_data_round_trip():
    data = SubscriptionData(supi="imsi-1", allowed_dnns=["internet"], default_snssai=Snssai(1, "000001"))
    out = data.to_dict()
    assert set(out) == {"supi", "allowedDnns", "defaultSnssai"}
    assert SubscriptionData.from_dict(out) == data


def test_subscription_data_null_dnns():
    data = SubscriptionData.from_dict({"supi": "imsi-1", "allowedDnns": None})
    assert data.allowed_dnns == []


def test_load_config_overlays_defaults(tmp_path):
    path = tmp_path / "udm.yaml"
    path.write_text("port: 9004\nsubscribers_path: subs.yaml\n")
    cfg = load_config(path)
    assert cfg.port == 9004
    assert cfg.subscribers_path == "subs.yaml"
    assert cfg.bind_address == Config().bind_address
    assert cfg.instance_id == "udm-sim-001"


def test_load_config_empty_file_is_default(tmp_path):
    path = tmp_path / "udm.yaml"
    path.write_text("")
    cfg = load_config(path)
    assert cfg == Config()
    assert cfg.port == 8004


def test_load_config_missing_file(tmp_path):
    with pytest.raises(OSError):
        load_config(tmp_path / "missing.yaml")


def test_load_config_bad_values(tmp_path):
    bad_port = tmp_path / "port.yaml"
    bad_port.write_text("port: eighty\n")
    with pytest.raises(ValueError):
        load_config(bad_port)
    bad_yaml = tmp_path / "yaml.yaml"
    bad_yaml.write_text("port: [1, 2\n")
    with pytest.raises(ValueError):
        load_config(bad_yaml)