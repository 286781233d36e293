from datetime import datetime, timezone

import pytest

from fivegsim.smf.models import (
    Config,
    ErrorResponse,
    GTPTunnel,
    PDUAddress,
    PDUSessionStatus,
    PDUSessionType,
    SmContext,
    SmContextCreateRequest,
    SmContextCreateResponse,
    SNssai,
    allocate_teid,
    load_config,
)


def test_gtp_tunnel_str_format():
    tunnel = GTPTunnel(upf_address="127.0.0.1:2152", ul_teid=42)
    assert str(tunnel) == "UPF=127.0.0.1:2152 UL-TEID=0x0000002A"


def test_gtp_tunnel_round_trip():
    tunnel = GTPTunnel(upf_address="127.0.0.1:2152", ul_teid=7)
    data = tunnel.to_dict()
    assert data == {"upfAddress": "127.0.0.1:2152", "ulTeid": 7}
    assert GTPTunnel.from_dict(data) == tunnel


def test_gtp_tunnel_rejects_teid_out_of_range():
    with pytest.raises(ValueError):
        GTPTunnel.from_dict({"upfAddress": "x", "ulTeid": 1 << 32})


def test_snssai_omits_empty_sd():
    assert SNssai(sst=1).to_dict() == {"sst": 1}
    assert SNssai.from_dict({"sst": 1, "sd": "000001"}) == SNssai(sst=1, sd="000001")


def test_request_round_trip_and_keys():
    req = SmContextCreateRequest(
        supi="imsi-001010000000001",
        pdu_session_id=1,
        dnn="internet",
        s_nssai=SNssai(sst=1),
        pdu_session_type=PDUSessionType.IPV4,
        serving_nf_id="amf-001",
        serving_network="00101",
    )
    data = req.to_dict()
    assert data["pduSessionId"] == 1
    assert data["pduSessionType"] == "IPV4"
    assert data["sNssai"] == {"sst": 1}
    assert "pei" not in data and "gpsi" not in data and "n1SmMsg" not in data
    assert SmContextCreateRequest.from_dict(data) == req


def test_request_from_dict_parses_session_type():
    req = SmContextCreateRequest.from_dict({"supi": "imsi-002", "pduSessionType": "IPV6"})
    assert req.pdu_session_type is PDUSessionType.IPV6
    assert req.dnn == ""
    assert req.s_nssai == SNssai()


def test_request_from_dict_rejects_wrong_types():
    with pytest.raises(ValueError):
        SmContextCreateRequest.from_dict({"supi": "imsi-001", "pduSessionId": "one"})
    with pytest.raises(ValueError):
        SmContextCreateRequest.from_dict(["not", "an", "object"])


def test_response_round_trip():
    resp = SmContextCreateResponse(
        sm_context_ref="http://127.0.0.1:8001/nsmf-pdusession/v1/sm-contexts/ctx-00001",
        pdu_address=PDUAddress(PDUSessionType.IPV4, ipv4_addr="10.0.0.1"),
        gtp_tunnel=GTPTunnel("127.0.0.1:2152", 3),
    )
    data = resp.to_dict()
    assert data["pduAddress"] == {"pduSessionType": "IPV4", "ipv4Addr": "10.0.0.1"}
    assert "cause" not in data
    assert SmContextCreateResponse.from_dict(data) == resp


def test_response_without_optional_parts():
    resp = SmContextCreateResponse.from_dict({"smContextRef": "ref"})
    assert resp.pdu_address is None
    assert resp.gtp_tunnel is None
    assert resp.to_dict() == {"smContextRef": "ref"}


def test_sm_context_to_dict_uses_field_names():
    ctx = SmContext(
        supi="imsi-001",
        pdu_session_id=1,
        dnn="internet",
        pdu_session_type=PDUSessionType.IPV4,
        allocated_ip="10.0.0.1",
        status=PDUSessionStatus.ACTIVE,
    )
    data = ctx.to_dict()
    assert data["SUPI"] == "imsi-001"
    assert data["Status"] == "ACTIVE"
    assert data["AllocatedIP"] == "10.0.0.1"
    assert data["GTPTunnel"] is None
    assert data["CreatedAt"] == "0001-01-01T00:00:00Z"


def test_sm_context_created_at_is_iso():
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert SmContext(created_at=when).to_dict()["CreatedAt"] == when.isoformat()


def test_error_response_omits_empty_detail():
    assert ErrorResponse("Not Found", 404).to_dict() == {"title": "Not Found", "status": 404}
    assert ErrorResponse("Not Found", 404, "gone").to_dict()["detail"] == "gone"


def test_config_defaults():
    cfg = Config()
    assert cfg.port == 8001
    assert cfg.ip_pool_cidr == "10.0.0.0/24"
    assert cfg.upf_gtp_address == "127.0.0.1:2152"
    assert cfg.upf_pfcp_address == "http://127.0.0.1:8002"


def test_load_config_overlays_defaults(tmp_path):
    path = tmp_path / "smf.yaml"
    path.write_text("port: 9001\nplmn: 00101\nunknown_key: 3\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.port == 9001
    assert cfg.plmn == "00101"
    assert cfg.bind_address == Config().bind_address
    assert cfg.nrf_address == Config().nrf_address


def test_load_config_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == Config()


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/path/smf.yaml")


@pytest.mark.parametrize("content", ["port: abc\n", "port: [1, 2]\n", "- a\n- b\n", "port: [\n"])
def test_load_config_rejects_bad_content(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_allocate_teid_is_sequential():
    first = allocate_teid()
    second = allocate_teid()
    assert first >= 1
    assert second == first + 1