import json
import threading
import urllib.request

import pytest

from fivegsim.ipv4 import build_icmp_echo_request, internet_checksum
from fivegsim.upf.config import Config
from fivegsim.upf.core import UPF, SessionRequest, UPFSession, byte_size, teid_hex


class Recorder:
    def __init__(self):
        self.sent = []
        self.injected = []

    def send(self, addr, teid, pkt):
        self.sent.append((addr, teid, pkt))

    def inject(self, pkt):
        self.injected.append(pkt)


INNER_UDP = bytes([
    0x45, 0x00, 0x00, 0x14,
    0x00, 0x00, 0x00, 0x00,
    0x40, 0x11, 0x00, 0x00,
    0x0A, 0x00, 0x00, 0x01,
    0x08, 0x08, 0x08, 0x08,
])


def test_session_registration():
    rec = Recorder()
    upf = UPF(Config(gtp_port=0), rec.send)
    upf.register_session(UPFSession(teid=1, ue_ip_address="10.0.0.1"))
    assert upf.session(1).ue_ip_address == "10.0.0.1"
    assert upf.session_by_ue_ip("10.0.0.1").teid == 1


def test_receives_gtpu_and_injects_to_n6():
    rec = Recorder()
    upf = UPF(Config(), rec.send, rec.inject)
    upf.register_session(UPFSession(teid=0xABCD, ue_ip_address="10.0.0.1"))
    assert upf.handle_gpdu(0xABCD, ("127.0.0.1", 2152), INNER_UDP) is True
    assert rec.injected == [INNER_UDP]
    assert len(rec.injected[0]) == len(INNER_UDP)


def test_unknown_teid_dropped():
    rec = Recorder()
    upf = UPF(Config(), rec.send, rec.inject)
    assert upf.handle_gpdu(99, None, INNER_UDP) is False
    assert rec.injected == []


def test_icmp_echo_reply_without_n6():
    rec = Recorder()
    upf = UPF(Config(gtp_port=0), rec.send)
    gnb = ("127.0.0.1", 40000)
    sess = UPFSession(teid=0xFF00, ue_ip_address="10.0.0.5", gnb_addr=gnb, gn_teid=0xFF01)
    upf.register_session(sess)
    req = build_icmp_echo_request("10.0.0.5", "10.0.0.254", 1, 1)
    assert upf.handle_gpdu(0xFF00, gnb, req) is True
    assert len(rec.sent) == 1
    addr, teid, reply = rec.sent[0]
    assert addr == gnb
    assert teid == 0xFF01
    assert reply[20] == 0x00
    assert reply[12:16] == bytes([10, 0, 0, 254])
    assert reply[16:20] == bytes([10, 0, 0, 5])
    assert internet_checksum(reply[:20]) == 0
    assert internet_checksum(reply[20:]) == 0


def test_echo_reply_needs_gnb_address():
    rec = Recorder()
    upf = UPF(Config(), rec.send)
    upf.register_session(UPFSession(teid=5, ue_ip_address="10.0.0.5"))
    req = build_icmp_echo_request("10.0.0.5", "10.0.0.254", 1, 1)
    assert upf.handle_gpdu(5, None, req) is False
    assert rec.sent == []


def test_short_uplink_dropped():
    rec = Recorder()
    upf = UPF(Config(), rec.send, rec.inject)
    sess = UPFSession(teid=1)
    assert upf.handle_uplink_packet(sess, None, b"\x45" * 10) is False
    assert rec.injected == []


def test_n6_packet_routed_by_destination():
    rec = Recorder()
    upf = UPF(Config(), rec.send, rec.inject)
    gnb = ("127.0.0.1", 2153)
    upf.register_session(UPFSession(teid=3, ue_ip_address="10.0.0.5", gnb_addr=gnb, gn_teid=7))
    pkt = build_icmp_echo_request("8.8.8.8", "10.0.0.5", 1, 1)
    assert upf.handle_n6_packet(pkt) is True
    assert rec.sent == [(gnb, 7, pkt)]


def test_n6_packet_without_session_dropped():
    rec = Recorder()
    upf = UPF(Config(), rec.send, rec.inject)
    pkt = build_icmp_echo_request("8.8.8.8", "10.0.0.9", 1, 1)
    assert upf.handle_n6_packet(pkt) is False
    assert rec.sent == []


def test_pfcp_create_session():
    rec = Recorder()
    upf = UPF(Config(), rec.send)
    body = json.dumps({"ulTeid": 17, "dlTeid": 0, "gnbAddress": "", "ueIpAddress": "10.0.0.1"})
    reply = upf.handle_pfcp_request("POST", "/pfcp-sim/v1/sessions", body.encode())
    assert reply.status == 201
    assert json.loads(reply.body) == {"status": "ok"}
    sess = upf.session(17)
    assert sess.ue_ip_address == "10.0.0.1"
    assert sess.gnb_addr is None


def test_pfcp_update_existing_session():
    rec = Recorder()
    upf = UPF(Config(), rec.send)
    upf.register_session(UPFSession(teid=17, ue_ip_address="10.0.0.1"))
    body = json.dumps({"ulTeid": 17, "dlTeid": 33, "gnbAddress": "10.1.1.1:2153",
                       "ueIpAddress": "10.0.0.2"})
    reply = upf.handle_pfcp_request("POST", "/pfcp-sim/v1/sessions", body.encode())
    assert reply.status == 201
    sess = upf.session(17)
    assert sess.gnb_addr == ("10.1.1.1", 2153)
    assert sess.gn_teid == 33
    assert upf.session_by_ue_ip("10.0.0.1") is None
    assert upf.session_by_ue_ip("10.0.0.2") is sess


def test_pfcp_delete_session():
    rec = Recorder()
    upf = UPF(Config(), rec.send)
    upf.register_session(UPFSession(teid=42, ue_ip_address="10.0.0.3"))
    reply = upf.handle_pfcp_request("DELETE", "/pfcp-sim/v1/sessions/42")
    assert reply.status == 204
    assert upf.session(42) is None
    assert upf.session_by_ue_ip("10.0.0.3") is None


@pytest.mark.parametrize(
    "method,path,status",
    [
        ("GET", "/pfcp-sim/v1/sessions", 405),
        ("POST", "/pfcp-sim/v1/sessions/1", 405),
        ("GET", "/nowhere", 404),
        ("GET", "/health", 200),
    ],
)
def test_pfcp_routing(method, path, status):
    upf = UPF(Config(), Recorder().send)
    assert upf.handle_pfcp_request(method, path).status == status


def test_pfcp_bad_json():
    upf = UPF(Config(), Recorder().send)
    reply = upf.handle_pfcp_request("POST", "/pfcp-sim/v1/sessions", b"{nope")
    assert reply.status == 400
    assert upf.session(0) is None


def test_session_request_from_dict():
    req = SessionRequest.from_dict({"ulTeid": 1, "dlTeid": 2, "gnbAddress": "a:1",
                                    "ueIpAddress": "10.0.0.1"})
    assert req == SessionRequest(1, 2, "a:1", "10.0.0.1")
    with pytest.raises(ValueError):
        SessionRequest.from_dict({"ulTeid": "1"})
    with pytest.raises(ValueError):
        SessionRequest.from_dict({"ulTeid": 1 << 32})


def test_byte_size_and_teid_hex():
    assert byte_size(1) == "1 byte"
    assert byte_size(0) == "0 bytes"
    assert byte_size(28) == "28 bytes"
    assert teid_hex(0xABCD) == "0x0000ABCD"
    assert teid_hex(0) == "0x00000000"


def test_pfcp_server_over_http():
    upf = UPF(Config(), Recorder().send)
    server = upf.make_pfcp_server("127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        port = server.server_address[1]
        body = json.dumps({"ulTeid": 9, "ueIpAddress": "10.0.0.9"}).encode()
        request = urllib.request.Request(
            f"http://127.0.0.1:{port}/pfcp-sim/v1/sessions",
            data=body, method="POST", headers={"Content-Type": "application/json"},
        )
        with urllib.request.urlopen(request, timeout=5) as resp:
            assert resp.status == 201
        assert upf.session(9).ue_ip_address == "10.0.0.9"
    finally:
        server.shutdown()
        server.server_close()