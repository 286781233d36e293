import json
import queue
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from fivegsim import obspub
from fivegsim.ipv4 import build_icmp_echo_reply, build_icmp_echo_request
from fivegsim.ue.observe import describe_packet, emit_downlink_obs, emit_uplink_obs


@pytest.fixture
def observatory():
    received = queue.Queue()

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length") or 0)
            received.put((self.path, json.loads(self.rfile.read(length))))
            self.send_response(202)
            self.end_headers()

        def log_message(self, format, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    obspub.configure(f"http://127.0.0.1:{server.server_address[1]}")
    yield received
    obspub.configure("")
    server.shutdown()
    server.server_close()


def test_describe_echo_request():
    pkt = build_icmp_echo_request("10.45.0.2", "10.100.0.1", 1, 1)
    assert describe_packet(pkt) == "10.45.0.2 → 10.100.0.1 (ICMP echo request) 28 bytes"


def test_describe_echo_reply_swaps_direction():
    reply = build_icmp_echo_reply(build_icmp_echo_request("10.45.0.2", "10.100.0.1", 1, 1))
    summary = describe_packet(reply)
    assert summary.startswith("10.100.0.1 → 10.45.0.2")
    assert "(ICMP echo reply)" in summary


def test_describe_tcp_packet():
    pkt = bytearray(build_icmp_echo_request("10.45.0.2", "10.100.0.1", 1, 1))
    pkt[9] = 6
    assert "(TCP)" in describe_packet(bytes(pkt))


def test_describe_rejects_non_ipv4():
    assert describe_packet(b"\x45" * 10) is None
    pkt = bytearray(build_icmp_echo_request("10.45.0.2", "10.100.0.1", 1, 1))
    pkt[0] = 0x60
    assert describe_packet(bytes(pkt)) is None


def test_emit_uplink(observatory):
    pkt = build_icmp_echo_request("10.45.0.2", "10.100.0.1", 1, 1)
    emit_uplink_obs("10.45.0.2", "imsi-001010000000001", 0xABCD, pkt)
    path, event = observatory.get(timeout=2)
    assert path == "/api/v1/events"
    assert event["kind"] == "packet"
    assert event["type"] == describe_packet(pkt)
    assert event["fields"]["supi"] == "imsi-001010000000001"
    assert event["fields"]["teid"] == "0x0000ABCD"
    assert event["fields"]["direction"] == "ul"


def test_emit_downlink(observatory):
    reply = build_icmp_echo_reply(build_icmp_echo_request("10.45.0.2", "10.100.0.1", 1, 1))
    emit_downlink_obs("imsi-001010000000001", 1, reply)
    _, event = observatory.get(timeout=2)
    assert event["fields"]["direction"] == "dl"
    assert event["detail"] == describe_packet(reply)
    assert event["from"] != event["to"]