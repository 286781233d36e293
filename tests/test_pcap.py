import struct

import pytest

from fivegsim.pcap import (
    LINK_TYPE_ETHERNET,
    LINK_TYPE_LINUX_SLL,
    PCAP_MAGIC,
    PcapWriter,
    build_sctp_frame,
    build_udp_frame,
)


def test_global_header(tmp_path):
    path = tmp_path / "test.pcap"
    w = PcapWriter(path, LINK_TYPE_ETHERNET)
    w.close()

    data = path.read_bytes()
    assert len(data) >= 24
    magic, major, minor = struct.unpack("<IHH", data[0:8])
    assert magic == PCAP_MAGIC
    assert (major, minor) == (2, 4)
    assert struct.unpack("<I", data[20:24])[0] == LINK_TYPE_ETHERNET
    assert struct.unpack("<I", data[16:20])[0] == 65535


def test_write_packet(tmp_path):
    path = tmp_path / "packets.pcap"
    w = PcapWriter(path, LINK_TYPE_ETHERNET)
    payload = bytes([0x01, 0x02, 0x03, 0x04, 0x05])
    w.write_packet(payload)
    w.write_packet(payload)
    assert w.count() == 2
    w.close()

    data = path.read_bytes()
    assert len(data) == 24 + 2 * (16 + 5)
    cap_len, orig_len = struct.unpack("<II", data[24 + 8 : 24 + 16])
    assert cap_len == len(payload)
    assert orig_len == len(payload)
    assert data[24 + 16 : 24 + 16 + 5] == payload


def test_context_manager_closes(tmp_path):
    path = tmp_path / "ctx.pcap"
    with PcapWriter(path, LINK_TYPE_LINUX_SLL) as w:
        w.write_packet(b"\xaa")
    w.close()
    data = path.read_bytes()
    assert len(data) == 24 + 16 + 1
    assert struct.unpack("<I", data[20:24])[0] == LINK_TYPE_LINUX_SLL


def test_build_sctp_frame():
    ngap_payload = bytes([0x00, 0x15, 0x00, 0x05, 0x00, 0x00, 0x00, 0x00])
    frame = build_sctp_frame("127.0.0.1", "127.0.0.1", 54321, 38412, ngap_payload)

    min_len = 16 + 20 + 12 + 16 + len(ngap_payload)
    assert len(frame) >= min_len
    assert struct.unpack("!H", frame[14:16])[0] == 0x0800
    assert frame[16 + 9] == 132
    assert struct.unpack("!HH", frame[36:40]) == (54321, 38412)
    assert struct.unpack("!I", frame[48 + 12 : 48 + 16])[0] == 60
    assert frame.endswith(ngap_payload)


def test_build_udp_frame():
    gtp_payload = bytes([0x30, 0xFF, 0x00, 0x08, 0x00, 0x00, 0x00, 0x01, 0x45, 0x00])
    frame = build_udp_frame("127.0.0.1", "127.0.0.1", 2152, 2152, gtp_payload)

    assert len(frame) == 14 + 20 + 8 + len(gtp_payload)
    assert struct.unpack("!H", frame[12:14])[0] == 0x0800
    assert frame[14 + 9] == 17
    assert struct.unpack("!H", frame[14 + 20 + 2 : 14 + 20 + 4])[0] == 2152
    ip_total = struct.unpack("!H", frame[16:18])[0]
    assert ip_total == len(frame) - 14


def test_frame_rejects_invalid_address():
    with pytest.raises(ValueError):
        build_udp_frame("not-an-ip", "127.0.0.1", 2152, 2152, b"")


def test_ngap_capture(tmp_path):
    path = tmp_path / "ngap.pcap"
    with PcapWriter(path, LINK_TYPE_LINUX_SLL) as w:
        ngap_bytes = bytes([0x00, 0x15, 0x00, 0x08, 0x00, 0x00, 0x00, 0x00])
        frame = build_sctp_frame("127.0.0.1", "127.0.0.1", 54321, 38412, ngap_bytes)
        w.write_packet(frame)
        assert w.count() == 1
    assert len(path.read_bytes()) == 24 + 16 + len(frame)