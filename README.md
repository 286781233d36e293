# fivegsim

Building blocks for a small standalone 5G core simulator, for learning and
experimenting with PDU session, subscriber and user-plane procedures.

Python 3.10 or later is required; the only runtime dependency is PyYAML.

## What is in the package

| Module | What it provides |
|--------|------------------|
| `fivegsim.smf.models` | SMF data types (`SmContextCreateRequest`, `SmContextCreateResponse`, `SmContext`, `GTPTunnel`, …), `Config`, `load_config`, `allocate_teid` |
| `fivegsim.smf.pool` | `IPPool` (UE address allocation from a CIDR range), `SessionStore`, `PoolExhaustedError` |
| `fivegsim.smf.clients` | `SmfClient` for the Nsmf_PDUSession API, `PfcpClient` for the UPF's PFCP-sim API |
| `fivegsim.smf.server` | `SMF`, the Nsmf_PDUSession HTTP service |
| `fivegsim.udm.models` | UDM data types, `Config`, `load_config` |
| `fivegsim.udm.registry` | `Registry` and `load_subscribers_from_file` |
| `fivegsim.udm.service` | `UDM`, the Nudm_UECM HTTP service, and `UdmClient` |
| `fivegsim.upf.config` | UPF `Config` and `load_config` |
| `fivegsim.upf.core` | `UPF`, `UPFSession`, `SessionRequest` and the PFCP-sim HTTP API |
| `fivegsim.ue.config` | UE `Config`, the `local` and `clab` presets, `load_config`, `load_config_over` |
| `fivegsim.ue.observe` | `describe_packet` and observatory events for UE packets |
| `fivegsim.ipv4` | IPv4/ICMP helpers: checksum, echo request/reply builders, packet summaries |
| `fivegsim.pcap` | `PcapWriter`, `build_sctp_frame`, `build_udp_frame` |
| `fivegsim.seqdiag` | `Recorder` producing Mermaid sequence diagrams, `Node` |
| `fivegsim.obslog` | Structured console and JSON-lines logging |
| `fivegsim.obspub` | Background event publishing to an observatory sidecar |
| `fivegsim.obshub` | `Hub` tying pcap, diagram and log output together |

## Allocating UE addresses

```python
from fivegsim.smf.pool import IPPool, PoolExhaustedError

pool = IPPool("10.1.0.0/24")
pool.allocate("imsi-001")   # "10.1.0.1"
pool.allocate("imsi-002")   # "10.1.0.2"
pool.count()                # 2

tiny = IPPool("10.3.0.0/30")
tiny.allocate("imsi-001")
tiny.allocate("imsi-002")
try:
    tiny.allocate("imsi-003")
except PoolExhaustedError:
    print("pool exhausted")
```

## Running the SMF

```python
from fivegsim.smf.models import load_config
from fivegsim.smf.server import SMF

config = load_config("smf.yaml")   # YAML keys override the defaults
SMF(config).start()
```

The service answers:

| Method | Path                                       | Action          |
|--------|--------------------------------------------|-----------------|
| POST   | `/nsmf-pdusession/v1/sm-contexts`          | Create session  |
| GET    | `/nsmf-pdusession/v1/sm-contexts/{id}`     | Get session     |
| DELETE | `/nsmf-pdusession/v1/sm-contexts/{id}`     | Release session |

Creating a session allocates an address, a UL TEID and a context ID
(`ctx-00001`, …), then posts the session to the UPF's PFCP-sim API at
`upf_pfcp_address`; if the UPF cannot be reached the session is still
created. `SMF.handle_request(method, path, body)` serves a single request
without a socket, and `SMF.make_server(host, port)` builds an HTTP server
without starting it.

An AMF-side client:

```python
from fivegsim.smf.clients import SmfClient
from fivegsim.smf.models import SmContextCreateRequest

client = SmfClient("http://127.0.0.1:8001")
response = client.create_sm_context(
    SmContextCreateRequest(supi="imsi-001010000000001", pdu_session_id=1, dnn="internet")
)
print(response.pdu_address.ipv4_addr)
client.release_sm_context(response.sm_context_ref)   # takes the full context URL
```

Failed calls raise `fivegsim.smf.clients.ClientError`, whose `status`
holds the HTTP status when one was received.

## Subscribers and the UDM

```yaml
# subscribers.yaml
subscribers:
  - supi: imsi-001010000000001
    enabled: true
    allowed_dnns: [internet]
    default_snssai: {sst: 1, sd: "000001"}
```

```python
from fivegsim.udm.registry import load_subscribers_from_file

registry = load_subscribers_from_file("subscribers.yaml")
registry.is_dnn_allowed("imsi-001010000000001", "internet")  # True
registry.is_dnn_allowed("imsi-001010000000001", "private")   # False
```

SUPIs are matched case-insensitively; disabled subscribers are treated as
not provisioned. `fivegsim.udm.service.UDM(config, registry).start()`
serves:

| Method | Path                                                   |
|--------|--------------------------------------------------------|
| GET    | `/nudm-uecm/v1/{supi}`                                 |
| PUT    | `/nudm-uecm/v1/{supi}/registrations/amf-3gpp-access`   |
| DELETE | `/nudm-uecm/v1/{supi}/registrations/amf-3gpp-access`   |

`UdmClient(base_url)` calls it with `register_amf_3gpp_access` and
`get_subscription`, raising `UdmClientError` on failure.

## The UPF

The UPF holds sessions by uplink TEID and by UE address and moves packets
through two callables it is given: `send_gpdu((host, port), teid, packet)`
toward the gNB and, optionally, `n6_inject(packet)` toward the data
network. Without `n6_inject` it answers ICMP echo requests itself.

```python
from fivegsim.ipv4 import build_icmp_echo_request, is_icmp_echo_reply
from fivegsim.upf.config import Config
from fivegsim.upf.core import UPF, UPFSession

sent = []
upf = UPF(Config(), send_gpdu=lambda addr, teid, pkt: sent.append((addr, teid, pkt)))
upf.register_session(
    UPFSession(teid=1, gnb_addr=("127.0.0.1", 2153), gn_teid=0xFF01, ue_ip_address="10.0.0.5")
)

request = build_icmp_echo_request("10.0.0.5", "10.100.0.1", 1, 1)
upf.handle_gpdu(1, ("127.0.0.1", 2153), request)   # True
addr, teid, reply = sent[0]
is_icmp_echo_reply(reply, "10.0.0.5")               # True
```

`handle_n6_packet(packet)` sends return traffic to the gNB of the session
owning its destination address. `handle_pfcp_request` and
`make_pfcp_server(host, port)` serve the PFCP-sim API
(`POST /pfcp-sim/v1/sessions`, `DELETE /pfcp-sim/v1/sessions/{teid}`).

## UE configuration

```python
from fivegsim.ue.config import base_config_for_profile, load_config_over

base = base_config_for_profile("clab")          # or "local"
config = load_config_over(base, "ue.yaml")      # keys left out keep the preset
config.connectivity_target()                    # "10.100.0.1" unless configured
```

## Packet captures and sequence diagrams

```python
from fivegsim.pcap import LINK_TYPE_ETHERNET, PcapWriter, build_udp_frame
from fivegsim.seqdiag import Node, Recorder

with PcapWriter("gtpu.pcap", LINK_TYPE_ETHERNET) as writer:
    writer.write_packet(build_udp_frame("127.0.0.1", "127.0.0.1", 2152, 2152, b"\x30\xff"))

recorder = Recorder()
recorder.separator("NG Setup")
recorder.message(Node.GNB, Node.AMF, "NGSetupRequest", "TS 38.413 §9.2.6.1")
recorder.message(Node.AMF, Node.GNB, "NGSetupResponse", "TS 38.413 §9.2.6.2")
recorder.write_html("procedure.html")
```

`fivegsim.obshub.Hub(directory)` opens `ngap.pcap`, `gtpu.pcap`, a
`sim.jsonl` log and a sequence recorder in one place; `close()` writes
`procedure.mmd` and `procedure.html` and closes the files.

To stream events to an observatory sidecar, set the `OBSERVATORY_URL`
environment variable before importing `fivegsim.obspub`, or call
`fivegsim.obspub.configure(url)`. Events are posted to
`/api/v1/events` in the background and failures are dropped; packet
events are limited to one per edge and direction every 200 ms.

## Data-plane modes

`Config.effective_data_plane_mode()` of the UE and of the UPF returns the
configured `data_plane_mode`, overridden by the `UE_DATA_PLANE_MODE` or
`UPF_DATA_PLANE_MODE` environment variable, and `auto` when neither is
set. The other recognised values are `fabric` and `standalone`; the
package only reports the mode, it does not act on it.

## What the package does not do

- It has no command-line programs; each function is started from Python.
- There is no UE attach procedure: no SCTP connection to a gNB, no NAS
  registration or PDU session messages, no UE supervisor.
- It opens no GTP-U sockets and creates no TUN interfaces; the UPF relies
  on the `send_gpdu` and `n6_inject` callables you pass in.
- The SMF and UDM do not register with an NRF.
- The PFCP-sim API is plain JSON over HTTP, not PFCP.