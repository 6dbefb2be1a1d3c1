# tcpgate

A TCP gateway server speaking a simple length-prefixed binary protocol, and a
load-testing client for it.

## Protocol

Every packet is an 8-byte header followed by a body:

| Offset | Size | Field                              |
|--------|------|------------------------------------|
| 0      | 4    | command id (big-endian, unsigned)  |
| 4      | 4    | body length (big-endian, unsigned) |
| 8      | n    | body                               |

Built-in commands (`tcpgate.protocol.Command`):

| Name        | Id   | Behaviour                                                              |
|-------------|------|------------------------------------------------------------------------|
| `CALCULATE` | 1001 | body starts with `a` and `b` (uint32 each); reply is `a`, `b`, `a + b` (wrapping at 32 bits). Bodies shorter than 8 bytes get no reply. |
| `SMALL`     | 2001 | body is echoed back                                                    |
| `MEDIUM`    | 3001 | body is echoed back                                                    |
| `LARGE`     | 4001 | body is echoed back                                                    |
| `SHUTDOWN`  | 9999 | stops the server                                                       |

Commands with no registered handler get no reply. A packet whose total size
(header included) exceeds `max_packet_size` closes the connection. Requests
from one connection always go to the same worker thread, so replies keep their
order; when that worker's queue is full the connection is closed.

## Installation

```
pip install .
```

## Running the server

```
tcpgate --config config/config.yaml
```

`--config` defaults to `config/config.yaml`. When the file is missing or
cannot be parsed, the built-in defaults are used. Print build information and
exit with:

```
tcpgate --version
```

`SIGINT` or `SIGTERM` stops the server; so does a `SHUTDOWN` packet from any
client.

### Configuration

All keys are optional; these are the defaults:

```yaml
app:
  env: dev
  version: 1.0.0
server:
  addr: tcp://0.0.0.0:9000
  multicore: true
  worker_pool_size: 1024
  task_queue_size: 1024
  max_packet_size: 65535
  heartbeat_check: 30
  heartbeat_timeout: 90
log:
  level: info
  gnet_level: warn
  path: ./logs/
  stdout: true
  filename: server.log
  max_size: 100
  max_backups: 3
  max_age: 30
```

`addr` takes `tcp://host:port` (also `tcp4://`, `tcp6://`, or no scheme).
Log records go to `<path>/<filename>` as JSON lines and, when `stdout` is
true, to the console as text. The server logs its configuration at start and a
status line every five seconds with the number of open connections, the
thread count and the buffer-pool counters.

### What it does not do

- `heartbeat_check` and `heartbeat_timeout` are read and logged, but idle
  connections are not checked or dropped.
- `max_size`, `max_backups` and `max_age` are accepted, but the log file is
  never rotated or pruned.
- `multicore` is logged only; the server runs one asyncio event loop, with
  handlers on the worker threads.

## Load testing

```
tcpgate-loadtest --host localhost --port 9000 --conns 100 --repeat 1000 --mode v1
```

| Option     | Default     | Meaning                     |
|------------|-------------|-----------------------------|
| `--host`   | `localhost` | server host                 |
| `--port`   | `8888`      | server port                 |
| `--conns`  | `10000`     | concurrent connections      |
| `--repeat` | `1000`      | requests per connection     |
| `--mode`   | `v1`        | `v1` or `v2`                |

Note that the default port differs from the server's default address, so pass
`--port` to match your server.

- `v1` sends `CALCULATE` requests one at a time, waiting for each reply.
- `v2` picks one of the four request commands at random, sends two packets at
  once 30% of the time, and with a 5% chance per round drops the connection
  and reconnects after 10–100 ms (50–150 ms after an I/O error).

The report shows total time, successes, failures, effective QPS, average,
minimum, P50/P90/P95/P99 and maximum response times, and a histogram in 50 ms
buckets (the last bucket holds everything from 950 ms up).

## Using it as a library

Framing:

```python
from tcpgate.protocol import Command, encode_packet, decode_header
from tcpgate.handlers import calculate_response

body = b"\x00\x00\x00\x02\x00\x00\x00\x03\x00\x00\x00\x00"
packet = encode_packet(Command.CALCULATE, body)
cmd_id, length = decode_header(packet[:8])   # (1001, 12)
reply = calculate_response(body)             # a=2, b=3, a+b=5
```

`tcpgate.protocol.read_packet(reader)` reads one packet from an
`asyncio.StreamReader`; `tcpgate.server.split_packets(buffer, max_packet_size)`
yields the complete packets at the front of a buffer.

Running a server in-process:

```python
from tcpgate.config import ServerConfig
from tcpgate.handlers import default_router
from tcpgate.server import GatewayServer
from tcpgate.worker_pool import WorkerPool

pool = WorkerPool(4, 256, default_router())
pool.start()
server = GatewayServer(ServerConfig(addr="tcp://127.0.0.1:9000"), pool)
server.start()   # blocks until server.close_engine() or a SHUTDOWN packet
pool.stop()
```

Own handlers are registered with `Router.register(cmd_id, handler)` (an
object with `handle(conn, cmd_id, body)`) or `Router.register_func(cmd_id, func)`;
reply with `conn.send(cmd_id, body)`.

Load tests from code:

```python
import asyncio
from tcpgate.loadtest import run_load_test
from tcpgate.stats import format_report

stats, duration = asyncio.run(run_load_test("127.0.0.1", 9000, 10, 100, "v2"))
print(format_report(stats, duration))
```

## Running the tests

```
pip install .[test]
pytest
```