# nostrelay

Building blocks for a Nostr relay in Python:

- **Subscription filters** (`nostrelay.filters`, `nostrelay.subscription`):
  parse `["REQ", <id>, <filter>...]` messages into `Subscription` and
  `ReqFilter` objects and test whether an `Event` matches them. Consecutive
  duplicate filters are collapsed, and `Subscription.is_scraper()` flags
  filters that are too broad to be targeted queries.
- **Client message parsing** (`nostrelay.messages`): `convert_to_msg` turns an
  incoming text frame into a `NostrMessage` (`EVENT` and `AUTH` commands share
  `MessageKind.EVENT`; `REQ` and `CLOSE` have their own kinds), raising
  `ProtocolError` for unparseable frames and `EventTooLargeError` for event
  frames over a byte limit. Helpers build `NOTICE`, `OK`, `AUTH`, `EOSE` and
  `EVENT` replies, and `allowed_to_send` applies NIP-42 direct-message
  protection.
- **Metrics** (`nostrelay.metrics`): `Counter`, `Gauge`, `Histogram` and
  `CounterVec` metrics held in a `Registry` and rendered in the Prometheus
  text format; `create_metrics()` builds the full set a relay records.
- **Web front end** (`nostrelay.web`): `RelayWebApp` answers the relay's plain
  HTTP requests — the relay information document (NIP-11) for requests that
  accept `application/nostr+json`, a home page, `/metrics`, `/favicon.ico`,
  and the pay-to-relay `/join`, `/terms`, `/invoice`, `/account` and
  `/lnbits` endpoints. `build_app()` returns an aiohttp application.
- **Utilities** (`nostrelay.utils`): hex checks, `unix_time()`, `host_str()`,
  and `nip19_to_hex()` for decoding bech32 `npub`/`note` strings.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Running the web front end

```
nostrelay --help
nostrelay --address 127.0.0.1 --port 8080 --relay-info info.json
```

Options:

- `--address`, `--port` — where to listen (default `0.0.0.0:8080`).
- `--relay-info` — a JSON file served as the relay information document.
- `--relay-page` — an HTML file served at `/` to browsers.
- `--favicon` — an icon file served at `/favicon.ico`.

The command does not enable the pay-to-relay pages; with it, `/join` and
`/invoice` answer that joining is not allowed and `/account` answers that the
relay is not paid.

## Using the library

```python
from nostrelay.subscription import Subscription
from nostrelay.filters import Event

sub = Subscription.parse('["REQ", "feed", {"authors": ["abc"], "kinds": [1]}]')
event = Event(id="1234", pubkey="abcdef", created_at=0, kind=1)
sub.interested_in_event(event)   # True
sub.is_scraper()                 # False
```

Parsing a client frame:

```python
from nostrelay.messages import MessageKind, convert_to_msg, eose_message

msg = convert_to_msg('["REQ", "feed", {"kinds": [1]}]', max_bytes=128_000)
msg.kind is MessageKind.REQ   # True
eose_message("feed")          # '["EOSE","feed"]'
```

Metrics:

```python
from nostrelay.metrics import create_metrics

registry, metrics = create_metrics()
metrics.connections.inc()
metrics.disconnects.labels("normal").inc()
print(registry.render())
```

Serving pay-to-relay pages with your own backend:

```python
from aiohttp import web
from nostrelay.web import RelayWebApp, WebSettings

settings = WebSettings(pay_to_relay_enabled=True, sign_ups=True, admission_cost=1000)
app = RelayWebApp(
    settings,
    account_lookup=lambda pubkey: False,          # True, False, or None if unknown
    invoice_provider=lambda pubkey: "lnbc1...",   # a bolt11 invoice, or None
    payment_callback=lambda payment_hash: None,   # called from /lnbits
)
web.run_app(app.build_app(), port=8080)
```

`RelayWebApp.handle(path, headers, query)` can also be called directly and
returns a `WebResponse` with `status`, `headers` and `body`.

## What this package does not do

- It stores nothing: there is no event database, no account or invoice
  records, and no persistence of any kind.
- It does not run the relay's WebSocket protocol. A WebSocket upgrade at `/`
  is passed to the `websocket_handler` you supply; without one the request is
  answered with status 400.
- It does not verify event ids or signatures, perform NIP-05 checks, or talk
  to a Lightning payment service; those come from the callables you pass to
  `RelayWebApp`.
- The invoice page shows the invoice text but no QR code image.