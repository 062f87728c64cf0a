"""HTTP front end of the relay: info document, metrics and pay-to-relay pages."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from aiohttp import web

from nostrelay.messages import get_header_string, get_pubkey
from nostrelay.metrics import Registry, create_metrics
from nostrelay.utils import Bech32Error, is_hex, nip19_to_hex

logger = logging.getLogger(__name__)

NOSTR_JSON = "application/nostr+json"

# secp256k1 field prime, used to check that a public key lies on the curve.
_FIELD_P = 2**256 - 2**32 - 977

AccountLookup = Callable[[str], "bool | None"]
InvoiceProvider = Callable[[str], "str | None"]
PaymentCallback = Callable[[str], None]
WebSocketHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_JOIN_HTML = """
<!doctype HTML>
<head>
  <meta charset="UTF-8">
  <style>
    body {
      display: flex;
      flex-direction: column;
      align-items: center;
      text-align: center;
      font-family: Arial, sans-serif;
      background-color: #6320a7;
      color: white;
    }

    .container {
      display: flex;
      justify-content: center;
      align-items: center;
      height: 400px;
    }

    a {
      color: pink;
    }

    input[type="text"] {
        width: 100%;
        max-width: 500px;
        box-sizing: border-box;
        overflow-x: auto;
        white-space: nowrap;
    }
  </style>
</head>
<body>
  <div style="width:75%;">
    <h1>Enter your pubkey</h1>
    <form action="/invoice" onsubmit="return checkForm(this);">
      <input type="text" name="pubkey" id="pubkey-input"><br><br>
      <input type="checkbox" id="terms" required>
      <label for="terms">I agree to the <a href="/terms">terms and conditions</a></label><br><br>
      <button type="submit">Submit</button>
    </form>
    <button id="get-public-key-btn">Get Public Key</button>
  </div>
  <script>
    function checkForm(form) {
      if (!form.terms.checked) {
        alert("Please agree to the terms and conditions");
        return false;
      }
      return true;
    }

    const pubkeyInput = document.getElementById('pubkey-input');
      const getPublicKeyBtn = document.getElementById('get-public-key-btn');
      getPublicKeyBtn.addEventListener('click', async function() {
        try {
          const publicKey = await window.nostr.getPublicKey();
          pubkeyInput.value = publicKey;
        } catch (error) {
          console.error(error);
        }
      });
  </script>
</body>
</html>
            """

_INVOICE_HTML = """
<!DOCTYPE html>
<html>
  <head>
  <meta charset="UTF-8">
    <style>
      body {{
        display: flex;
        flex-direction: column;
        align-items: center;
        text-align: center;
        font-family: Arial, sans-serif;
        background-color:  #6320a7 ;
        color: white;
      }}
      #copy-button {{
        background-color: #bb5f0d ;
        color: white;
        padding: 10px 20px;
        border-radius: 5px;
        border: none;
        cursor: pointer;
      }}
      #copy-button:hover {{
        background-color: #8f29f4;
      }}
    .container {{
        display: flex;
        justify-content: center;
        align-items: center;
        height: 400px;
    }}
    a {{
        color: pink;
    }}
    </style>
  </head>
  <body>
    <div style="width:75%;">
      <h3>
        To use this relay, an admission fee of {cost} sats is required. By paying the fee, you agree to the <a href='terms'>terms</a>.
      </h3>
    </div>
    <div>
        <div style="max-height: 300px;">
            {image}
        </div>
    </div>
    <div>
    <div style="width: 75%;">
        <p style="overflow-wrap: break-word; width: 500px;">{bolt11}</p>
        <button id="copy-button">Copy</button>
    </div>
    <div>
        <p> This page will not refresh </p>
        <p> Verify admission <a href=/account?pubkey={pubkey}>here</a> once you have paid</p>
    </div>
    </div>
  </body>
</html>


<script>
  const copyButton = document.getElementById("copy-button");
  if (navigator.clipboard) {{
    copyButton.addEventListener("click", function() {{
      const textToCopy = "{bolt11}";
      navigator.clipboard.writeText(textToCopy).then(function() {{
        console.log("Text copied to clipboard");
      }}, function(err) {{
        console.error("Could not copy text: ", err);
      }});
    }});
  }} else {{
    copyButton.style.display = "none";
    console.warn("Clipboard API is not supported in this browser");
  }}
</script>
"""

_ACCOUNT_HTML = """
            <!DOCTYPE html>
<html>
  <head>
    <meta charset="UTF-8">
    <style>
      body {{
        display: flex;
        flex-direction: column;
        align-items: center;
        text-align: center;
        font-family: Arial, sans-serif;
        background-color: #6320a7;
        color: white;
        height: 100vh;
      }}
    </style>
  </head>
  <body>
    <div>
      <h5>{pubkey} {text} admitted</h5>
    </div>
  </body>
</html>


            """


@dataclass
class WebSettings:
    """Settings that shape the HTTP responses of the relay."""

    address: str = "0.0.0.0"
    port: int = 8080
    relay_info: dict[str, Any] = field(default_factory=dict)
    relay_page: str | None = None
    favicon: str | None = None
    pay_to_relay_enabled: bool = False
    sign_ups: bool = False
    terms_message: str = ""
    admission_cost: int = 0


@dataclass
class WebResponse:
    """Status, headers and body of an HTTP response."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @classmethod
    def plain(cls, status: int, text: str) -> "WebResponse":
        return cls(status, text.encode("utf-8"), {"Content-Type": "text/plain"})

    @classmethod
    def html(cls, text: str) -> "WebResponse":
        return cls(200, text.encode("utf-8"))


def render_join_page() -> str:
    """The sign-up page asking for a public key."""
    return _JOIN_HTML


def render_account_page(pubkey: str, admitted: bool | None) -> str:
    """The page telling a user whether their key is admitted.

    ``admitted`` is None when the status could not be determined.
    """
    if admitted is None:
        text = "Could not get admission status"
    elif admitted:
        text = '<span style="color: green;">is</span>'
    else:
        text = '<span style="color: red;">is not</span>'
    return _ACCOUNT_HTML.format(pubkey=pubkey, text=text)


def _render_invoice_page(pubkey: str, bolt11: str, admission_cost: int) -> str:
    return _INVOICE_HTML.format(
        cost=admission_cost,
        image="Could not render image",
        bolt11=bolt11,
        pubkey=pubkey,
    )


def _is_valid_pubkey(text: str) -> bool:
    hexkey = text
    if text.startswith("npub1"):
        try:
            hexkey = nip19_to_hex(text)
        except Bech32Error:
            return False
    if len(hexkey) != 64 or not is_hex(hexkey):
        return False
    x = int(hexkey, 16)
    if x >= _FIELD_P:
        return False
    c = (pow(x, 3, _FIELD_P) + 7) % _FIELD_P
    y = pow(c, (_FIELD_P + 1) // 4, _FIELD_P)
    return y * y % _FIELD_P == c


def _has_header(name: str, headers: Mapping[str, Any]) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def _read_file(path: str) -> bytes:
    return Path(path).read_bytes()


_NOT_ALLOWED = "Sorry, joining is not allowed at the moment"
_INVALID_KEY = "Looks like your key is invalid"


class RelayWebApp:
    """Answers the relay's plain HTTP requests.

    Account status, invoices and payment notifications come from optional
    callables so that the pages work with whatever payment backend is in use.
    """

    def __init__(
        self,
        settings: WebSettings,
        registry: Registry | None = None,
        account_lookup: AccountLookup | None = None,
        invoice_provider: InvoiceProvider | None = None,
        payment_callback: PaymentCallback | None = None,
        websocket_handler: WebSocketHandler | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry if registry is not None else create_metrics()[0]
        self.account_lookup = account_lookup
        self.invoice_provider = invoice_provider
        self.payment_callback = payment_callback
        self.websocket_handler = websocket_handler
        self.favicon: bytes | None = None
        if settings.favicon:
            logger.info("reading favicon...")
            try:
                self.favicon = _read_file(settings.favicon)
            except OSError:
                self.favicon = None

    def handle(
        self, path: str, headers: Mapping[str, Any], query: str | None
    ) -> WebResponse:
        """Answer a request for ``path`` with the given headers and query string."""
        upgrade = _has_header("upgrade", headers)
        if upgrade:
            if path == "/":
                logger.warning("websocket response failed")
                return WebResponse.plain(
                    400, "Failed to create websocket: no websocket handler configured"
                )
            return WebResponse(404, b"Nothing here.")
        routes = {
            "/": self._root,
            "/metrics": self._metrics,
            "/favicon.ico": self._favicon,
            "/lnbits": lambda h, q: self._lnbits(b""),
            "/terms": self._terms,
            "/join": self._join,
            "/invoice": self._invoice,
            "/account": self._account,
        }
        route = routes.get(path)
        if route is None:
            return WebResponse(404, b"Nothing here.")
        return route(headers, query)

    def _root(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        accept = get_header_string("accept", headers)
        if accept is not None and NOSTR_JSON in accept:
            logger.debug("Responding to server info request")
            body = json.dumps(self.settings.relay_info, indent=2)
            return WebResponse(
                200,
                body.encode("utf-8"),
                {"Content-Type": NOSTR_JSON, "Access-Control-Allow-Origin": "*"},
            )
        if self.settings.pay_to_relay_enabled:
            return WebResponse(307, b"", {"location": "/join"})
        if self.settings.relay_page:
            try:
                content = _read_file(self.settings.relay_page)
            except OSError as exc:
                logger.error("Failed to read relay_page file: %s. Will use default", exc)
            else:
                return WebResponse(
                    200, content, {"Content-Type": "text/html; charset=UTF-8"}
                )
        return WebResponse.plain(200, "Please use a Nostr client to connect.")

    def _metrics(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        return WebResponse.plain(200, self.registry.render())

    def _favicon(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        if self.favicon is None:
            return WebResponse(404, b"")
        return WebResponse(
            200,
            self.favicon,
            {"Content-Type": "image/x-icon", "Cache-Control": "public, max-age=2419200"},
        )

    def _lnbits(self, body: bytes) -> WebResponse:
        try:
            callback = json.loads(body)
            payment_hash = callback["payment_hash"]
            if not isinstance(payment_hash, str):
                raise TypeError("payment_hash is not a string")
        except (ValueError, KeyError, TypeError):
            return WebResponse(400, b"Invalid callback")
        logger.debug("LNBits callback: %r", callback)
        if self.payment_callback is None:
            logger.warning("Could not send invoice update: no payment processor")
            return WebResponse(500, b"Error processing callback")
        try:
            self.payment_callback(payment_hash)
        except Exception as exc:  # noqa: BLE001 - any failure is reported to the caller
            logger.warning("Could not send invoice update: %s", exc)
            return WebResponse(500, b"Error processing callback")
        return WebResponse(200, b"ok")

    def _terms(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        return WebResponse.plain(200, self.settings.terms_message)

    def _join(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        if not self.settings.sign_ups:
            return WebResponse.plain(401, _NOT_ALLOWED)
        return WebResponse.html(render_join_page())

    def _lookup(self, pubkey: str) -> bool | None:
        if self.account_lookup is None:
            return None
        try:
            return self.account_lookup(pubkey)
        except Exception:  # noqa: BLE001 - lookup failure means unknown status
            logger.warning("account lookup failed", exc_info=True)
            return None

    def _checked_pubkey(self, query: str | None) -> str | WebResponse:
        pubkey = get_pubkey(query)
        if pubkey is None:
            return WebResponse(404, b"", {"location": "/join"})
        if not _is_valid_pubkey(pubkey):
            return WebResponse.plain(401, _INVALID_KEY)
        return pubkey

    def _invoice(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        if not self.settings.sign_ups:
            return WebResponse.plain(401, _NOT_ALLOWED)
        pubkey = self._checked_pubkey(query)
        if isinstance(pubkey, WebResponse):
            return pubkey
        if self._lookup(pubkey):
            return WebResponse(200, b"Already admitted")
        if self.invoice_provider is None:
            logger.warning("Could not send payment tx")
            return WebResponse.plain(501, "Sorry, something went wrong")
        try:
            bolt11 = self.invoice_provider(pubkey)
        except Exception:  # noqa: BLE001 - treated as no invoice
            logger.warning("invoice request failed", exc_info=True)
            bolt11 = None
        if bolt11 is None:
            return WebResponse(500, b"Sorry, could not get invoice")
        page = _render_invoice_page(pubkey, bolt11, self.settings.admission_cost)
        return WebResponse.html(page)

    def _account(self, headers: Mapping[str, Any], query: str | None) -> WebResponse:
        if not self.settings.pay_to_relay_enabled:
            return WebResponse.plain(401, "This relay is not paid")
        pubkey = self._checked_pubkey(query)
        if isinstance(pubkey, WebResponse):
            return pubkey
        return WebResponse.html(render_account_page(pubkey, self._lookup(pubkey)))

    async def _serve(self, request: web.Request) -> web.StreamResponse:
        if (
            request.path == "/"
            and "Upgrade" in request.headers
            and self.websocket_handler is not None
        ):
            return await self.websocket_handler(request)
        if request.path == "/lnbits" and "Upgrade" not in request.headers:
            result = self._lnbits(await request.read())
        else:
            result = self.handle(request.path, request.headers, request.query_string)
        return web.Response(
            status=result.status, body=result.body, headers=result.headers
        )

    def build_app(self) -> web.Application:
        """An aiohttp application that serves every path through this object."""
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._serve)
        return app


def main(argv: list[str] | None = None) -> int:
    """Run the relay's HTTP front end."""
    parser = argparse.ArgumentParser(description="Serve the relay HTTP pages.")
    parser.add_argument("--address", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--relay-info", help="JSON file with the relay info document")
    parser.add_argument("--relay-page", help="HTML file served at /")
    parser.add_argument("--favicon", help="icon file served at /favicon.ico")
    args = parser.parse_args(argv)
    info: dict[str, Any] = {}
    if args.relay_info:
        info = json.loads(Path(args.relay_info).read_text(encoding="utf-8"))
    settings = WebSettings(
        address=args.address.strip(),
        port=args.port,
        relay_info=info,
        relay_page=args.relay_page,
        favicon=args.favicon,
    )
    logging.basicConfig(level=logging.INFO)
    logger.info("listening on: %s:%d", settings.address, settings.port)
    app = RelayWebApp(settings)
    web.run_app(app.build_app(), host=settings.address, port=settings.port)
    return 0