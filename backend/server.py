"""HTTP service wrapping the intensify pipeline."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Sequence
from urllib.parse import urlparse

from domain.intensify import (
    DEFAULT_FRAME_COUNT,
    DEFAULT_MAX_FONT_SIZE,
    DEFAULT_MAX_SHAKE_INTENSITY,
    DEFAULT_SHAKE_INTENSITY,
    OUTLINE_FILL_RGBA,
    CaptionStyle,
    IntensifyValidationError,
    enforce_frame_limit,
    enforce_shake_limit,
)
from service.pipeline import generate

LOGGER = logging.getLogger("intensify_backend")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_MAX_FRAME_COUNT = 10
DEFAULT_MAX_REQUEST_BYTES = 16 * 1024 * 1024

HOST_ENV = "INTENSIFY_BACKEND_HOST"
PORT_ENV = "INTENSIFY_BACKEND_PORT"
MAX_FRAME_COUNT_ENV = "INTENSIFY_BACKEND_MAX_FRAME_COUNT"
MAX_SHAKE_INTENSITY_ENV = "INTENSIFY_BACKEND_MAX_SHAKE_INTENSITY"
MAX_REQUEST_BYTES_ENV = "INTENSIFY_BACKEND_MAX_REQUEST_BYTES"
LOG_LEVEL_ENV = "INTENSIFY_BACKEND_LOG_LEVEL"

BACKEND_CONFIG_CODE = "intensify_backend.config.invalid"
BACKEND_REQUEST_CODE = "intensify_backend.request.invalid"
BACKEND_TOO_LARGE_CODE = "intensify_backend.request.too_large"
BACKEND_NOT_FOUND_CODE = "intensify_backend.path.not_found"

INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>intensify</title>
</head>
<body>
<h1>[image intensifies]</h1>
<form id="form">
  <input type="file" id="image" accept="image/*" required>
  <input type="text" id="text" placeholder="caption">
  <label>frames <input type="number" id="frames" value="3" min="0"></label>
  <label>shake <input type="number" id="shake" value="5" min="0"></label>
  <button type="submit">Intensify</button>
</form>
<p id="error"></p>
<img id="result" alt="">
<script>
document.getElementById("form").addEventListener("submit", (event) => {
  event.preventDefault();
  const file = document.getElementById("image").files[0];
  const reader = new FileReader();
  reader.onload = async () => {
    const b64Image = reader.result.split(",")[1];
    const response = await fetch("/api/intensify", {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({
        b64_image: b64Image,
        text: document.getElementById("text").value,
        frame_count: Number(document.getElementById("frames").value),
        shake_intensity: Number(document.getElementById("shake").value),
      }),
    });
    const payload = await response.json();
    document.getElementById("error").textContent = payload.error || "";
    if (payload.b64_gif) {
      document.getElementById("result").src = "data:image/gif;base64," + payload.b64_gif;
    }
  };
  reader.readAsDataURL(file);
});
</script>
</body>
</html>
"""


@dataclasses.dataclass(frozen=True)
class BackendConfig:
    """Backend configuration."""

    host: str
    port: int
    max_frame_count: int
    max_shake_intensity: int
    max_request_bytes: int

    def __post_init__(self) -> None:
        if not self.host.strip():
            raise ValueError("host must be non-empty")
        if self.port < 0 or self.port > 65535:
            raise ValueError("port must be between 0 and 65535")
        if self.max_frame_count < 0:
            raise ValueError("max-frame-count must be non-negative")
        if self.max_shake_intensity < 0:
            raise ValueError("max-shake-intensity must be non-negative")
        if self.max_request_bytes <= 0:
            raise ValueError("max-request-bytes must be positive")


@dataclasses.dataclass(frozen=True)
class IntensifyRequest:
    """Decoded body of an intensify request."""

    b64_image: str
    text: str
    frame_count: int
    shake_intensity: int
    style: CaptionStyle


def parse_bounded_int(raw_value: str, label: str, minimum: int) -> int:
    """Parse an integer no smaller than minimum from a string."""
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{label} must be at least {minimum}")
    return value


def read_env_int(
    env: dict[str, str], key: str, label: str, fallback: int, minimum: int = 1
) -> int:
    """Read an integer no smaller than minimum from the environment."""
    raw_value = env.get(key, "").strip()
    if not raw_value:
        return fallback
    return parse_bounded_int(raw_value, label, minimum)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse backend CLI arguments."""
    parser = argparse.ArgumentParser(prog="intensify_backend", add_help=True)
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--max-frame-count", type=int, default=None)
    parser.add_argument("--max-shake-intensity", type=int, default=None)
    parser.add_argument("--max-request-bytes", type=int, default=None)
    return parser.parse_args(list(argv))


def configure_logging(env: dict[str, str]) -> None:
    """Configure logging from environment."""
    level_name = env.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    level = logging.INFO
    if level_name == "DEBUG":
        level = logging.DEBUG
    elif level_name == "WARNING":
        level = logging.WARNING
    elif level_name == "ERROR":
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def load_config(args: argparse.Namespace, env: dict[str, str]) -> BackendConfig:
    """Load backend configuration from args and environment."""
    host = env.get(HOST_ENV, DEFAULT_HOST)
    if args.host:
        host = args.host
    port = read_env_int(env, PORT_ENV, "port", DEFAULT_PORT, minimum=0)
    if args.port is not None:
        port = args.port
    max_frame_count = read_env_int(
        env,
        MAX_FRAME_COUNT_ENV,
        "max-frame-count",
        DEFAULT_MAX_FRAME_COUNT,
        minimum=0,
    )
    if args.max_frame_count is not None:
        max_frame_count = args.max_frame_count
    max_shake_intensity = read_env_int(
        env,
        MAX_SHAKE_INTENSITY_ENV,
        "max-shake-intensity",
        DEFAULT_MAX_SHAKE_INTENSITY,
        minimum=0,
    )
    if args.max_shake_intensity is not None:
        max_shake_intensity = args.max_shake_intensity
    max_request_bytes = read_env_int(
        env, MAX_REQUEST_BYTES_ENV, "max-request-bytes", DEFAULT_MAX_REQUEST_BYTES
    )
    if args.max_request_bytes is not None:
        max_request_bytes = args.max_request_bytes
    return BackendConfig(
        host=str(host),
        port=int(port),
        max_frame_count=int(max_frame_count),
        max_shake_intensity=int(max_shake_intensity),
        max_request_bytes=int(max_request_bytes),
    )


def read_json_field(
    payload: dict[str, object], key: str, expected: type | tuple[type, ...], default: object
) -> object:
    """Read an optional typed field from a JSON object."""
    value = payload.get(key, default)
    if isinstance(value, bool) and expected in (int, float, (int, float)):
        raise IntensifyValidationError(BACKEND_REQUEST_CODE, f"{key} must be a number")
    if not isinstance(value, expected):
        raise IntensifyValidationError(BACKEND_REQUEST_CODE, f"{key} has the wrong type")
    return value


def parse_color_channel(payload: dict[str, object], key: str, fallback: int) -> int:
    """Scale a 0..1 color channel to 8 bits."""
    if key not in payload:
        return fallback
    value = float(read_json_field(payload, key, (int, float), 0.0))
    if value < 0.0 or value > 1.0:
        raise IntensifyValidationError(
            BACKEND_REQUEST_CODE, f"{key} must be between 0 and 1"
        )
    return int(value * 255)


def parse_intensify_request(
    payload: object,
    max_frame_count: int,
    max_shake_intensity: int = DEFAULT_MAX_SHAKE_INTENSITY,
) -> IntensifyRequest:
    """Validate a decoded JSON body into an IntensifyRequest."""
    if not isinstance(payload, dict):
        raise IntensifyValidationError(
            BACKEND_REQUEST_CODE, "request body must be a JSON object"
        )
    if "b64_image" not in payload:
        raise IntensifyValidationError(BACKEND_REQUEST_CODE, "b64_image is required")
    b64_image = str(read_json_field(payload, "b64_image", str, ""))
    text = str(read_json_field(payload, "text", str, ""))
    frame_count = int(read_json_field(payload, "frame_count", int, DEFAULT_FRAME_COUNT))
    shake_intensity = int(
        read_json_field(payload, "shake_intensity", int, DEFAULT_SHAKE_INTENSITY)
    )
    font_size = float(
        read_json_field(payload, "font_size", (int, float), DEFAULT_MAX_FONT_SIZE)
    )
    outline = bool(read_json_field(payload, "outline", bool, True))
    fill_rgba = (
        parse_color_channel(payload, "color_r", OUTLINE_FILL_RGBA[0]),
        parse_color_channel(payload, "color_g", OUTLINE_FILL_RGBA[1]),
        parse_color_channel(payload, "color_b", OUTLINE_FILL_RGBA[2]),
        255,
    )
    if frame_count < 0 or shake_intensity < 0:
        raise IntensifyValidationError(
            BACKEND_REQUEST_CODE, "frame_count and shake_intensity must be non-negative"
        )
    enforce_frame_limit(frame_count, max_frame_count)
    enforce_shake_limit(shake_intensity, max_shake_intensity)
    return IntensifyRequest(
        b64_image=b64_image,
        text=text,
        frame_count=frame_count,
        shake_intensity=shake_intensity,
        style=CaptionStyle(max_font_size=font_size, fill_rgba=fill_rgba, outline=outline),
    )


def serve(config: BackendConfig) -> None:
    """Run the backend HTTP server."""

    class IntensifyHandler(BaseHTTPRequestHandler):
        """HTTP request handler for the intensify service."""

        protocol_version = "HTTP/1.1"

        def log_message(self, format: str, *args: object) -> None:
            LOGGER.info("%s - %s", self.client_address[0], format % args)

        def send_body(self, status: HTTPStatus, content_type: str, body: bytes) -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def send_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
            body = json.dumps(payload).encode("utf-8")
            self.send_body(status, "application/json; charset=utf-8", body)

        def send_error_response(self, status: HTTPStatus, message: str) -> None:
            self.send_json(status, {"error": message})

        def do_GET(self) -> None:
            parsed = urlparse(self.path)
            if parsed.path in ("/", "/index.html"):
                self.send_body(
                    HTTPStatus.OK, "text/html; charset=utf-8", INDEX_HTML.encode("utf-8")
                )
                return
            if parsed.path == "/health":
                self.send_json(HTTPStatus.OK, {"status": "ok"})
                return
            self.send_error_response(
                HTTPStatus.NOT_FOUND,
                f"{BACKEND_NOT_FOUND_CODE}: not found",
            )

        def do_POST(self) -> None:
            parsed = urlparse(self.path)
            if parsed.path != "/api/intensify":
                self.send_error_response(
                    HTTPStatus.NOT_FOUND,
                    f"{BACKEND_NOT_FOUND_CODE}: not found",
                )
                return
            try:
                content_length = int(self.headers.get("Content-Length", "0"))
            except ValueError:
                content_length = -1
            if content_length < 0:
                self.send_error_response(
                    HTTPStatus.BAD_REQUEST,
                    f"{BACKEND_REQUEST_CODE}: invalid content length",
                )
                return
            if content_length > config.max_request_bytes:
                self.close_connection = True
                self.send_error_response(
                    HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
                    f"{BACKEND_TOO_LARGE_CODE}: request exceeds max size",
                )
                return
            body = self.rfile.read(content_length)
            try:
                payload = json.loads(body.decode("utf-8"))
                request = parse_intensify_request(
                    payload, config.max_frame_count, config.max_shake_intensity
                )
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                self.send_error_response(
                    HTTPStatus.BAD_REQUEST, f"{BACKEND_REQUEST_CODE}: {exc}"
                )
                return
            except IntensifyValidationError as exc:
                self.send_error_response(
                    HTTPStatus.BAD_REQUEST, f"{exc.code}: {exc}"
                )
                return
            result = generate(
                request.b64_image,
                request.text,
                request.frame_count,
                request.shake_intensity,
                style=request.style,
            )
            if not result.ok:
                self.send_error_response(
                    HTTPStatus.UNPROCESSABLE_ENTITY, result.error or "unknown error"
                )
                return
            self.send_json(HTTPStatus.OK, {"b64_gif": result.payload})

    server = ThreadingHTTPServer((config.host, config.port), IntensifyHandler)
    LOGGER.info(
        "intensify_backend.server.started address=%s:%s",
        config.host,
        server.server_address[1],
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        LOGGER.info("intensify_backend.server.shutdown: received interrupt")
    finally:
        server.server_close()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for the backend server."""
    env = dict(os.environ)
    configure_logging(env)
    try:
        args = parse_args(list(argv) if argv is not None else sys.argv[1:])
        config = load_config(args, env)
    except ValueError as exc:
        LOGGER.error("%s: %s", BACKEND_CONFIG_CODE, exc)
        return 1
    serve(config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
