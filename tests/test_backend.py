"""Tests for the intensify HTTP backend."""

from __future__ import annotations

import base64
import json
import os
import socket
import subprocess
import sys
import time
from io import BytesIO
from pathlib import Path
from typing import Iterator
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest
from PIL import Image

from backend.server import load_config, parse_args, parse_intensify_request
from domain.intensify import IntensifyValidationError


def free_local_port() -> int:
    """Reserve a free port for local servers."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def wait_for_port(host: str, port: int, timeout_seconds: float) -> None:
    """Wait until a TCP port is accepting connections."""
    start = time.monotonic()
    while True:
        if time.monotonic() - start > timeout_seconds:
            raise TimeoutError("server did not become ready in time")
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(0.2)
            try:
                sock.connect((host, port))
                return
            except OSError:
                time.sleep(0.05)


def stop_process(process: subprocess.Popen[str]) -> None:
    """Terminate a subprocess and wait."""
    process.terminate()
    try:
        process.wait(timeout=3)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait(timeout=3)


def b64_png(width: int, height: int) -> str:
    """Build a base64 PNG of a solid color."""
    buffer = BytesIO()
    Image.new("RGBA", (width, height), (30, 60, 90, 255)).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def post_json(url: str, payload: object) -> tuple[int, dict[str, object]]:
    """POST a JSON body and return the status and decoded response."""
    request = Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urlopen(request, timeout=10.0) as response:
            return response.status, json.loads(response.read().decode("utf-8"))
    except HTTPError as exc:
        return exc.code, json.loads(exc.read().decode("utf-8"))


@pytest.fixture(scope="module")
def base_url() -> Iterator[str]:
    """Run the backend in a subprocess for the module."""
    repo_root = Path(__file__).resolve().parents[1]
    port = free_local_port()
    env = os.environ.copy()
    env["INTENSIFY_BACKEND_MAX_FRAME_COUNT"] = "4"
    env["INTENSIFY_BACKEND_MAX_SHAKE_INTENSITY"] = "8"
    process = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "backend.server",
            "--host",
            "127.0.0.1",
            "--port",
            str(port),
        ],
        cwd=repo_root,
        text=True,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    try:
        wait_for_port("127.0.0.1", port, timeout_seconds=10.0)
        yield f"http://127.0.0.1:{port}"
    finally:
        stop_process(process)


def test_health(base_url: str) -> None:
    """Report ok on the health endpoint."""
    with urlopen(f"{base_url}/health", timeout=2.0) as response:
        assert json.loads(response.read().decode("utf-8")) == {"status": "ok"}


def test_index_page(base_url: str) -> None:
    """Serve the static inspection page."""
    with urlopen(f"{base_url}/", timeout=2.0) as response:
        assert response.headers["Content-Type"].startswith("text/html")
        assert "/api/intensify" in response.read().decode("utf-8")


def test_intensify_returns_gif(base_url: str) -> None:
    """Return a base64 GIF for a valid request."""
    status, payload = post_json(
        f"{base_url}/api/intensify",
        {"b64_image": b64_png(20, 16), "text": "hi", "frame_count": 2},
    )

    assert status == 200
    gif_bytes = base64.b64decode(str(payload["b64_gif"]))
    with Image.open(BytesIO(gif_bytes)) as image:
        assert image.format == "GIF"
        assert image.size == (20, 16)


def test_frame_ceiling_is_enforced(base_url: str) -> None:
    """Reject requests above the configured frame ceiling."""
    status, payload = post_json(
        f"{base_url}/api/intensify",
        {"b64_image": b64_png(4, 4), "frame_count": 5},
    )

    assert status == 400
    assert str(payload["error"]).startswith("intensify.input.frame_limit")


def test_shake_ceiling_is_enforced(base_url: str) -> None:
    """Reject shake intensities above the configured ceiling before rendering."""
    status, payload = post_json(
        f"{base_url}/api/intensify",
        {"b64_image": b64_png(1, 1), "shake_intensity": 1000000},
    )

    assert status == 400
    assert str(payload["error"]).startswith("intensify.input.shake_limit")


def test_pipeline_failure_is_reported(base_url: str) -> None:
    """Forward the failing stage message for an undecodable image."""
    status, payload = post_json(
        f"{base_url}/api/intensify",
        {"b64_image": base64.b64encode(b"not an image").decode("ascii")},
    )

    assert status == 422
    assert str(payload["error"]).startswith("intensify.input.image_decode")


def test_malformed_json_is_rejected(base_url: str) -> None:
    """Reject bodies that are not JSON."""
    request = Request(
        f"{base_url}/api/intensify",
        data=b"{not json",
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with pytest.raises(HTTPError) as exc_info:
        urlopen(request, timeout=2.0)

    assert exc_info.value.code == 400


def test_unknown_path(base_url: str) -> None:
    """Return 404 for unknown routes."""
    with pytest.raises(HTTPError) as exc_info:
        urlopen(f"{base_url}/nope", timeout=2.0)

    assert exc_info.value.code == 404


def test_parse_request_scales_colors() -> None:
    """Scale 0..1 color channels to 8 bits and apply defaults."""
    request = parse_intensify_request(
        {"b64_image": "AAAA", "color_r": 1.0, "color_g": 0.5, "outline": False},
        max_frame_count=10,
    )

    assert request.text == ""
    assert request.frame_count == 3
    assert request.shake_intensity == 5
    assert request.style.fill_rgba == (255, 127, 255, 255)
    assert request.style.outline is False


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {},
        {"b64_image": 5},
        {"b64_image": "AAAA", "frame_count": "3"},
        {"b64_image": "AAAA", "frame_count": True},
        {"b64_image": "AAAA", "shake_intensity": -1},
        {"b64_image": "AAAA", "color_r": 2.0},
        {"b64_image": "AAAA", "font_size": 0},
    ],
)
def test_parse_request_rejects_bad_fields(payload: object) -> None:
    """Raise validation errors for malformed request bodies."""
    with pytest.raises(IntensifyValidationError):
        parse_intensify_request(payload, max_frame_count=10)


def test_parse_request_enforces_shake_ceiling() -> None:
    """Raise a coded error for shake intensities above the ceiling."""
    with pytest.raises(IntensifyValidationError) as exc_info:
        parse_intensify_request(
            {"b64_image": "AAAA", "shake_intensity": 9},
            max_frame_count=10,
            max_shake_intensity=8,
        )

    assert exc_info.value.code == "intensify.input.shake_limit"


def test_zero_ceilings_from_env_match_flags() -> None:
    """Accept a zero frame ceiling from the environment as from the flag."""
    from_env = load_config(
        parse_args([]),
        {
            "INTENSIFY_BACKEND_MAX_FRAME_COUNT": "0",
            "INTENSIFY_BACKEND_MAX_SHAKE_INTENSITY": "0",
        },
    )
    from_flags = load_config(
        parse_args(["--max-frame-count", "0", "--max-shake-intensity", "0"]), {}
    )

    assert from_env == from_flags
    assert from_env.max_frame_count == 0
    assert from_env.max_shake_intensity == 0


def test_negative_ceiling_is_rejected() -> None:
    """Reject negative ceilings from either source."""
    with pytest.raises(ValueError):
        load_config(parse_args([]), {"INTENSIFY_BACKEND_MAX_FRAME_COUNT": "-1"})
    with pytest.raises(ValueError):
        load_config(parse_args(["--max-shake-intensity", "-1"]), {})
