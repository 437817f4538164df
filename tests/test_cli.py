import os
import socket
import subprocess
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from urllib.request import Request, urlopen

import pytest

import kubeless.cli as cli


ROOT = Path(__file__).resolve().parents[1]
HELLO = ROOT / "examples" / "hello" / "main.py"
HOST = "127.0.0.1"
ENTRYPOINTS = [f"{HELLO}:{name}" for name in ("say_hello", "say_goodbye", "echo_or_panic")]


@contextmanager
def set_env(env: dict):
    old = {k: os.environ.get(k) for k in env}
    try:
        for k, v in env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = str(v)
        yield
    finally:
        for k, v in old.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((HOST, 0))
        return s.getsockname()[1]


def _wait_for_port(port: int, timeout: float = 5.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(0.5)
            try:
                sock.connect((HOST, port))
                return
            except OSError:
                time.sleep(0.1)
    raise RuntimeError(f"Server did not start on port {port}")


def _subprocess_env(**extra) -> dict:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
    env.update({k: str(v) for k, v in extra.items()})
    return env


@contextmanager
def running(cmd, env):
    proc = subprocess.Popen(cmd, cwd=str(ROOT), env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    try:
        yield proc
    finally:
        proc.terminate()
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate(timeout=5)


def test_list_marks_selected_function(capsys):
    with set_env({"FUNC_HANDLER": "say_goodbye"}):
        rc = cli.main(["list", *ENTRYPOINTS])
    assert rc == 0
    out = capsys.readouterr().out.splitlines()
    assert out == ["  say_hello", "* say_goodbye", "  echo_or_panic"]


def test_serve_unknown_handler_fails_with_available_names(capsys):
    with set_env({"FUNC_HANDLER": "nonexistent"}):
        rc = cli.main(["serve", *ENTRYPOINTS, "--port", "0"])
    assert rc == 2
    err = capsys.readouterr().err
    assert "No function named nonexistent available" in err
    assert "say_hello, say_goodbye, echo_or_panic" in err


def test_serve_without_handler_fails(capsys):
    with set_env({"FUNC_HANDLER": None}):
        rc = cli.main(["serve", *ENTRYPOINTS])
    assert rc == 2
    assert "FUNC_HANDLER" in capsys.readouterr().err


def test_serve_bad_entrypoint_fails(capsys):
    rc = cli.main(["serve", "kubeless_missing_module:handler", "--handler", "handler"])
    assert rc == 2
    assert "kubeless_missing_module" in capsys.readouterr().err


def test_serve_command_handles_http_request():
    port = _free_port()
    cmd = [sys.executable, "-m", "kubeless.cli", "serve", *ENTRYPOINTS, "--host", HOST, "--port", str(port), "--quiet"]
    with running(cmd, _subprocess_env(FUNC_HANDLER="say_goodbye")):
        _wait_for_port(port)
        with urlopen(Request(f"http://{HOST}:{port}/", data=b"World", method="POST"), timeout=5) as response:
            assert response.status == 200
            assert response.read().decode("utf-8") == "Goodbye, World"
        with urlopen(f"http://{HOST}:{port}/", timeout=5) as response:
            assert response.read().decode("utf-8") == "Goodbye"
        with urlopen(f"http://{HOST}:{port}/healthz", timeout=5) as response:
            assert response.read() == b"OK"


def test_embedded_start_serves_selected_function():
    port = _free_port()
    cmd = [sys.executable, str(HELLO)]
    env = _subprocess_env(FUNC_HANDLER="say_hello", FUNC_HOST=HOST, FUNC_PORT=port)
    with running(cmd, env):
        _wait_for_port(port)
        with urlopen(Request(f"http://{HOST}:{port}/", data=b"World", method="POST"), timeout=5) as response:
            assert response.read().decode("utf-8") == "Hello, World"


@pytest.mark.parametrize("handler", ["nonexistent", None])
def test_embedded_start_refuses_bad_configuration(handler):
    env = _subprocess_env()
    env.pop("FUNC_HANDLER", None)
    if handler is not None:
        env["FUNC_HANDLER"] = handler
    proc = subprocess.run([sys.executable, str(HELLO)], cwd=str(ROOT), env=env, capture_output=True, text=True, timeout=10)
    assert proc.returncode != 0
    if handler is None:
        assert "FUNC_HANDLER" in proc.stderr
    else:
        assert "No function named nonexistent available" in proc.stderr
        assert "say_hello, say_goodbye, echo_or_panic" in proc.stderr
