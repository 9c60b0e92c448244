# tests/test_server.py

import io
import os
import socket
import threading

import pytest
import requests

from assetdir.handler import AssetsHandler, Response
from assetdir.resolver import Resolver
from assetdir.server import (
  BadRequest, bind_socket, build_headers, parse_request, request_path, serve, wants_keep_alive
)

def test_parse_request():
  raw = b"GET /assets/a.txt HTTP/1.1\r\nHost: localhost\r\nIf-None-Match: \"abc\"\r\n\r\n"
  method, target, version, headers = parse_request(io.BytesIO(raw))
  assert (method, target, version) == ("GET", "/assets/a.txt", "HTTP/1.1")
  assert headers == {"host": "localhost", "if-none-match": '"abc"'}

def test_parse_request_eof():
  assert parse_request(io.BytesIO(b"")) is None

@pytest.mark.parametrize("raw", [
  b"GET /assets/a.txt\r\n\r\n",
  b"GET /a FTP/1.0\r\n\r\n",
  b"GET /a HTTP/1.1\r\nsem-dois-pontos\r\n\r\n",
  b"GET /" + b"a" * 70000 + b" HTTP/1.1\r\n\r\n",
])
def test_parse_request_rejects_malformed(raw):
  with pytest.raises(BadRequest):
    parse_request(io.BytesIO(raw))

def test_request_path():
  assert request_path("/assets/my%20file.txt?v=1#x") == "/assets/my file.txt"
  assert request_path("http://localhost:8080/assets/a.txt") == "/assets/a.txt"

def test_wants_keep_alive():
  assert wants_keep_alive("HTTP/1.1", {})
  assert not wants_keep_alive("HTTP/1.1", {"connection": "close"})
  assert not wants_keep_alive("HTTP/1.0", {})
  assert wants_keep_alive("HTTP/1.0", {"connection": "Keep-Alive"})

def test_build_headers():
  head = build_headers(304, "Not Modified", {"ETag": '"abc"'})
  assert head.startswith("HTTP/1.1 304 Not Modified\r\n")
  assert "ETag: \"abc\"\r\n" in head
  assert "Date: " in head
  assert head.endswith("\r\n\r\n")

# --- Conexões brutas (sem a biblioteca requests) ---

@pytest.fixture
def server_address(tmp_path):
  root = tmp_path / "assets"
  root.mkdir()
  (root / "a.txt").write_bytes(b"hello\n")

  handler = AssetsHandler(Resolver(str(root), "/assets/"), store=None)
  server_socket = bind_socket("127.0.0.1", 0)
  threading.Thread(target=serve, args=(server_socket, handler), daemon=True).start()

  yield server_socket.getsockname()

  try:
    server_socket.shutdown(socket.SHUT_RDWR)
  except OSError:
    pass
  server_socket.close()

def exchange(address, raw):
  """Envia `raw` e lê tudo até o servidor fechar a conexão."""
  with socket.create_connection(address, timeout=5) as client:
    client.sendall(raw)
    chunks = []
    while True:
      chunk = client.recv(4096)
      if not chunk:
        break
      chunks.append(chunk)
  return b"".join(chunks)

def test_malformed_request_returns_400(server_address):
  response = exchange(server_address, b"BOGUS\r\n\r\n")
  assert response.startswith(b"HTTP/1.1 400 Bad Request\r\n")
  assert b"Connection: close" in response

def test_connection_close_is_honored(server_address):
  response = exchange(server_address, b"GET /assets/a.txt HTTP/1.1\r\nConnection: close\r\n\r\n")
  assert response.startswith(b"HTTP/1.1 200 OK\r\n")
  assert b"Connection: close" in response
  assert response.endswith(b"\r\n\r\nhello\n")

def test_http10_request_closes_after_response(server_address):
  response = exchange(server_address, b"GET /assets/nada HTTP/1.0\r\n\r\n")
  assert response.startswith(b"HTTP/1.1 404 Not Found\r\n")
  assert response.endswith(b"<h1>404 Not Found</h1>")

class LargeFileHandler:
  """Handler que responde sempre com o arquivo, sem Content-Length (como um asset >= 2 GB)."""
  def __init__(self, path):
    self.path = path

  def handle(self, method, path, headers):
    return Response(200, {"Content-Type": "application/octet-stream"}, file=open(self.path, 'rb'))

def test_body_without_content_length_is_streamed_until_close(tmp_path):
  data = os.urandom(3 * 8192 + 123)
  path = tmp_path / "big.bin"
  path.write_bytes(data)

  server_socket = bind_socket("127.0.0.1", 0)
  threading.Thread(target=serve, args=(server_socket, LargeFileHandler(str(path))), daemon=True).start()
  try:
    host, port = server_socket.getsockname()
    response = requests.get(f"http://{host}:{port}/assets/big.bin", timeout=5)
    assert response.status_code == 200
    assert "Content-Length" not in response.headers
    assert response.headers["Connection"] == "close"
    assert response.content == data
  finally:
    try:
      server_socket.shutdown(socket.SHUT_RDWR)
    except OSError:
      pass
    server_socket.close()
