# assetdir/server.py

import socket
import threading
import os
import sys
import logging
import argparse
from datetime import datetime, timezone
from time import time
from urllib.parse import urlsplit, unquote

# Importa as configurações
from . import config

from .handler import create_handler, error_response
from .metrics import get_metrics_logger

SERVER_NAME = "assetdir/1.0"
MAX_LINE_BYTES = 65536          # Tamanho máximo da linha de requisição e de cada cabeçalho
MAX_HEADERS = 100

class BadRequest(ValueError):
  """Requisição HTTP mal formada."""


def configure_logging(log_file=None, level=logging.INFO):
  """
  Configura o logging do processo: arquivo de log + console.
  """
  log_file = log_file or config.LOG_FILE
  log_dir = os.path.dirname(log_file)
  if log_dir:
    # Garante que o diretório de logs existe
    os.makedirs(log_dir, exist_ok=True)

  logging.basicConfig(
    level=level,
    format='%(asctime)s - %(message)s',
    handlers=[
      logging.FileHandler(log_file),
      logging.StreamHandler(sys.stdout) # Também exibe logs no console
    ]
  )


def parse_request(rfile):
  """
  Lê a linha de requisição e os cabeçalhos de `rfile`.

  Retorna (method, target, version, headers) com as chaves dos cabeçalhos em minúsculas,
  ou None se o cliente fechou a conexão.
  """
  line = rfile.readline(MAX_LINE_BYTES + 1)
  if not line:
    return None
  if len(line) > MAX_LINE_BYTES:
    raise BadRequest("Linha de requisição muito longa")

  try:
    method, target, version = line.decode('latin-1').strip().split()
  except ValueError:
    raise BadRequest(f"Linha de requisição inválida: {line[:100]!r}")
  if not version.startswith("HTTP/"):
    raise BadRequest(f"Versão HTTP inválida: {version!r}")

  headers = {}
  while True:
    line = rfile.readline(MAX_LINE_BYTES + 1)
    if len(line) > MAX_LINE_BYTES:
      raise BadRequest("Cabeçalho muito longo")
    if line in (b'\r\n', b'\n', b''):
      break # Fim dos cabeçalhos
    if len(headers) >= MAX_HEADERS:
      raise BadRequest("Cabeçalhos demais")

    key, sep, value = line.decode('latin-1').partition(':')
    if not sep:
      raise BadRequest(f"Cabeçalho inválido: {line[:100]!r}")
    headers[key.strip().lower()] = value.strip()

  return method, target, version, headers


def request_path(target):
  """
  Extrai o caminho da URI de requisição (sem query string) já decodificado.
  """
  return unquote(urlsplit(target).path)


def wants_keep_alive(version, headers):
  connection = headers.get('connection', '').lower()
  if version == "HTTP/1.0":
    return connection == 'keep-alive'
  return connection != 'close'


def build_headers(status_code, reason, extra_headers):
  """
  Constrói a linha de status e os cabeçalhos HTTP.
  """
  response_line = f"HTTP/1.1 {status_code} {reason}\r\n"

  headers = {
    "Date": datetime.now(timezone.utc).strftime('%a, %d %b %Y %H:%M:%S GMT'),
    "Server": SERVER_NAME,
  }
  headers.update(extra_headers)

  headers_str = "".join(f"{k}: {v}\r\n" for k, v in headers.items())
  return f"{response_line}{headers_str}\r\n"


class ClientThread(threading.Thread):
  """
  Thread para lidar com uma única conexão de cliente, suportando keep-alive.
  """
  def __init__(self, client_socket, client_address, handler, metrics_logger=None):
    super().__init__()
    self.client_socket = client_socket
    self.client_address = client_address
    self.handler = handler
    self.metrics_logger = metrics_logger
    self.daemon = True    # Permite que o programa principal saia mesmo se as threads estiverem ativas

  def run(self):
    """
    Processa requisições do cliente em um loop para suportar keep-alive.
    """
    # Se nenhuma requisição chegar dentro do timeout, a conexão é fechada.
    self.client_socket.settimeout(config.KEEP_ALIVE_TIMEOUT)
    rfile = self.client_socket.makefile('rb')

    try:
      while True:
        start_time = time()

        try:
          request = parse_request(rfile)
        except BadRequest as e:
          logging.info(f"Requisição inválida de {self.client_address[0]}: {e}")
          bytes_sent = self.send_response(error_response(400), keep_alive=False)
          self.log_metrics("INVALID", "INVALID", 400, start_time, bytes_sent, "N/A")
          break

        if request is None:
          # Cliente fechou a conexão
          break

        if not self.process_request(request, start_time):
          break

    except socket.timeout:
      logging.info(f"Conexão com {self.client_address[0]} expirou (timeout).")
    except OSError as e:
      # Cliente desconectou no meio da resposta, por exemplo
      logging.error(f"Erro de conexão com o cliente {self.client_address[0]}: {e}")
    finally:
      rfile.close()
      self.client_socket.close()

  def process_request(self, request, start_time):
    """
    Passa a requisição para o handler e envia a resposta.

    Retorna True se a conexão deve continuar aberta (keep-alive).
    """
    method, target, version, headers = request
    path = request_path(target)
    keep_alive = wants_keep_alive(version, headers)

    status_code = 500 # Status padrão para erro inesperado
    bytes_sent = 0
    cache_status = "N/A"
    response = None

    try:
      try:
        response = self.handler.handle(method, path, headers)
      except Exception as e:
        # Erro antes de começar a resposta (ex.: falha ao ler o arquivo): 500
        logging.error(f"Erro inesperado ao processar '{method} {path}': {e}")
        response = error_response(500)

      status_code = response.status
      cache_status = response.cache_status

      # Sem Content-Length o fim do corpo só é marcado pelo fechamento da conexão
      if status_code >= 400 or (status_code == 200 and "Content-Length" not in response.headers):
        keep_alive = False

      bytes_sent = self.send_response(response, keep_alive)
    finally:
      if response is not None:
        response.close()
      self.log_metrics(method, path, status_code, start_time, bytes_sent, cache_status)

    return keep_alive

  def send_response(self, response, keep_alive):
    """
    Escreve a resposta no socket. Retorna o número de bytes de corpo enviados.
    """
    extra_headers = dict(response.headers)
    extra_headers["Connection"] = "keep-alive" if keep_alive else "close"
    head = build_headers(response.status, response.reason, extra_headers).encode('utf-8')

    if response.file is None:
      self.client_socket.sendall(head + response.body)
      return len(response.body)

    self.client_socket.sendall(head)
    bytes_sent = 0
    while True:
      chunk = response.file.read(config.CHUNK_SIZE_BYTES)
      if not chunk:
        break
      self.client_socket.sendall(chunk)
      bytes_sent += len(chunk)
    return bytes_sent

  def log_metrics(self, method, path, status_code, start_time, bytes_sent, cache_status):
    if self.metrics_logger is None:
      return
    self.metrics_logger.log_request(
      client_ip=self.client_address[0],
      method=method,
      path=path,
      status=status_code,
      response_time_ms=(time() - start_time) * 1000,
      bytes_sent=bytes_sent,
      cache_status=cache_status
    )


def bind_socket(host, port):
  """
  Cria o socket TCP/IP do servidor, já escutando.
  """
  server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
  # Permite reutilizar o endereço para evitar erro "Address already in use"
  server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
  try:
    server_socket.bind((host, port))
    server_socket.listen(config.MAX_CONNECTIONS)
  except OSError:
    server_socket.close()
    raise
  return server_socket


def serve(server_socket, handler, metrics_logger=None):
  """
  Aceita conexões até o socket ser fechado, com uma thread por cliente.
  """
  while True:
    try:
      client_socket, client_address = server_socket.accept()
    except OSError:
      # Socket do servidor fechado
      break

    logging.debug(f"Conexão aceita de {client_address[0]}:{client_address[1]}")
    ClientThread(client_socket, client_address, handler, metrics_logger).start()


def main(host, port, handler):
  """
  Função principal que inicia o servidor.
  """
  try:
    server_socket = bind_socket(host, port)
  except OSError as e:
    logging.error(f"Erro ao iniciar o servidor: {e}. A porta {port} já está em uso?")
    return

  try:
    logging.info(f"Mapeando {handler.uri_prefix}* para {handler.resolver.root_dir}")
    logging.info(f"Servidor escutando em http://{host}:{port}")
    logging.info("Pressione Ctrl+C para encerrar.")
    serve(server_socket, handler, get_metrics_logger())
  except KeyboardInterrupt:
    logging.info("Servidor encerrado pelo usuário.")
  finally:
    server_socket.close()


def cli(argv=None):
  parser = argparse.ArgumentParser(description="Servidor de arquivos estáticos (assets) com cache de ETag")
  parser.add_argument('--host', default=config.HOST,
                      help=f"Endereço para escutar (padrão: {config.HOST})")
  parser.add_argument('--port', type=int, default=config.PORT,
                      help=f"Porta para o servidor escutar (padrão: {config.PORT})")
  parser.add_argument('--root', default=config.ROOT_DIR,
                      help=f"Diretório com os assets (padrão: {config.ROOT_DIR})")
  parser.add_argument('--prefix', default=config.URI_PREFIX,
                      help=f"Prefixo de URI mapeado para o diretório (padrão: {config.URI_PREFIX})")
  parser.add_argument('--default-file', default=config.DEFAULT_FILE,
                      help=f"Arquivo servido para diretórios; vazio desabilita (padrão: {config.DEFAULT_FILE})")
  parser.add_argument('--cache-capacity', type=int, default=config.CACHE_CAPACITY,
                      help=f"Número máximo de entradas no cache (padrão: {config.CACHE_CAPACITY})")
  parser.add_argument('--charset', default=config.CHARSET,
                      help=f"Charset para tipos text/*; vazio desabilita (padrão: {config.CHARSET})")
  parser.add_argument('--no-cache', action='store_true',
                      help="Desabilita o cache de ETags")
  args = parser.parse_args(argv)

  configure_logging()
  handler = create_handler(
    root_dir=args.root,
    uri_prefix=args.prefix,
    default_file=args.default_file,
    cache_capacity=args.cache_capacity,
    charset=args.charset,
    enable_cache=not args.no_cache
  )
  main(args.host, args.port, handler)


if __name__ == "__main__":
  cli()
