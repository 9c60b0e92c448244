# assetdir/handler.py

import os
import re
import logging
from email.utils import formatdate, parsedate_to_datetime

from . import config
from .cache import EntryStore, load_entry
from .resolver import Resolver, NotFound, Forbidden

"""
Lógica HTTP dos assets: obtém a Entry (cache ou disco), valida as requisições
condicionais e monta a resposta (200, 304, 403, 404 ou 405).

Não fala com sockets; quem escreve a resposta na conexão é o server.py.
"""

# --- Mapeamento de Tipos MIME (por extensão) ---
MIME_TYPES = {
  '.htm': 'text/html',
  '.html': 'text/html',
  '.css': 'text/css',
  '.js': 'application/javascript',
  '.json': 'application/json',
  '.map': 'application/json',
  '.xml': 'text/xml',
  '.txt': 'text/plain',
  '.csv': 'text/csv',
  '.svg': 'image/svg+xml',
  '.jpg': 'image/jpeg',
  '.jpeg': 'image/jpeg',
  '.png': 'image/png',
  '.gif': 'image/gif',
  '.webp': 'image/webp',
  '.ico': 'image/x-icon',
  '.woff': 'font/woff',
  '.woff2': 'font/woff2',
  '.ttf': 'font/ttf',
  '.pdf': 'application/pdf',
  '.zip': 'application/zip',
  '.wasm': 'application/wasm',
}

DEFAULT_MEDIA_TYPE = 'text/html; charset=UTF-8'

_TOKEN = re.compile(r"^[A-Za-z0-9!#$%&'*+.^_`|~-]+$")

STATUS_MESSAGES = {
  200: "OK", 304: "Not Modified", 400: "Bad Request", 403: "Forbidden",
  404: "Not Found", 405: "Method Not Allowed", 500: "Internal Server Error"
}


def parse_media_type(value):
  """
  Separa um media type em (tipo, subtipo, parâmetros).

  Lança ValueError se o valor estiver mal formado.
  """
  parts = value.split(';')
  type_, sep, subtype = parts[0].strip().partition('/')
  if not sep or not _TOKEN.match(type_) or not _TOKEN.match(subtype):
    raise ValueError(f"Media type inválido: {value!r}")

  params = {}
  for param in parts[1:]:
    name, sep, param_value = param.strip().partition('=')
    if not sep or not _TOKEN.match(name):
      raise ValueError(f"Parâmetro inválido em {value!r}: {param!r}")
    params[name.lower()] = param_value.strip().strip('"')
  return type_.lower(), subtype.lower(), params


def content_type_for(request_uri, mime_types=MIME_TYPES, charset=config.CHARSET):
  """
  Retorna o Content-Type de acordo com a extensão da URI.

  Extensão desconhecida ou tipo mal formado resultam em DEFAULT_MEDIA_TYPE.
  Tipos text/* recebem o charset configurado.
  """
  _, ext = os.path.splitext(request_uri)
  mime_type = mime_types.get(ext.lower())
  if mime_type is None:
    return DEFAULT_MEDIA_TYPE

  try:
    type_, subtype, params = parse_media_type(mime_type)
  except ValueError:
    return DEFAULT_MEDIA_TYPE

  if charset and type_ == 'text':
    params['charset'] = charset

  value = f"{type_}/{subtype}"
  for name, param_value in params.items():
    value += f"; {name}={param_value}"
  return value


def http_date(millis):
  """Formata milissegundos desde a época como data HTTP (RFC 1123)."""
  return formatdate(timeval=millis / 1000, localtime=False, usegmt=True)


def parse_http_date(date_str):
  """
  Converte uma data em formato HTTP para milissegundos. Retorna None se for inválida.
  """
  try:
    return int(parsedate_to_datetime(date_str).timestamp() * 1000)
  except (TypeError, ValueError, IndexError, OverflowError):
    return None


class Response:
  """
  Resposta montada pelo handler.

  O corpo é `body` (bytes) ou `file` (arquivo binário aberto, transmitido em chunks
  e fechado pelo servidor).
  """

  def __init__(self, status, headers=None, body=b"", file=None, cache_status="N/A"):
    self.status = status
    self.headers = headers or {}
    self.body = body
    self.file = file
    self.cache_status = cache_status

  @property
  def reason(self):
    return STATUS_MESSAGES.get(self.status, "Unknown Status")

  def close(self):
    if self.file is not None:
      self.file.close()
      self.file = None

  def __repr__(self):
    return f"<Response {self.status} {self.reason} cache={self.cache_status}>"


def error_response(status_code, extra_headers=None):
  """Resposta de erro simples com um corpo HTML."""
  status_text = STATUS_MESSAGES.get(status_code, "Unknown Error")
  body = f"<h1>{status_code} {status_text}</h1>".encode('utf-8')
  headers = {
    "Content-Type": "text/html; charset=utf-8",
    "Content-Length": len(body),
  }
  headers.update(extra_headers or {})
  return Response(status_code, headers, body)


class AssetsHandler:
  """
  Atende GETs para qualquer URI abaixo do prefixo configurado.

  Possui um Resolver e um EntryStore (None desabilita o cache).
  """

  def __init__(self, resolver, store=None, mime_types=None, charset=config.CHARSET):
    self.resolver = resolver
    self.store = store
    self.mime_types = MIME_TYPES if mime_types is None else mime_types
    self.charset = charset

  @property
  def uri_prefix(self):
    return self.resolver.uri_prefix

  def get_entry(self, request_uri):
    """
    Retorna (entry, cache_status). Lança NotFound/BadPrefix/Forbidden.
    """
    loaded = []

    def loader():
      entry = load_entry(self.resolver.resolve(request_uri))
      loaded.append(entry)
      return entry

    if self.store is None:
      return loader(), "DISABLED"

    entry = self.store.compute(request_uri, loader)
    return entry, "MISS" if loaded else "HIT"

  @staticmethod
  def is_current(headers, entry):
    """
    Retorna True se o cliente já tem a versão atual do asset.
    """
    if headers.get('if-none-match') == entry.etag:
      return True

    if_modified_since = headers.get('if-modified-since')
    if if_modified_since:
      since = parse_http_date(if_modified_since)
      # A data HTTP só tem precisão de segundos: compara com o Last-Modified enviado.
      # Um touch dentro do mesmo segundo continua valendo 304; a ETag cobre o conteúdo.
      last_modified = entry.last_modified - entry.last_modified % 1000
      if since is not None and since >= last_modified:
        return True
    return False

  def handle(self, method, request_uri, headers=None):
    """
    Processa uma requisição e retorna uma Response.

    `headers` é um dicionário com as chaves em minúsculas.
    """
    headers = headers or {}

    if method != 'GET':
      return error_response(405, {"Allow": "GET"})

    try:
      entry, cache_status = self.get_entry(request_uri)
    except Forbidden:
      logging.info(f"Acesso negado (fora do diretório raiz): {request_uri}")
      return error_response(403)
    except (NotFound, FileNotFoundError, NotADirectoryError):
      return error_response(404)

    if self.is_current(headers, entry):
      return Response(304, {"ETag": entry.etag}, cache_status="NOT_MODIFIED")

    # O arquivo pode ter sumido entre a resolução e a leitura
    try:
      f = entry.open()
    except (FileNotFoundError, NotADirectoryError):
      return error_response(404)

    try:
      content_length = os.fstat(f.fileno()).st_size
    except OSError:
      f.close()
      raise

    response_headers = {
      "Last-Modified": http_date(entry.last_modified),
      "ETag": entry.etag,
      "Content-Type": content_type_for(request_uri, self.mime_types, self.charset),
    }
    if 0 <= content_length < config.MAX_CONTENT_LENGTH:
      response_headers["Content-Length"] = content_length

    return Response(200, response_headers, file=f, cache_status=cache_status)


def create_handler(root_dir=None, uri_prefix=None, default_file=None,
                   cache_capacity=None, charset=None, enable_cache=None):
  """
  Monta um AssetsHandler a partir dos valores de config.py (ou dos argumentos).
  """
  resolver = Resolver(
    root_dir or config.ROOT_DIR,
    config.URI_PREFIX if uri_prefix is None else uri_prefix,
    config.DEFAULT_FILE if default_file is None else default_file
  )
  enable_cache = config.ENABLE_CACHE if enable_cache is None else enable_cache
  store = EntryStore(config.CACHE_CAPACITY if cache_capacity is None else cache_capacity) if enable_cache else None
  return AssetsHandler(resolver, store, charset=config.CHARSET if charset is None else charset)
