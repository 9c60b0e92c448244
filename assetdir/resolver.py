# assetdir/resolver.py

import os

from . import config

"""
Traduz a URI da requisição para um caminho no sistema de arquivos.
"""

class AssetError(Exception):
  """Erro base da resolução de assets."""

class NotFound(AssetError):
  """O arquivo não existe (ou é um diretório sem arquivo padrão)."""

class BadPrefix(NotFound):
  """A URI não começa com o prefixo configurado."""

class Forbidden(AssetError):
  """O caminho resolvido escapa do diretório raiz."""


def normalize_uri_prefix(uri_prefix):
  """
  Garante a barra inicial e final e remove segmentos vazios.

  Ex.: "assets" -> "/assets/", "//a//b" -> "/a/b/", "" -> "/".
  """
  segments = [s for s in (uri_prefix or "").split('/') if s]
  if not segments:
    return '/'
  return '/' + '/'.join(segments) + '/'


class Resolver:
  """
  Mapeia `uri_prefix + tail` para `root_dir / tail`.

  Não guarda estado depois de construído, então pode ser usado por várias threads.
  """

  def __init__(self, root_dir=None, uri_prefix=None, default_file=config.DEFAULT_FILE):
    self.root_dir = os.path.abspath(root_dir or config.ROOT_DIR)
    self.uri_prefix = normalize_uri_prefix(config.URI_PREFIX if uri_prefix is None else uri_prefix)
    self.default_file = default_file or None

  def __repr__(self):
    return f"Resolver({self.uri_prefix!r} -> {self.root_dir!r}, default_file={self.default_file!r})"

  def resolve(self, request_uri):
    """
    Retorna o caminho do arquivo para `request_uri`.

    Lança BadPrefix, NotFound ou Forbidden.
    """
    # Prefixo comparado como string literal (a normalização já foi feita no construtor)
    if not request_uri.startswith(self.uri_prefix):
      raise BadPrefix(request_uri)

    # Um caminho com byte nulo não pode existir no sistema de arquivos
    if "\x00" in request_uri:
      raise NotFound(request_uri)

    tail = request_uri[len(self.uri_prefix):]
    candidate = os.path.join(self.root_dir, tail)

    if os.path.isdir(candidate) and self.default_file:
      candidate = os.path.join(candidate, self.default_file)

    # Segurança: o caminho real precisa continuar dentro do diretório raiz
    real_root = os.path.realpath(self.root_dir)
    real_candidate = os.path.realpath(candidate)
    if real_candidate != real_root and not real_candidate.startswith(real_root + os.sep):
      raise Forbidden(request_uri)

    if not os.path.isfile(candidate):
      raise NotFound(request_uri)

    return candidate
