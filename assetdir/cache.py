# assetdir/cache.py

import os
import hashlib
import logging
import threading

from . import config

"""
Módulo que implementa o cache de metadados dos assets: cada entrada guarda o caminho
do arquivo, a data de modificação e a ETag (MD5 do conteúdo).

O cache é limitado, thread-safe e remove as entradas pela ordem de INSERÇÃO
(a mais antiga sai primeiro), não pela ordem de acesso.
"""

class Entry:
  """
  Entrada imutável do cache: (arquivo, data de modificação, ETag).

  A ETag corresponde exatamente ao conteúdo observado quando a data de modificação
  foi capturada. Uma entrada nunca é alterada; a atualização é feita por substituição.
  """
  __slots__ = ('_file', '_mtime_ns', '_etag')

  def __init__(self, file, mtime_ns, etag):
    object.__setattr__(self, '_file', file)
    object.__setattr__(self, '_mtime_ns', mtime_ns)
    object.__setattr__(self, '_etag', etag)

  def __setattr__(self, name, value):
    raise AttributeError(f"Entry é imutável: não é possível alterar '{name}'")

  def __repr__(self):
    return f"Entry(file={self._file!r}, last_modified={self.last_modified}, etag={self._etag})"

  @property
  def file(self):
    return self._file

  @property
  def mtime_ns(self):
    return self._mtime_ns

  @property
  def last_modified(self):
    """Data de modificação em milissegundos desde a época."""
    return self._mtime_ns // 1_000_000

  @property
  def etag(self):
    return self._etag

  def is_stale(self):
    """
    Retorna True se o arquivo mudou (ou sumiu) desde que a entrada foi criada.
    """
    try:
      return os.stat(self._file).st_mtime_ns != self._mtime_ns
    except (FileNotFoundError, NotADirectoryError):
      # O arquivo (ou um diretório do caminho) não existe mais
      return True

  def length(self):
    """Tamanho atual do arquivo em bytes."""
    return os.path.getsize(self._file)

  def open(self):
    return open(self._file, 'rb')


def _new_digest():
  try:
    return hashlib.md5()
  except ValueError as e:
    # Ex.: builds com FIPS que bloqueiam o MD5
    raise OSError(f"Algoritmo MD5 indisponível: {e}") from e


def load_entry(filepath, chunk_size=None):
  """
  Cria uma Entry a partir do arquivo em disco.

  O conteúdo passa pelo MD5 em chunks (nunca é carregado inteiro na memória).
  A data de modificação é lida DEPOIS do hash: se o arquivo mudar durante a leitura,
  a próxima verificação vai detectar a diferença e descartar a entrada.
  """
  chunk_size = chunk_size or config.CHUNK_SIZE_BYTES
  digest = _new_digest()

  with open(filepath, 'rb') as f:
    while True:
      chunk = f.read(chunk_size)
      if not chunk:
        break
      digest.update(chunk)

  mtime_ns = os.stat(filepath).st_mtime_ns
  etag = f'"{digest.hexdigest()}"'
  return Entry(os.path.abspath(filepath), mtime_ns, etag)


class _StoreNode:
  """Nó interno para a lista duplamente encadeada que mantém a ordem de inserção."""
  __slots__ = ('key', 'entry', 'prev', 'next')

  def __init__(self, key, entry):
    self.key = key
    self.entry = entry
    self.prev = None
    self.next = None

class EntryStore:
  """
  Mapa limitado URI -> Entry, thread-safe, com remoção por ordem de inserção.

  Combina um dicionário para acesso O(1) e uma lista duplamente encadeada
  (head = mais nova, tail = mais antiga) para remover a entrada mais antiga em O(1).
  Nenhuma operação de I/O é feita enquanto o lock está sendo segurado.
  """

  def __init__(self, capacity=None):
    capacity = config.CACHE_CAPACITY if capacity is None else capacity
    if capacity < 1:
      raise ValueError(f"Capacidade inválida para o cache: {capacity}")

    self._capacity = capacity
    self._entries = {}
    self._lock = threading.Lock()

    # Nós sentinela (dummy) para simplificar a lógica da lista
    self._head = _StoreNode(None, None)
    self._tail = _StoreNode(None, None)
    self._head.next = self._tail
    self._tail.prev = self._head

    # Estatísticas
    self._hits = 0
    self._misses = 0
    self._stale = 0
    self._evictions = 0

  # --- Métodos Privados para Gerenciar a Lista Encadeada ---

  def _unlink(self, node):
    node.prev.next = node.next
    node.next.prev = node.prev

  def _link_front(self, node):
    node.next = self._head.next
    node.prev = self._head
    self._head.next.prev = node
    self._head.next = node

  def _evict_eldest(self):
    eldest = self._tail.prev
    if eldest is self._head:
      return
    self._unlink(eldest)
    del self._entries[eldest.key]
    self._evictions += 1
    logging.debug(f"Cache EVICT: {eldest.key}")

  # --- Métodos Públicos ---

  @property
  def capacity(self):
    return self._capacity

  def get(self, key):
    """
    Retorna a Entry de `key`, ou None em caso de miss.

    Uma entrada obsoleta (mtime do arquivo diferente do capturado) é removida e conta como miss.
    """
    with self._lock:
      node = self._entries.get(key)
      if node is None:
        self._misses += 1
        return None
      entry = node.entry

    # O stat do arquivo acontece fora do lock
    if entry.is_stale():
      with self._lock:
        current = self._entries.get(key)
        # Só remove se ninguém substituiu a entrada nesse meio tempo
        if current is not None and current.entry is entry:
          self._unlink(current)
          del self._entries[key]
        self._stale += 1
        self._misses += 1
      logging.debug(f"Cache STALE: {key}")
      return None

    with self._lock:
      self._hits += 1
    return entry

  def put(self, key, entry):
    """Insere (ou substitui) a entrada de `key`, removendo a mais antiga se o cache estiver cheio."""
    with self._lock:
      old_node = self._entries.get(key)
      if old_node is not None:
        self._unlink(old_node)
        del self._entries[key]
      elif len(self._entries) >= self._capacity:
        self._evict_eldest()

      node = _StoreNode(key, entry)
      self._entries[key] = node
      self._link_front(node)

  def compute(self, key, loader):
    """
    Retorna a entrada em cache ou, em caso de miss, chama `loader()` e guarda o resultado.

    O loader roda fora do lock: misses simultâneos para a mesma chave podem calcular a
    mesma entrada mais de uma vez, e o último put vence. Erros do loader são propagados.
    """
    entry = self.get(key)
    if entry is not None:
      return entry

    logging.debug(f"Cache MISS: {key}")
    entry = loader()
    self.put(key, entry)
    return entry

  def invalidate(self, key):
    """Remove uma entrada específica do cache."""
    with self._lock:
      node = self._entries.pop(key, None)
      if node is not None:
        self._unlink(node)

  def clear(self):
    with self._lock:
      self._entries.clear()
      self._head.next = self._tail
      self._tail.prev = self._head

  def keys(self):
    """Chaves da mais antiga para a mais nova (ordem de inserção)."""
    with self._lock:
      keys = []
      node = self._tail.prev
      while node is not self._head:
        keys.append(node.key)
        node = node.prev
      return keys

  def __len__(self):
    with self._lock:
      return len(self._entries)

  def __contains__(self, key):
    with self._lock:
      return key in self._entries

  def stats(self):
    """Retorna estatísticas do cache."""
    with self._lock:
      return {
        "hits": self._hits,
        "misses": self._misses,
        "stale": self._stale,
        "evictions": self._evictions,
        "current_items": len(self._entries),
        "capacity": self._capacity
      }
