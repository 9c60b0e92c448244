# assetdir/metrics.py

import csv
import logging
import os
import threading
from collections import Counter
from datetime import datetime, timezone

from . import config

HEADER = [
  "timestamp", "client_ip", "method", "path", "status",
  "response_time_ms", "bytes_sent", "cache_status"
]

# Status que contam como acerto do cache (entrada reaproveitada ou cliente atualizado)
HIT_STATUSES = ("HIT", "NOT_MODIFIED")

class MetricsLogger:
  """
  Registra métricas das requisições HTTP em um arquivo CSV, de forma thread-safe.

  O arquivo (e seu diretório) só é criado na primeira escrita.
  """

  def __init__(self, filepath):
    self.filepath = filepath
    self._lock = threading.Lock()
    self._initialized = False

  def _ensure_file(self):
    """Cria o diretório e o arquivo CSV com o cabeçalho, se necessário."""
    if self._initialized:
      return

    directory = os.path.dirname(self.filepath)
    if directory:
      os.makedirs(directory, exist_ok=True)

    if not os.path.exists(self.filepath) or os.path.getsize(self.filepath) == 0:
      with open(self.filepath, 'w', newline='') as f:
        csv.writer(f).writerow(HEADER)
    self._initialized = True

  def log_request(self, client_ip, method, path, status, response_time_ms, bytes_sent, cache_status):
    """
    Registra uma requisição no CSV.

    Args:
      client_ip (str): Endereço IP do cliente.
      method (str): Método HTTP.
      path (str): URI requisitada.
      status (int): Código de status da resposta.
      response_time_ms (float): Tempo de resposta em milissegundos.
      bytes_sent (int): Bytes de corpo enviados.
      cache_status (str): "HIT", "MISS", "NOT_MODIFIED", "DISABLED" ou "N/A".
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    row = [
      timestamp, client_ip, method, path, status,
      f"{response_time_ms:.2f}", bytes_sent, cache_status
    ]

    with self._lock:
      try:
        self._ensure_file()
        with open(self.filepath, 'a', newline='') as f:
          csv.writer(f).writerow(row)
      except OSError as e:
        logging.error(f"Falha ao escrever no arquivo de métricas {self.filepath}: {e}")


def read_records(filepath=None):
  """Lê o CSV de métricas e retorna uma lista de dicionários."""
  with open(filepath or config.METRICS_CSV_FILE, 'r', newline='') as f:
    return list(csv.DictReader(f))


def summarize(records):
  """
  Calcula um resumo das métricas: latência, status, taxa de acerto do cache e bytes.
  """
  if not records:
    return None

  latencies = [float(r['response_time_ms']) for r in records]
  cache_statuses = Counter(r['cache_status'] for r in records)

  cache_hits = sum(cache_statuses.get(s, 0) for s in HIT_STATUSES)
  cache_misses = cache_statuses.get("MISS", 0)
  lookups = cache_hits + cache_misses

  return {
    "total_requests": len(records),
    "status_counts": dict(Counter(str(r['status']) for r in records)),
    "avg_latency_ms": sum(latencies) / len(latencies),
    "max_latency_ms": max(latencies),
    "cache_hits": cache_hits,
    "cache_misses": cache_misses,
    "hit_rate": (cache_hits / lookups * 100) if lookups > 0 else 0.0,
    "total_bytes": sum(int(r['bytes_sent']) for r in records),
  }


_metrics_logger = None
_metrics_lock = threading.Lock()

def get_metrics_logger():
  """Instância global do logger de métricas (criada sob demanda)."""
  global _metrics_logger
  with _metrics_lock:
    if _metrics_logger is None:
      _metrics_logger = MetricsLogger(config.METRICS_CSV_FILE)
    return _metrics_logger
