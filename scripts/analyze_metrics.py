# scripts/analyze_metrics.py

import argparse

from assetdir import config
from assetdir.metrics import read_records, summarize

def analyze_metrics(filepath):
  """
  Lê o arquivo de métricas do servidor e imprime um resumo das estatísticas.
  """
  try:
    records = read_records(filepath)
  except FileNotFoundError:
    print(f"Erro: Arquivo de métricas '{filepath}' não encontrado.")
    return

  summary = summarize(records)
  if summary is None:
    print("Nenhum registro de métricas encontrado.")
    return

  print("--- Análise de Métricas do Servidor ---")
  print(f"\nTotal de Requisições: {summary['total_requests']}")

  print("\nLatência (Tempo de Resposta):")
  print(f"  - Média: {summary['avg_latency_ms']:.2f} ms")
  print(f"  - Máxima: {summary['max_latency_ms']:.2f} ms")

  print("\nStatus das Respostas:")
  for status, count in sorted(summary['status_counts'].items()):
    print(f"  - {status}: {count} requisições")

  print("\nDesempenho do Cache de ETags:")
  print(f"  - Hits (cache + 304): {summary['cache_hits']}")
  print(f"  - Misses (MD5 calculado): {summary['cache_misses']}")
  print(f"  - Taxa de Acerto (Hit Rate): {summary['hit_rate']:.2f}%")

  print("\nTransferência de Dados:")
  print(f"  - Total de Bytes Enviados: {summary['total_bytes'] / (1024*1024):.2f} MB")
  print("\n------------------------------------")


if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Resumo das métricas do servidor de assets.")
  parser.add_argument("--file", default=config.METRICS_CSV_FILE, help="Arquivo CSV de métricas.")
  args = parser.parse_args()
  analyze_metrics(args.file)
