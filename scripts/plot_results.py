# scripts/plot_results.py

import argparse
import csv
import os
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from assetdir import config
from assetdir.metrics import read_records, summarize

# --- Diretórios de Dados e Saída ---
RESULTS_DIR = "results"
LOAD_TEST_FILE = "results/load_test_results.csv"

def plot_latency_histogram():
  """
  Gera um histograma de latências do teste de carga, separando respostas
  completas (200) das validações condicionais (304).
  """
  by_status = {}
  try:
    with open(LOAD_TEST_FILE, 'r') as f:
      for row in csv.DictReader(f):
        if row['success'].lower() != 'true':
          continue
        by_status.setdefault(row['status_code'], []).append(float(row['latency_ms']))
  except FileNotFoundError:
    print(f"Erro: Arquivo de teste de carga '{LOAD_TEST_FILE}' não encontrado.")
    return

  if not by_status:
    print("Nenhum dado de latência disponível para plotar.")
    return

  plt.figure(figsize=(10, 6))
  for status, latencies in sorted(by_status.items()):
    avg_latency = sum(latencies) / len(latencies)
    plt.hist(latencies, bins=50, alpha=0.6, edgecolor='black',
             label=f"HTTP {status} (média: {avg_latency:.2f} ms)")
  plt.title("Latência por Status de Resposta")
  plt.xlabel("Latência (ms)")
  plt.ylabel("Frequência")
  plt.legend()

  output_path = os.path.join(RESULTS_DIR, "latency_histogram.png")
  plt.savefig(output_path)
  print(f"Histograma de latências salvo em: {output_path}")
  plt.close()

def plot_cache_hit_ratio(metrics_file):
  """Gera um gráfico de pizza com hits (cache + 304) e misses a partir das métricas do servidor."""
  try:
    summary = summarize(read_records(metrics_file))
  except FileNotFoundError:
    print(f"Erro: Arquivo de métricas '{metrics_file}' não encontrado.")
    return

  if summary is None or summary['cache_hits'] + summary['cache_misses'] == 0:
    print("Nenhum dado de cache HIT ou MISS registrado.")
    return

  labels = 'Cache Hits', 'Cache Misses'
  sizes = [summary['cache_hits'], summary['cache_misses']]
  explode = (0.1, 0)  # destaca a fatia "Hits"

  plt.figure(figsize=(8, 8))
  plt.pie(sizes, explode=explode, labels=labels, autopct='%1.1f%%',
          shadow=True, startangle=90)
  plt.axis('equal')  # Garante que o gráfico seja um círculo
  plt.title("Taxa de Acerto do Cache de ETags")

  output_path = os.path.join(RESULTS_DIR, "cache_hit_ratio.png")
  plt.savefig(output_path)
  print(f"Gráfico de taxa de acerto do cache salvo em: {output_path}")
  plt.close()

if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Gera gráficos a partir dos resultados de benchmark.")
  parser.add_argument("plot_type", choices=['latency', 'cache'], help="O tipo de gráfico a ser gerado.")
  parser.add_argument("--metrics-file", default=config.METRICS_CSV_FILE, help="Arquivo CSV de métricas.")

  args = parser.parse_args()
  os.makedirs(RESULTS_DIR, exist_ok=True)

  if args.plot_type == 'latency':
    plot_latency_histogram()
  elif args.plot_type == 'cache':
    plot_cache_hit_ratio(args.metrics_file)
