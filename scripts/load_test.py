# scripts/load_test.py

import argparse
import csv
import os
import time
import requests
from concurrent.futures import ThreadPoolExecutor, as_completed

def make_request(session, url, etag=None):
  """
  Realiza uma única requisição HTTP e mede sua latência.

  Se `etag` for informado, a requisição é condicional (If-None-Match).

  Returns:
    tuple: (latency_ms, status_code, success)
  """
  headers = {"If-None-Match": etag} if etag else {}
  start_time = time.perf_counter()
  try:
    with session.get(url, headers=headers, timeout=10) as response:
      latency = time.perf_counter() - start_time
      return (latency * 1000, response.status_code, True)
  except requests.RequestException:
    latency = time.perf_counter() - start_time
    return (latency * 1000, None, False)

def fetch_etag(url):
  """Faz um GET inicial e retorna a ETag do asset (ou None)."""
  response = requests.get(url, timeout=10)
  response.raise_for_status()
  return response.headers.get("ETag")

def run_load_test(url, num_clients, requests_per_client, etag=None):
  """
  Executa o teste de carga com clientes concorrentes.

  Returns:
    list: Uma lista de tuplas com os resultados de cada requisição.
  """
  total_requests = num_clients * requests_per_client
  mode = "condicional (304)" if etag else "completo (200)"
  print(f"Iniciando teste de carga em {url} - modo {mode}")
  print(f"Clientes concorrentes: {num_clients}")
  print(f"Requisições por cliente: {requests_per_client}")
  print(f"Total de requisições: {total_requests}\n")

  results = []

  with ThreadPoolExecutor(max_workers=num_clients) as executor:
    # Uma sessão por cliente para reutilizar a conexão (keep-alive)
    sessions = [requests.Session() for _ in range(num_clients)]

    futures = [
      executor.submit(make_request, sessions[i % num_clients], url, etag)
      for i in range(total_requests)
    ]

    for i, future in enumerate(as_completed(futures)):
      results.append(future.result())
      print(f"Progresso: {i + 1}/{total_requests}", end='\r')

  print("\nTeste de carga concluído.\n")
  return results

def save_results_to_csv(results, filepath):
  """
  Salva os resultados do teste de carga em um arquivo CSV.
  """
  print(f"Salvando resultados em '{filepath}'...")
  with open(filepath, 'w', newline='') as f:
    writer = csv.writer(f)
    writer.writerow(["latency_ms", "status_code", "success"])
    writer.writerows(results)
  print("Resultados salvos com sucesso.\n")

if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Teste de carga para o servidor de assets.")
  parser.add_argument("path", help="URI do asset a ser testado (ex: /assets/index.htm)")
  parser.add_argument("-c", "--clients", type=int, default=10, help="Número de clientes concorrentes.")
  parser.add_argument("-n", "--requests-per-client", type=int, default=10, help="Número de requisições por cliente.")
  parser.add_argument("--port", type=int, default=8080, help="Porta do servidor.")
  parser.add_argument("--etag", action="store_true",
                      help="Envia If-None-Match com a ETag atual (mede o caminho do 304).")

  args = parser.parse_args()

  target_url = f"http://localhost:{args.port}{args.path}"
  etag = fetch_etag(target_url) if args.etag else None

  test_results = run_load_test(target_url, args.clients, args.requests_per_client, etag)

  os.makedirs("results", exist_ok=True)
  save_results_to_csv(test_results, "results/load_test_results.csv")
