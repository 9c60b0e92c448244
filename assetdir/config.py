# assetdir/config.py

"""
Arquivo de configuração central para o servidor de assets.

Os valores abaixo são os padrões; a linha de comando (ver server.cli) pode sobrescrevê-los.
"""

# Configurações de Rede
HOST = "0.0.0.0"                # Escuta em todas as interfaces de rede
PORT = 8080                     # Porta padrão
MAX_CONNECTIONS = 100           # Número máximo de conexões enfileiradas no socket
KEEP_ALIVE_TIMEOUT = 5          # Segundos que uma conexão keep-alive aguarda por nova requisição

# Mapeamento URI -> diretório
ROOT_DIR = "src/main/resources/assets"   # Relativo ao diretório de trabalho do processo
URI_PREFIX = "/assets"                   # Normalizado para "/assets/" na inicialização
DEFAULT_FILE = "index.htm"               # Servido quando a URI aponta para um diretório
CHARSET = "UTF-8"                        # Charset adicionado aos tipos text/*

# Arquivos e Logs
LOG_FILE = "logs/server.log"             # Arquivo para registrar os logs
METRICS_CSV_FILE = "metrics/requests.csv"  # Métricas de cada requisição (CSV)
CHUNK_SIZE_BYTES = 8192                  # Tamanho de cada chunk de leitura/streaming (8 KB)

# Configurações de Cache (metadados: ETag + Last-Modified)
ENABLE_CACHE = True             # Habilita ou desabilita o cache de entradas
CACHE_CAPACITY = 1024           # Número máximo de entradas no cache

# Content-Length só é enviado abaixo deste limite (inteiro de 32 bits com sinal)
MAX_CONTENT_LENGTH = 2 ** 31 - 1
