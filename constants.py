#!/usr/bin/env python3

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
GECKOTERMINAL_API_BASE_URL = 'https://api.geckoterminal.com/api/v2'
JUPITER_PRICE_API_URL = 'https://lite-api.jup.ag/price/v3'
DISCOVERY_API_DEFAULT_URL = 'https://frenzy-next-rest-api.preview.frenzy.fun/v1/token/latest'
DISCOVERY_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'
)
HTTP_USER_AGENT = 'MemeTradeSim/1.0'

# --- Environment Variable Names ---
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'
DISCOVERY_API_URL_ENV_VAR = 'DISCOVERY_API_URL'
DB_PATH_ENV_VAR = 'SIM_DB_PATH'
API_PORT_ENV_VAR = 'API_PORT'

# --- Chain ---
DEFAULT_NETWORK = 'solana'

# --- Lifecycle Defaults ---
DEFAULT_DISCOVERY_COUNT = 20
DEFAULT_PROFIT_MULTIPLIER = 1.5
DEFAULT_HOLDING_HOURS = 16.0

# --- Candle Pagination ---
OHLCV_PAGE_LIMIT = 1000
OHLCV_MAX_PAGES = 100
CANDLE_INTERVAL_SECONDS = 60

# --- Upstream Retry Policy ---
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.25
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
RETRYABLE_STATUS_CODES = frozenset({429})

# Jupiter rejects more than 100 ids per request.
PRICE_BATCH_LIMIT = 100

# --- Query Endpoint ---
DEFAULT_API_HOST = '127.0.0.1'
DEFAULT_API_PORT = 8787

# --- Portfolio Report ---
DEFAULT_STARTING_CAPITAL = 5.0
DEFAULT_INVESTMENT_PER_COIN = 0.5
DEFAULT_DB_PATH = 'data/meme_trades.db'
