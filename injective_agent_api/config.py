import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # MongoDB
    MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
    MONGO_DB = os.getenv("MONGO_DB", "injective_agent")

    # Telegram
    TELEGRAM_API_ID = int(os.getenv("TELEGRAM_API_ID", "0"))
    TELEGRAM_API_HASH = os.getenv("TELEGRAM_API_HASH")
    TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")

    # Injective
    INJECTIVE_NETWORK = os.getenv("INJECTIVE_NETWORK", "mainnet")  # mainnet | testnet
    CHRONOS_URL = os.getenv(
        "CHRONOS_URL",
        "https://sentry.exchange.grpc-web.injective.network/api/chronos/v1",
    )
    FEE_RECIPIENT = os.getenv("FEE_RECIPIENT")  # Falls back to the sender address
    # "module:function" returning the decrypted key for (user_id, wallet); trading is off when unset
    SIGNING_KEY_PROVIDER = os.getenv("SIGNING_KEY_PROVIDER")

    # Trading / monitoring
    MARKET_REFRESH_INTERVAL_SECONDS = int(os.getenv("MARKET_REFRESH_INTERVAL_SECONDS", "300"))
    ALERT_INTERVAL_SECONDS = int(os.getenv("ALERT_INTERVAL_SECONDS", "60"))
    SLIPPAGE_BUFFER = os.getenv("SLIPPAGE_BUFFER", "0.02")
    MARKET_SNAPSHOT_PATH = os.getenv("MARKET_SNAPSHOT_PATH")  # Optional JSON warm-start file

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


config = Config()
