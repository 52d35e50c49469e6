import os
from dotenv import load_dotenv

# Chargement des variables d'environnement
load_dotenv()

SERVICE_NAME = "storefront-service"

# URL du catalogue (de local à Docker)
CATALOG_URL = os.getenv("CATALOG_SERVICE_URL", "http://localhost:3000")
CATALOG_TIMEOUT = float(os.getenv("CATALOG_TIMEOUT", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_SINK = os.getenv("LOG_SINK", "logs.json")

PORT = int(os.getenv("PORT", 8003))
