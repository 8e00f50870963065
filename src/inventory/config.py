"""
Configuration de l'application.

Les réglages sont lus dans les variables d'environnement préfixées
INVENTORY_, avec des valeurs par défaut adaptées au développement
local (SQLite, SMTP sur localhost).
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_uri: str
    smtp_host: str
    smtp_port: int
    alert_sender: str
    alert_recipient: str
    low_stock_threshold: str
    command_max_attempts: int
    log_level: str


def get_settings() -> Settings:
    return Settings(
        database_uri=os.getenv("INVENTORY_DATABASE_URI", "sqlite:///inventory.db"),
        smtp_host=os.getenv("INVENTORY_SMTP_HOST", "localhost"),
        smtp_port=int(os.getenv("INVENTORY_SMTP_PORT", "587")),
        alert_sender=os.getenv("INVENTORY_ALERT_SENDER", "inventory@example.com"),
        alert_recipient=os.getenv("INVENTORY_ALERT_RECIPIENT", "stock@example.com"),
        low_stock_threshold=os.getenv("INVENTORY_LOW_STOCK_THRESHOLD", "10"),
        # nombre total de tentatives, première exécution comprise
        command_max_attempts=int(os.getenv("INVENTORY_COMMAND_MAX_ATTEMPTS", "3")),
        log_level=os.getenv("INVENTORY_LOG_LEVEL", "INFO").upper(),
    )
