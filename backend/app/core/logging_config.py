# backend/app/core/logging_config.py
# Logging centralisé : journal générique, journal d'erreurs (rotation quotidienne) et DataLogger JSON.

import glob
import json
import logging
import logging.handlers
import os
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from bson import ObjectId

from app.core.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOGGER_PREFIX = "march_fitness"


class CustomJSONEncoder(json.JSONEncoder):
    """Encodeur JSON : ObjectId en str, dates en ISO 8601."""

    def default(self, obj):
        if isinstance(obj, ObjectId):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


class DataLogger:
    """Journal des données volumineuses (payloads webhook, rapports de réconciliation, purges).

    Description:
        Un fichier `YYYY-MM-DD-data.json` par jour, contenant un tableau JSON qui reste
        valide après chaque ajout.
    """

    def __init__(self, logs_dir: str = "logs"):
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def _file_for(self, day: date) -> Path:
        return self.logs_dir / f"{day.isoformat()}-data.json"

    def log_data(
        self,
        calling_context: str,
        data: Dict[str, Any],
        user_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Ajouter une entrée au fichier du jour.

        Args:
            calling_context (str): Origine (ex. 'strava_webhook', 'reconcile_participation').
            data (dict): Contenu à archiver.
            user_data (dict | None): Contexte utilisateur (voir `extract_user_data`).
        """
        now = datetime.now()
        json_file = self._file_for(now.date())
        serialized = json.dumps(
            {
                "datetime": now.isoformat(),
                "calling_context": calling_context,
                "user_data": user_data or {},
                "data": data,
            },
            cls=CustomJSONEncoder,
        )

        content = json_file.read_text(encoding="utf-8").rstrip() if json_file.exists() else ""
        if content.endswith("]"):
            content = content[:-1].rstrip()
        if content.endswith("}"):
            content += ","
        elif not content:
            content = "["
        json_file.write_text(f"{content}{serialized}]", encoding="utf-8")


def _rotating_handler(path: Path, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(filename=path, when="midnight", interval=1, encoding="utf-8")
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(formatter)
    return handler


def _configure(name: str, level: int, path: Path, formatter: logging.Formatter) -> logging.Logger:
    logger = logging.getLogger(f"{LOGGER_PREFIX}.{name}")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(_rotating_handler(path, formatter))
    return logger


def setup_logging() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Configurer les journaux avec rotation quotidienne.

    Returns:
        tuple: (logger générique INFO+, logger erreurs ERROR+, DataLogger)
    """
    settings = get_settings()
    logs_dir = Path(settings.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    cleanup_old_logs(logs_dir, settings.logs_retention_days)

    formatter = logging.Formatter(LOG_FORMAT)
    # Générique : activités ingérées, rejets, événements webhook
    generic_logger = _configure("generic", logging.INFO, logs_dir / "generic.log", formatter)
    # Erreurs : dérive d'agrégats, échecs d'intégration, exceptions non gérées
    error_logger = _configure("errors", logging.ERROR, logs_dir / "errors.log", formatter)

    return generic_logger, error_logger, DataLogger(str(logs_dir))


def _file_date(file_name: str) -> str:
    # Date en préfixe pour les fichiers data, en suffixe de rotation pour les logs
    return file_name[:10] if file_name.endswith("-data.json") else file_name[-10:]


def cleanup_old_logs(logs_dir: Path, retention_days: int = 30) -> None:
    """Supprimer les journaux plus anciens que `retention_days`."""
    cutoff = (datetime.now() - timedelta(days=retention_days)).strftime("%Y-%m-%d")
    patterns = ("*-data.json", "generic.log.*", "errors.log.*")

    for pattern in patterns:
        for file_path in glob.glob(str(logs_dir / pattern)):
            day = _file_date(os.path.basename(file_path))
            if len(day) == 10 and day.count("-") == 2 and day < cutoff:
                try:
                    os.remove(file_path)
                except OSError:
                    continue


_loggers: Optional[tuple[logging.Logger, logging.Logger, DataLogger]] = None


def get_loggers() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Loggers configurés (initialisés au premier appel)."""
    global _loggers
    if _loggers is None:
        _loggers = setup_logging()
    return _loggers


def extract_user_data(user_id: Optional[ObjectId] = None, request=None) -> Dict[str, Any]:
    """Contexte utilisateur pour le DataLogger (id, IP, user-agent)."""
    user_data: Dict[str, Any] = {}
    if user_id:
        user_data["user_id"] = user_id
    if request is not None:
        client = getattr(request, "client", None)
        if client:
            user_data["ip"] = client.host
        user_agent = request.headers.get("user-agent") if hasattr(request, "headers") else None
        if user_agent:
            user_data["user_agent"] = user_agent
    return user_data
