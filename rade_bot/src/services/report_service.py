import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from rade_bot.src.core.cache import ExpiringCache

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "txt")
MEDIA_TYPES = {"csv": "text/csv; charset=utf-8", "txt": "text/plain; charset=utf-8"}

FIELD_MAPPING = {
    "nome": ["studentName", "coordinatorName", "name"],
    "email": ["studentEmail", "coordinatorEmail", "email"],
    "telefone": ["studentPhone", "coordinatorPhone", "phone"],
    "grupo": ["groupNames"],
    "instituição": ["organizationsAndCourses"],
    "instituicao": ["organizationsAndCourses"],
    "organização": ["organizationsAndCourses"],
    "curso": ["organizationsAndCourses"],
}

COLUMN_LABELS = {
    "studentName": "Nome",
    "coordinatorName": "Nome",
    "name": "Nome",
    "studentEmail": "Email",
    "coordinatorEmail": "Email",
    "email": "Email",
    "studentPhone": "Telefone",
    "coordinatorPhone": "Telefone",
    "phone": "Telefone",
    "groupNames": "Grupos",
    "groupName": "Grupo",
    "organizationsAndCourses": "Instituições e cursos",
    "taskName": "Atividade",
    "internshipLocationName": "Local",
    "scheduledStartTo": "Início previsto",
    "scheduledEndTo": "Término previsto",
    "startedAt": "Iniciada em",
    "preceptorNames": "Preceptores",
    "preceptorName": "Preceptor",
    "pendingValidationWorkloadMinutes": "Carga pendente (min)",
}


class ReportNotFoundError(Exception):
    pass


def detect_requested_format(message: str) -> str:
    """csv when the user mentions it, txt otherwise (PDF is served as txt)."""
    return "csv" if "csv" in (message or "").lower() else "txt"


def combine_items(items: List[Any]) -> List[Any]:
    """Flattens several tool payloads into one list of records."""
    combined = []
    for data in items:
        if isinstance(data, list):
            combined.extend(data)
        elif isinstance(data, dict):
            combined.append(data)
    return combined


def _filter_record(record: Any, fields: set) -> Any:
    if not isinstance(record, dict):
        return record
    return {key: value for key, value in record.items() if key in fields}


def filter_fields(data: Any, fields_requested: Optional[str]) -> Any:
    """Keeps only the fields named in Portuguese in `fields_requested`; unknown names keep everything."""
    if not fields_requested or not data:
        return data
    requested = fields_requested.lower()
    fields = set()
    for keyword, keys in FIELD_MAPPING.items():
        if keyword in requested:
            fields.update(keys)
    if not fields:
        return data
    if isinstance(data, list):
        return [_filter_record(item, fields) for item in data]
    return _filter_record(data, fields)


def report_title(data: Any, fields_requested: Optional[str] = None) -> str:
    title = "Dados Solicitados" if fields_requested else "Dados"
    if isinstance(data, list) and data and isinstance(data[0], dict):
        first = data[0]
        if first.get("studentName") and first.get("taskName"):
            return "Atividades em Andamento"
        if first.get("taskName") and "preceptorNames" in first:
            return "Atividades Agendadas"
        if first.get("name") and "email" in first:
            return "Lista de Pessoas"
    elif isinstance(data, dict):
        suffix = f" - {fields_requested}" if fields_requested else ""
        if data.get("studentName"):
            return f"Dados do Estudante{suffix}"
        if data.get("coordinatorName"):
            return f"Dados do Coordenador{suffix}"
        if data.get("name"):
            return f"Dados de {data['name']}{suffix}"
    return title


def _cell(value: Any) -> Any:
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, dict) and "organizationName" in item:
                parts.append(f"{item['organizationName']} ({', '.join(item.get('courseNames') or [])})")
            elif isinstance(item, dict):
                parts.append(", ".join(str(v) for v in item.values()))
            else:
                parts.append(str(item))
        return "; ".join(parts)
    if value is None:
        return ""
    return value


def to_dataframe(data: Any) -> pd.DataFrame:
    rows = data if isinstance(data, list) else [data]
    rows = [row if isinstance(row, dict) else {"valor": row} for row in rows]
    df = pd.DataFrame([{key: _cell(value) for key, value in row.items()} for row in rows])
    return df.rename(columns=COLUMN_LABELS)


class ReportService:
    def __init__(self, cache: ExpiringCache, public_base_url: str, ttl_ms: int):
        self.cache = cache
        self.public_base_url = public_base_url.rstrip("/")
        self.ttl_ms = ttl_ms

    def create_snapshot(self, data: Any, title: str) -> str:
        report_id = str(uuid.uuid4())
        self.cache.set(
            f"report_{report_id}",
            {"data": data, "title": title, "created_at": datetime.now().isoformat()},
            self.ttl_ms,
        )
        logger.info(f"Report snapshot {report_id} created ({title})")
        return report_id

    def download_url(self, report_id: str, fmt: str) -> str:
        return f"{self.public_base_url}/reports/{report_id}/{fmt}"

    def render(self, report_id: str, fmt: str) -> Tuple[str, str, str]:
        """
        Renders a stored snapshot.

        Returns:
            (content, media_type, filename)
        """
        fmt = (fmt or "").lower()
        if fmt == "pdf":
            fmt = "txt"
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Formato não suportado: {fmt}")

        snapshot = self.cache.get(f"report_{report_id}")
        if snapshot is None:
            raise ReportNotFoundError(report_id)

        df = to_dataframe(snapshot["data"])
        if fmt == "csv":
            content = df.to_csv(index=False)
        else:
            created_at = datetime.fromisoformat(snapshot["created_at"]).strftime("%d/%m/%Y %H:%M")
            body = df.to_string(index=False) if not df.empty else "Nenhum registro."
            content = (
                f"{snapshot['title']}\n{'=' * len(snapshot['title'])}\n"
                f"Gerado em: {created_at}\n\n{body}\n"
            )
        return content, MEDIA_TYPES[fmt], f"relatorio-{report_id[:8]}.{fmt}"
