import pytest

from rade_bot.src.services.report_service import (
    ReportNotFoundError,
    combine_items,
    detect_requested_format,
    filter_fields,
    report_title,
)

PEOPLE = [
    {"name": "Dr. João Mendes", "email": "joao@x.com", "phone": "41987654327", "groupNames": ["Grupo 4", "Grupo 1"]},
    {"name": "Dra. Fernanda Costa", "email": "fernanda@x.com", "phone": None, "groupNames": ["Grupo 3"]},
]


def test_detect_requested_format():
    assert detect_requested_format("me manda um CSV") == "csv"
    assert detect_requested_format("quero um relatório em pdf") == "txt"
    assert detect_requested_format("") == "txt"


def test_filter_fields_keeps_requested_columns():
    filtered = filter_fields(PEOPLE, "apenas nome e telefone")

    assert filtered[0] == {"name": "Dr. João Mendes", "phone": "41987654327"}


def test_filter_fields_ignores_unknown_names():
    assert filter_fields(PEOPLE, "signo") == PEOPLE


def test_titles():
    assert report_title(PEOPLE) == "Lista de Pessoas"
    assert report_title({"studentName": "Maria"}) == "Dados do Estudante"
    assert report_title({"name": "Dr. João Mendes"}, "telefone") == "Dados de Dr. João Mendes - telefone"


def test_combine_items_flattens_payloads():
    assert combine_items([PEOPLE, {"name": "Outro"}, "ignorado"]) == PEOPLE + [{"name": "Outro"}]


def test_csv_rendering(reports):
    report_id = reports.create_snapshot(PEOPLE, "Lista de Pessoas")

    content, media_type, filename = reports.render(report_id, "csv")

    lines = content.strip().splitlines()
    assert lines[0] == "Nome,Email,Telefone,Grupos"
    assert lines[1] == "Dr. João Mendes,joao@x.com,41987654327,Grupo 4; Grupo 1"
    assert media_type == "text/csv; charset=utf-8"
    assert filename.endswith(".csv")


def test_txt_rendering_has_title_and_rows(reports):
    report_id = reports.create_snapshot(PEOPLE, "Lista de Pessoas")

    content, media_type, _ = reports.render(report_id, "pdf")

    assert content.startswith("Lista de Pessoas\n================")
    assert "Gerado em:" in content
    assert "Dra. Fernanda Costa" in content
    assert media_type.startswith("text/plain")


def test_unknown_report_and_format(reports):
    with pytest.raises(ReportNotFoundError):
        reports.render("nope", "csv")

    report_id = reports.create_snapshot(PEOPLE, "Lista de Pessoas")
    with pytest.raises(ValueError):
        reports.render(report_id, "xlsx")
