"""
Calendar event description layout.

Appointments have no storage besides the calendar event, so the event
description is a small "Label: value" document:

    Paciente: Maria Souza
    Telefone: 11999990000
    E-mail: maria@example.com
    Atendimento: online
    Pagamento: pix
    Libras: não
    Valor: R$ 150,00
    ID Reserva: res-1001

The "ID Reserva: <id>" line carries the reservation marker used to find
the event again when the caller only knows its reservation id. Only a line
that starts with that label and holds nothing but the id counts: values are
flattened to one line, so "Reserva: x" typed into notes or a name never
becomes a marker.
"""

import re

PATIENT = "Paciente"
PHONE = "Telefone"
EMAIL = "E-mail"
CHANNEL = "Atendimento"
PAYMENT = "Pagamento"
ACCESSIBILITY = "Libras"
PRICE = "Valor"
NOTES = "Observações"
RESERVATION = "ID Reserva"

MARKER_PATTERN = re.compile(rf"^[ \t]*{RESERVATION}:[ \t]*(\S+)[ \t\r]*$", re.MULTILINE)
LINE_PATTERN = re.compile(r"^\s*([^:\n]+?)\s*:\s?(.*)$")

TRUTHY = {"sim", "s", "yes", "y", "true", "1"}


def format_flag(value: bool) -> str:
    return "sim" if value else "não"


def parse_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in TRUTHY


def _single_line(value: str) -> str:
    return " ".join(str(value).split())


def build_description(fields: list[tuple[str, str | None]]) -> str:
    """Render label/value pairs, skipping empty values."""
    return "\n".join(
        f"{label}: {_single_line(value)}" for label, value in fields if value not in (None, "")
    )


def parse_description(description: str | None) -> dict[str, str]:
    """Label -> value for every "Label: value" line (first occurrence wins)."""
    values: dict[str, str] = {}
    for line in (description or "").splitlines():
        match = LINE_PATTERN.match(line)
        if match and match.group(1) not in values:
            values[match.group(1)] = match.group(2).strip()
    return values


def replace_field(description: str | None, label: str, value: str) -> str:
    """
    Overwrite the value of one labelled line, keeping every other line verbatim.

    A missing label is inserted just before the reservation line so the
    marker stays last.
    """
    lines = (description or "").splitlines()
    for index, line in enumerate(lines):
        match = LINE_PATTERN.match(line)
        if match and match.group(1) == label:
            lines[index] = f"{label}: {_single_line(value)}"
            return "\n".join(lines)

    new_line = f"{label}: {_single_line(value)}"
    for index, line in enumerate(lines):
        if MARKER_PATTERN.search(line):
            lines.insert(index, new_line)
            return "\n".join(lines)
    lines.append(new_line)
    return "\n".join(lines)


def extract_reservation_ids(description: str | None) -> list[str]:
    """
    Ids on "ID Reserva:" lines, in order.

    The whole id token is returned, so "res-1" never equals a line marked
    "res-10".
    """
    return MARKER_PATTERN.findall(description or "")
