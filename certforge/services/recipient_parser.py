"""
Recipient Parser
Best-effort extraction of display name, email and phone from uploaded rows
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from certforge.schemas.generation import RecipientColumns, RecipientRecord


class RecipientParser:
    """
    Header sniffing for recipient rows.

    This is a convenience, not a contract: headers are matched exactly
    (case-sensitive) against the synonym lists below, in priority order, and
    the first present column wins. Callers that know their columns should
    pass explicit `RecipientColumns` instead.
    """

    NAME_HEADERS = (
        "name",
        "Name",
        "full_name",
        "Full Name",
        "fullName",
        "FullName",
        "recipient_name",
        "Recipient Name",
        "student_name",
        "Student Name",
        "participant_name",
        "Participant Name",
    )
    EMAIL_HEADERS = (
        "email",
        "Email",
        "EMAIL",
        "email_address",
        "Email Address",
        "recipient_email",
        "Recipient Email",
        "e-mail",
        "E-mail",
    )
    PHONE_HEADERS = (
        "phone",
        "Phone",
        "phone_number",
        "Phone Number",
        "mobile",
        "Mobile",
        "mobile_number",
        "Mobile Number",
        "contact",
        "Contact",
    )

    UNKNOWN_NAME = "Unknown"

    @staticmethod
    def _first_value(row: Mapping[str, Any], headers: Sequence[str]) -> Optional[str]:
        for header in headers:
            if header not in row:
                continue
            value = row[header]
            if value is None:
                continue
            text = str(value).strip()
            if text:
                return text
        return None

    @classmethod
    def extract(
        cls,
        index: int,
        row: Mapping[str, Any],
        columns: Optional[RecipientColumns] = None,
        name_field_column: Optional[str] = None,
    ) -> RecipientRecord:
        columns = columns or RecipientColumns()

        def pick(explicit: Optional[str], synonyms: Sequence[str]) -> Optional[str]:
            headers = (explicit,) if explicit else synonyms
            return cls._first_value(row, headers)

        # The column mapped onto the template's name field outranks header sniffing
        name_headers = cls.NAME_HEADERS
        if name_field_column:
            name_headers = (name_field_column,) + name_headers

        return RecipientRecord(
            index=index,
            name=pick(columns.name, name_headers) or cls.UNKNOWN_NAME,
            email=pick(columns.email, cls.EMAIL_HEADERS),
            phone=pick(columns.phone, cls.PHONE_HEADERS),
            row=dict(row),
        )

    @classmethod
    def extract_all(
        cls,
        rows: Sequence[Mapping[str, Any]],
        columns: Optional[RecipientColumns] = None,
        name_field_column: Optional[str] = None,
    ) -> List[RecipientRecord]:
        return [cls.extract(index, row, columns, name_field_column) for index, row in enumerate(rows)]


def row_payload(row: Mapping[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of a row for audit storage"""
    return {str(key): (value if isinstance(value, (str, int, float, bool)) or value is None else str(value))
            for key, value in row.items()}
