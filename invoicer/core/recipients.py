"""Recipient list import for the bulk invoice form.

Spreadsheets are read with pandas.  A column whose header mentions ``email``
or ``mail`` wins; otherwise every cell containing ``@`` is taken in sheet
order.  Plain text files are read one address per line.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

EMAIL_HEADER_HINTS = ("email", "e-mail", "mail")
SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
TEXT_SUFFIXES = {".txt", ".md"}


class RecipientImportError(ValueError):
    """Raised when an uploaded recipient list cannot be interpreted."""


def _normalise(value: object) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() == "nan":
        return ""
    return text


def normalise_recipients(values: Iterable[object]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""

    seen: set[str] = set()
    recipients: list[str] = []
    for value in values:
        email = _normalise(value)
        if not email or "@" not in email:
            continue
        key = email.lower()
        if key in seen:
            continue
        seen.add(key)
        recipients.append(email)
    return recipients


def _email_column(frame: pd.DataFrame) -> str | None:
    for column in frame.columns:
        # an address in the header row means the sheet has no header
        if not isinstance(column, str) or "@" in column:
            continue
        lowered = column.strip().lower()
        if any(hint in lowered for hint in EMAIL_HEADER_HINTS):
            return column
    return None


def _from_frame(frame: pd.DataFrame) -> list[str]:
    if len(frame.columns) == 0:
        return []
    column = _email_column(frame)
    if column is not None:
        return normalise_recipients(frame[column].tolist())

    # Headerless sheets: the first row was consumed as column names.
    cells: list[object] = [col for col in frame.columns if isinstance(col, str)]
    for row in frame.itertuples(index=False):
        cells.extend(row)
    return normalise_recipients(cells)


def read_recipients(path: Path) -> list[str]:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        try:
            frame = pd.read_csv(path, dtype=str)
        except pd.errors.EmptyDataError:
            return []
    elif suffix in SPREADSHEET_SUFFIXES:
        frame = pd.read_excel(path, dtype=str)
    elif suffix in TEXT_SUFFIXES:
        with path.open("r", encoding="utf-8") as fp:
            return normalise_recipients(fp.read().splitlines())
    else:
        raise RecipientImportError(f"unsupported recipient file type: {suffix or 'none'}")
    return _from_frame(frame)
