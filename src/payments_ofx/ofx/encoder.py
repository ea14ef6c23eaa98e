"""
OFX 1.02 (SGML) statement encoder.

Pure functions, no I/O except write_statement(). Field limits of OFX 1.02
are applied after escaping, so a limited field never exceeds its
maximum and never ends in a half-written entity:

- BANKID: 9
- ACCTID: 22
- FITID: 255
- NAME: 32
- MEMO: 255
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from ..errors import InvalidTransactionType
from ..schemas.transaction import StatementEntry, ensure_utc

logger = logging.getLogger(__name__)


TXN_TYPES = frozenset(
    {
        "CREDIT",  # Generic credit
        "DEBIT",  # Generic debit
        "XFER",  # Transfer
        "FEE",  # FI fee
        "INT",  # Interest earned or paid
        "PAYMENT",  # Electronic payment
    }
)

BANKID_MAX = 9
ACCTID_MAX = 22
FITID_MAX = 255
NAME_MAX = 32
MEMO_MAX = 255

_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;"}

_CENTS = Decimal("0.01")


def escape(text: str) -> str:
    """Escape text for an SGML element payload."""
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


def escape_limited(text: str, limit: int) -> str:
    """Escape text and cut it to at most `limit` characters of output."""
    out: list[str] = []
    length = 0
    for ch in text:
        piece = _ESCAPES.get(ch, ch)
        if length + len(piece) > limit:
            break
        out.append(piece)
        length += len(piece)
    return "".join(out)


def format_date(value: datetime) -> str:
    """OFX datetime, always in UTC with an explicit GMT offset marker."""
    utc = ensure_utc(value)
    return utc.strftime("%Y%m%d%H%M%S") + f".{utc.microsecond // 1000:03d}[-0:GMT]"


def format_amount(amount) -> str:
    return str(Decimal(amount).quantize(_CENTS, rounding=ROUND_HALF_UP))


def make_header(
    file_date: datetime,
    start: datetime,
    end: datetime,
    bank_id: str = "00",
    acct_id: str = "00",
    currency: str = "USD",
) -> str:
    """
    Beginning of an OFX file, up to and including the transaction list dates.

    Args:
        file_date: when the data in this file was current
        start: start of the covered interval (inclusive)
        end: end of the covered interval (exclusive)
        bank_id: institution id, max 9 characters
        acct_id: account id, max 22 characters
        currency: ISO 4217 code for CURDEF
    """
    return (
        "OFXHEADER:100\n"
        "DATA:OFXSGML\n"
        "VERSION:102\n"
        "SECURITY:NONE\n"
        "ENCODING:USASCII\n"
        "CHARSET:1252\n"
        "COMPRESSION:NONE\n"
        "OLDFILEUID:NONE\n"
        "NEWFILEUID:NONE\n"
        "\n"
        "<OFX>\n"
        "<SONRS>\n"
        "<STATUS><CODE>0<SEVERITY>INFO</STATUS>\n"
        f"<DTSERVER>{format_date(file_date)}\n"
        "<LANGUAGE>ENG\n"
        "</SONRS>\n"
        "<BANKMSGSRSV1><STMTTRNRS><TRNUID>0<STATUS><CODE>0<SEVERITY>INFO</STATUS>\n"
        "<STMTRS>\n"
        f"  <CURDEF>{escape(currency.upper())}\n"
        "  <BANKACCTFROM>\n"
        f"    <BANKID>{escape_limited(bank_id, BANKID_MAX)}\n"
        f"    <ACCTID>{escape_limited(acct_id, ACCTID_MAX)}\n"
        "    <ACCTTYPE>CHECKING\n"
        "  </BANKACCTFROM>\n"
        "  <BANKTRANLIST>\n"
        f"    <DTSTART>{format_date(start)}\n"
        f"    <DTEND>{format_date(end)}"
    )


def make_transaction(
    trn_type: str,
    posted: datetime,
    amount,
    fitid: str,
    name: str | None = None,
    memo: str | None = None,
) -> str:
    """
    One <STMTTRN> block. Append any number of these after make_header().

    Raises:
        InvalidTransactionType: if trn_type is outside TXN_TYPES
    """
    code = str(getattr(trn_type, "value", trn_type)).upper()
    if code not in TXN_TYPES:
        raise InvalidTransactionType(code)

    out = (
        "\n    <STMTTRN>"
        f"\n      <TRNTYPE>{code}"
        f"\n      <DTPOSTED>{format_date(posted)}"
        f"\n      <TRNAMT>{format_amount(amount)}"
        f"\n      <FITID>{escape_limited(fitid, FITID_MAX)}"
    )
    if name:
        out += f"\n      <NAME>{escape_limited(name, NAME_MAX)}"
    if memo:
        out += f"\n      <MEMO>{escape_limited(memo, MEMO_MAX)}"
    out += "\n    </STMTTRN>"
    return out


def make_footer(balance, as_of: datetime) -> str:
    """End of an OFX file: closes the transaction list and adds LEDGERBAL."""
    return (
        "\n  </BANKTRANLIST>"
        "\n  <LEDGERBAL>"
        f"\n      <BALAMT>{format_amount(balance)}"
        f"\n      <DTASOF>{format_date(as_of)}"
        "\n  </LEDGERBAL>"
        "\n</STMTRS>"
        "\n</STMTTRNRS></BANKMSGSRSV1></OFX>"
    )


def render_statement(
    file_date: datetime,
    start: datetime,
    end: datetime,
    bank_id: str,
    acct_id: str,
    currency: str,
    entries: list[StatementEntry],
    balance,
    balance_as_of: datetime,
) -> str:
    """Render a complete statement: header, entries, footer."""
    parts = [make_header(file_date, start, end, bank_id, acct_id, currency)]
    for entry in entries:
        parts.append(
            make_transaction(
                entry.trn_type,
                entry.posted,
                entry.amount,
                entry.fitid,
                entry.name,
                entry.memo,
            )
        )
    parts.append(make_footer(balance, balance_as_of))
    return "".join(parts)


def statement_filename(name: str) -> str:
    """Attachment / file name with the .ofx extension."""
    return name if name.endswith(".ofx") else name + ".ofx"


def write_statement(path: Path, text: str) -> Path:
    """Write an encoded statement using the charset its header declares."""
    path = path.with_name(statement_filename(path.name))
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="cp1252", errors="replace", newline="\n") as f:
        f.write(text)
    logger.info("Wrote statement to %s", path)
    return path
